"""
tests/conftest.py -- Shared fixtures for the EquitySight auth test suite.

This module provides:
  - FakeClock: a controllable time source injected into every component, so
    expiry tests move time forward instead of sleeping
  - kv: an isolated in-memory SQLStore per test
  - services: the full AuthServices graph built on kv and the fake clock
  - client: TestClient against the real FastAPI app with a patched lifespan

Design: In-memory SQLite with StaticPool (see store/sql.py) shares a single
connection across threads, so TestClient's threadpool and the concurrency
tests all see the same data.

The env vars must be set before any core/api import so get_settings() never
tries to reach Upstash and never warns about the default salt.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before importing api.main, which reads settings at import time.
os.environ.setdefault("STORE_BACKEND", "sql")
os.environ.setdefault("STORE_DB_URL", "sqlite:///:memory:")
os.environ.setdefault("AUTH_SALT", "test-salt-not-for-production")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.dependencies import AuthServices, build_auth_services
from core.config import DEFAULT_TOKEN_TTL
from store.sql import SQLStore

TEST_SECRET = "test-salt-not-for-production"

# Fixed start: 2024-01-01T00:00:00Z
START = 1_704_067_200.0


class FakeClock:
    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv() -> Generator[SQLStore, None, None]:
    store = SQLStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def services(kv: SQLStore, clock: FakeClock) -> AuthServices:
    return build_auth_services(kv, TEST_SECRET, DEFAULT_TOKEN_TTL, clock)


def _patch_lifespan(services: AuthServices):
    """Return a lifespan that wires the test services into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth = services
        yield

    return test_lifespan


@pytest.fixture
def client(services: AuthServices) -> Generator[TestClient, None, None]:
    """TestClient hitting real route handlers with the isolated services."""
    app.router.lifespan_context = _patch_lifespan(services)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
