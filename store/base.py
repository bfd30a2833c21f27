"""
store/base.py -- Backing store capability shared by every KV backend.

The auth layer talks to persistence only through KeyValueStore. Two backends
implement it:

  store/upstash.py -- Upstash Redis REST API over requests (production).
  store/sql.py     -- SQLAlchemy Core table (local development and tests).

Semantics every backend must honour:
  - Values are strings. get_json()/set_json() layer JSON on top.
  - ttl is seconds; an entry past its TTL is invisible to every read.
  - set_if_absent() is the only atomic primitive. Everything else is a plain
    GET or SET, so read-modify-write sequences built on top can race.
  - delete_many() is a latency optimization, not a transaction.
  - Any transport or driver failure surfaces as core.errors.UpstreamError.

Layer rule: store/ imports only core/ and third-party libraries.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any, Optional


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the raw string stored under key, or None if absent/expired."""

    @abstractmethod
    def get_many(self, keys: list[str]) -> list[Optional[str]]:
        """Return values for keys in order, None for each missing key."""

    @abstractmethod
    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Store value under key, replacing any existing entry and its TTL."""

    @abstractmethod
    def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Atomically store value only if key does not exist. Returns True if written."""

    @abstractmethod
    def delete(self, key: str) -> int:
        """Remove key. Returns the number of entries removed (0 or 1)."""

    @abstractmethod
    def delete_many(self, keys: Iterable[str]) -> None:
        """Remove several keys in one round trip. Not atomic."""

    @abstractmethod
    def scan_keys(self, pattern: str) -> list[str]:
        """Return all live keys matching a glob pattern such as ``user:*``."""

    @abstractmethod
    def ping(self) -> bool:
        """Return True if the backend answers. Never raises."""

    def close(self) -> None:
        pass

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------

    def get_json(self, key: str) -> Any:
        """Return the decoded JSON value under key, or None.

        Values that are not valid JSON come back as the raw string.
        """
        raw = self.get(key)
        if not raw:
            return None
        return decode_value(raw)

    def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self.set(key, encode_value(value), ttl)


def encode_value(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, separators=(",", ":"))


def decode_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw
