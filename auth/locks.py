"""
auth/locks.py -- Advisory locks on top of the store's SET NX primitive.

The backing store has no transactions, so a read-then-write sequence that
must not interleave with another request takes a named lock first. The lock
entry expires on its own after ``ttl`` seconds so a crashed holder cannot
block everyone forever.

There is no waiting: acquisition either succeeds immediately or raises
ConflictError and the caller retries if it wants to.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Iterator
from contextlib import contextmanager

from auth.store import AccountRepository
from core.errors import ConflictError

logger = logging.getLogger("equitysight.auth")


class AdvisoryLock:
    def __init__(self, repo: AccountRepository, name: str, ttl: int = 30) -> None:
        self.repo = repo
        self.name = name
        self.ttl = ttl

    @contextmanager
    def hold(self, busy_message: str) -> Iterator[None]:
        holder = secrets.token_hex(8)
        if not self.repo.acquire_lock(self.name, holder, self.ttl):
            logger.info("Lock %s busy", self.name)
            raise ConflictError(busy_message)
        try:
            yield
        finally:
            # Only release our own lock; after a TTL lapse it may belong to someone else.
            if self.repo.lock_holder(self.name) == holder:
                self.repo.release_lock(self.name)
