"""
store/sql.py -- SQLAlchemy Core backend for the key-value store.

Pattern: Repository over a single table. Each row is one key with its string
value and an optional absolute expiry (epoch seconds). Expired rows are
invisible to reads and are removed when a read encounters them; there is no
background sweeper (purge_expired() exists for operators who want one).

Used for local development (STORE_BACKEND=sql) and by the test suite with an
in-memory SQLite database. In-memory URLs share one connection (StaticPool)
so every thread sees the same data; an RLock serializes access to it.

Security: all queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterable
from typing import Optional

from sqlalchemy import Column, Float, MetaData, String, Table, Text, create_engine, delete, event, insert, or_, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from core.errors import UpstreamError
from store.base import KeyValueStore

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_kv = Table(
    "kv",
    _metadata,
    Column("key", String(512), primary_key=True),
    Column("value", Text, nullable=False),
    Column("expires_at", Float),  # NULL = no TTL
)

_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _glob_to_like(pattern: str) -> str:
    escaped = pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped.replace("*", "%").replace("?", "_")


class SQLStore(KeyValueStore):
    """KeyValueStore backed by one SQL table.

    Usage:
        store = SQLStore("sqlite:///:memory:")
        store.set("user:a@b.com", "{...}")
        store.close()
    """

    def __init__(self, db_url: str = "sqlite:///:memory:", clock=time.time) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        kwargs: dict = {}
        if db_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if db_url in _MEMORY_URLS:
                kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(db_url, **kwargs)
        if db_url.startswith("sqlite") and db_url not in _MEMORY_URLS:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def _live(self, now: float):
        return or_(_kv.c.expires_at.is_(None), _kv.c.expires_at >= now)

    def _expiry(self, ttl: Optional[int]) -> Optional[float]:
        return self._clock() + ttl if ttl else None

    # ------------------------------------------------------------------
    # KeyValueStore
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            try:
                with self.engine.begin() as conn:
                    row = conn.execute(select(_kv.c.value, _kv.c.expires_at).where(_kv.c.key == key)).fetchone()
                    if row is None:
                        return None
                    if row.expires_at is not None and row.expires_at < self._clock():
                        conn.execute(delete(_kv).where(_kv.c.key == key))
                        return None
                    return row.value
            except SQLAlchemyError as e:
                raise UpstreamError("Backing store unavailable") from e

    def get_many(self, keys: list[str]) -> list[Optional[str]]:
        if not keys:
            return []
        with self._lock:
            try:
                with self.engine.connect() as conn:
                    rows = conn.execute(
                        select(_kv.c.key, _kv.c.value).where(_kv.c.key.in_(keys), self._live(self._clock()))
                    ).fetchall()
            except SQLAlchemyError as e:
                raise UpstreamError("Backing store unavailable") from e
        found = {r.key: r.value for r in rows}
        return [found.get(k) for k in keys]

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        with self._lock:
            try:
                with self.engine.begin() as conn:
                    conn.execute(delete(_kv).where(_kv.c.key == key))
                    conn.execute(insert(_kv).values(key=key, value=value, expires_at=self._expiry(ttl)))
            except SQLAlchemyError as e:
                raise UpstreamError("Backing store unavailable") from e

    def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        with self._lock:
            try:
                with self.engine.begin() as conn:
                    # An expired row must not block the write.
                    conn.execute(delete(_kv).where(_kv.c.key == key, _kv.c.expires_at < self._clock()))
                    conn.execute(insert(_kv).values(key=key, value=value, expires_at=self._expiry(ttl)))
                return True
            except IntegrityError:
                return False
            except SQLAlchemyError as e:
                raise UpstreamError("Backing store unavailable") from e

    def delete(self, key: str) -> int:
        with self._lock:
            try:
                with self.engine.begin() as conn:
                    result = conn.execute(delete(_kv).where(_kv.c.key == key))
            except SQLAlchemyError as e:
                raise UpstreamError("Backing store unavailable") from e
        return result.rowcount

    def delete_many(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        with self._lock:
            try:
                with self.engine.begin() as conn:
                    conn.execute(delete(_kv).where(_kv.c.key.in_(keys)))
            except SQLAlchemyError as e:
                raise UpstreamError("Backing store unavailable") from e

    def scan_keys(self, pattern: str) -> list[str]:
        with self._lock:
            try:
                with self.engine.connect() as conn:
                    rows = conn.execute(
                        select(_kv.c.key)
                        .where(_kv.c.key.like(_glob_to_like(pattern), escape="\\"), self._live(self._clock()))
                        .order_by(_kv.c.key)
                    ).fetchall()
            except SQLAlchemyError as e:
                raise UpstreamError("Backing store unavailable") from e
        return [r.key for r in rows]

    def ping(self) -> bool:
        try:
            with self._lock, self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    def purge_expired(self) -> int:
        """Delete every expired row. Returns number of rows removed."""
        with self._lock:
            try:
                with self.engine.begin() as conn:
                    result = conn.execute(delete(_kv).where(_kv.c.expires_at < self._clock()))
            except SQLAlchemyError as e:
                raise UpstreamError("Backing store unavailable") from e
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()
