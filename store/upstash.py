"""
store/upstash.py -- Upstash Redis REST backend.

Every command is a POST of a JSON array (["SET", "k", "v"]) to the REST URL
with the account token as a Bearer credential. Batches go to <url>/pipeline
as an array of such arrays. Replies are {"result": ...} or {"error": "..."}.

Failure policy: fail closed. Missing credentials, network errors, non-2xx
replies, and Redis-level errors all raise UpstreamError. There is no retry;
the caller decides whether to try again.

Usage:
    store = UpstashStore(url, token)
    store.set("token:abc", '{"userId": "x"}', ttl=2592000)
    store.get("token:abc")
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Optional

import requests

from core.errors import UpstreamError
from store.base import KeyValueStore

logger = logging.getLogger("equitysight.store")

_NOT_CONFIGURED = (
    "Auth not configured -- set UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN "
    "in the environment"
)

# SCAN page size. Upstash caps COUNT server-side anyway.
_SCAN_COUNT = 200


class UpstashStore(KeyValueStore):
    def __init__(self, url: str, token: str, timeout: float = 10.0, session: Optional[requests.Session] = None) -> None:
        self.url = url.rstrip("/")
        self.token = token
        self.timeout = timeout
        # Shared session for connection pooling across requests.
        self._session = session or requests.Session()
        self._session.max_redirects = 3

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _post(self, path: str, payload: Any) -> Any:
        if not self.url or not self.token:
            raise UpstreamError(_NOT_CONFIGURED)
        try:
            resp = self._session.post(
                self.url + path,
                json=payload,
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Upstash request failed: %s", e)
            raise UpstreamError("Backing store unreachable") from e
        if not resp.ok:
            logger.error("Upstash HTTP %d on %s", resp.status_code, path or "/")
            raise UpstreamError(f"Backing store HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError("Backing store returned a malformed reply") from e

    def command(self, *args: Any) -> Any:
        """Run a single Redis command and return its result field."""
        body = self._post("", [str(a) for a in args])
        if isinstance(body, dict) and body.get("error"):
            logger.error("Upstash %s error: %s", args[0], body["error"])
            raise UpstreamError(f"Backing store error: {body['error']}")
        return body.get("result") if isinstance(body, dict) else None

    def pipeline(self, commands: list[list[Any]]) -> list[Any]:
        """Send several commands in one request. Not atomic; results in order."""
        if not commands:
            return []
        body = self._post("/pipeline", [[str(a) for a in cmd] for cmd in commands])
        if not isinstance(body, list):
            raise UpstreamError("Backing store returned a malformed pipeline reply")
        if len(body) != len(commands):
            logger.error("Upstash pipeline sent %d commands, got %d replies", len(commands), len(body))
            raise UpstreamError("Backing store returned a malformed pipeline reply")
        results = []
        for cmd, item in zip(commands, body):
            if isinstance(item, dict) and item.get("error"):
                logger.warning("Upstash pipeline %s failed: %s", cmd[0], item["error"])
                raise UpstreamError(f"Backing store error: {item['error']}")
            results.append(item.get("result") if isinstance(item, dict) else None)
        return results

    # ------------------------------------------------------------------
    # KeyValueStore
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        return self.command("GET", key)

    def get_many(self, keys: list[str]) -> list[Optional[str]]:
        if not keys:
            return []
        result = self.command("MGET", *keys)
        return list(result or [None] * len(keys))

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        if ttl:
            self.command("SETEX", key, int(ttl), value)
        else:
            self.command("SET", key, value)

    def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        args: list[Any] = ["SET", key, value, "NX"]
        if ttl:
            args += ["EX", int(ttl)]
        return self.command(*args) == "OK"

    def delete(self, key: str) -> int:
        return int(self.command("DEL", key) or 0)

    def delete_many(self, keys: Iterable[str]) -> None:
        self.pipeline([["DEL", k] for k in keys])

    def scan_keys(self, pattern: str) -> list[str]:
        keys: list[str] = []
        cursor = "0"
        while True:
            result = self.command("SCAN", cursor, "MATCH", pattern, "COUNT", _SCAN_COUNT)
            cursor, batch = str(result[0]), result[1]
            keys.extend(batch)
            if cursor == "0":
                break
        # SCAN may return a key more than once across pages.
        return list(dict.fromkeys(keys))

    def ping(self) -> bool:
        try:
            return self.command("PING") == "PONG"
        except UpstreamError:
            return False

    def close(self) -> None:
        self._session.close()
