"""Unit tests for store/upstash.py -- the Upstash REST backend.

The requests session is a MagicMock, so these tests assert on the exact
command arrays sent over the wire and on the fail-closed error policy.
No network access.
"""

from unittest.mock import MagicMock

import pytest
import requests

from core.errors import UpstreamError
from store.upstash import UpstashStore


def _reply(payload, status=200):
    resp = MagicMock()
    resp.ok = 200 <= status < 300
    resp.status_code = status
    resp.json.return_value = payload
    return resp


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def store(session):
    return UpstashStore("https://example.upstash.io/", "secret-token", timeout=5, session=session)


def _sent(session, call=-1):
    args, kwargs = session.post.call_args_list[call]
    return args[0], kwargs["json"]


class TestCommands:
    def test_get_posts_command_array_with_bearer(self, store, session):
        session.post.return_value = _reply({"result": "v"})
        assert store.get("user:a@b.com") == "v"
        url, body = _sent(session)
        assert url == "https://example.upstash.io"
        assert body == ["GET", "user:a@b.com"]
        kwargs = session.post.call_args.kwargs
        assert kwargs["headers"]["Authorization"] == "Bearer secret-token"
        assert kwargs["timeout"] == 5

    def test_set_with_ttl_uses_setex(self, store, session):
        session.post.return_value = _reply({"result": "OK"})
        store.set("token:t", "{}", ttl=2592000)
        assert _sent(session)[1] == ["SETEX", "token:t", "2592000", "{}"]

    def test_set_without_ttl_uses_set(self, store, session):
        session.post.return_value = _reply({"result": "OK"})
        store.set("profile:u", "{}")
        assert _sent(session)[1] == ["SET", "profile:u", "{}"]

    def test_set_if_absent_uses_nx(self, store, session):
        session.post.return_value = _reply({"result": "OK"})
        assert store.set_if_absent("lock:l", "h", ttl=30) is True
        assert _sent(session)[1] == ["SET", "lock:l", "h", "NX", "EX", "30"]

    def test_set_if_absent_returns_false_on_null(self, store, session):
        session.post.return_value = _reply({"result": None})
        assert store.set_if_absent("user:x", "{}") is False
        assert _sent(session)[1] == ["SET", "user:x", "{}", "NX"]

    def test_get_many_uses_mget(self, store, session):
        session.post.return_value = _reply({"result": ["1", None]})
        assert store.get_many(["a", "b"]) == ["1", None]
        assert _sent(session)[1] == ["MGET", "a", "b"]

    def test_scan_follows_cursor_and_dedupes(self, store, session):
        session.post.side_effect = [
            _reply({"result": ["7", ["user:a", "user:b"]]}),
            _reply({"result": ["0", ["user:b", "user:c"]]}),
        ]
        assert store.scan_keys("user:*") == ["user:a", "user:b", "user:c"]
        assert _sent(session, 0)[1] == ["SCAN", "0", "MATCH", "user:*", "COUNT", "200"]
        assert _sent(session, 1)[1][1] == "7"

    def test_delete_many_uses_pipeline(self, store, session):
        session.post.return_value = _reply([{"result": 1}, {"result": 0}])
        store.delete_many(["user:a", "profile:u"])
        url, body = _sent(session)
        assert url == "https://example.upstash.io/pipeline"
        assert body == [["DEL", "user:a"], ["DEL", "profile:u"]]

    def test_ping(self, store, session):
        session.post.return_value = _reply({"result": "PONG"})
        assert store.ping() is True


class TestFailClosed:
    def test_missing_credentials_raise_without_network(self, session):
        s = UpstashStore("", "", session=session)
        with pytest.raises(UpstreamError, match="Auth not configured"):
            s.get("k")
        session.post.assert_not_called()

    def test_http_error_raises(self, store, session):
        session.post.return_value = _reply({}, status=500)
        with pytest.raises(UpstreamError, match="HTTP 500"):
            store.get("k")

    def test_network_error_raises(self, store, session):
        session.post.side_effect = requests.ConnectionError("boom")
        with pytest.raises(UpstreamError):
            store.get("k")

    def test_redis_error_reply_raises(self, store, session):
        session.post.return_value = _reply({"error": "WRONGTYPE"})
        with pytest.raises(UpstreamError, match="WRONGTYPE"):
            store.get("k")

    def test_pipeline_error_item_raises(self, store, session):
        session.post.return_value = _reply([{"result": 1}, {"error": "ERR"}])
        with pytest.raises(UpstreamError):
            store.delete_many(["a", "b"])

    def test_ping_swallows_upstream_error(self, store, session):
        session.post.return_value = _reply({}, status=503)
        assert store.ping() is False

    def test_short_pipeline_reply_raises(self, store, session):
        session.post.return_value = _reply([{"result": 1}])
        with pytest.raises(UpstreamError, match="malformed pipeline reply"):
            store.delete_many(["a", "b"])
