from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

from oidc_login.auth.session import (
    MemorySessionBackend,
    RedisSessionBackend,
    SessionState,
    create_session_backend,
)


class TestMemorySessionBackend:
    def test_apply_and_load(self):
        backend = MemorySessionBackend()
        backend.apply("s1", {"a": 1, "b": 2})
        backend.apply("s1", {"c": 3}, removals=["a"])

        assert backend.load("s1") == {"b": 2, "c": 3}

    def test_sessions_are_isolated(self):
        backend = MemorySessionBackend()
        backend.apply("s1", {"a": 1})
        assert backend.load("s2") == {}

    def test_load_returns_copy(self):
        backend = MemorySessionBackend()
        backend.apply("s1", {"a": 1})
        backend.load("s1")["a"] = 2
        assert backend.load("s1") == {"a": 1}

    def test_expired_session_is_empty(self):
        backend = MemorySessionBackend(ttl_seconds=-1)
        backend.apply("s1", {"a": 1})
        assert backend.load("s1") == {}

    def test_delete(self):
        backend = MemorySessionBackend()
        backend.apply("s1", {"a": 1})
        backend.delete("s1")
        assert backend.load("s1") == {}


class TestSessionState:
    def test_operations(self):
        session = SessionState(MemorySessionBackend(), "s1")
        session.set("a", 1)
        session.update({"b": 2, "c": 3})
        session.discard("a", "missing")

        assert session.get("a") is None
        assert session.get("a", "default") == "default"
        assert session.snapshot() == {"b": 2, "c": 3}

        session.clear()
        assert session.snapshot() == {}


class TestRedisSessionBackend:
    def test_apply_uses_transaction(self):
        client = MagicMock()
        pipe = client.pipeline.return_value
        with patch("redis.from_url", return_value=client) as from_url:
            backend = RedisSessionBackend("redis://localhost:6379/0", ttl_seconds=120)
            backend.apply("s1", {"open_id_state": "abc"}, removals=["open_id_authorize"])

        from_url.assert_called_once_with("redis://localhost:6379/0", decode_responses=True)
        client.pipeline.assert_called_once_with(transaction=True)
        pipe.hdel.assert_called_once_with("oidc:session:s1", "open_id_authorize")
        pipe.hset.assert_called_once_with(
            "oidc:session:s1", mapping={"open_id_state": json.dumps("abc")}
        )
        pipe.expire.assert_called_once_with("oidc:session:s1", 120)
        pipe.execute.assert_called_once()

    def test_load_decodes_values(self):
        client = MagicMock()
        client.hgetall.return_value = {"open_id_authorize": "true", "n": "1.5"}
        with patch("redis.from_url", return_value=client):
            backend = RedisSessionBackend("redis://localhost:6379/0")

        assert backend.load("s1") == {"open_id_authorize": True, "n": 1.5}
        client.hgetall.assert_called_once_with("oidc:session:s1")

    def test_delete(self):
        client = MagicMock()
        with patch("redis.from_url", return_value=client):
            backend = RedisSessionBackend("redis://localhost:6379/0")
        backend.delete("s1")
        client.delete.assert_called_once_with("oidc:session:s1")


class TestCreateSessionBackend:
    def test_memory_by_default(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        assert isinstance(create_session_backend(), MemorySessionBackend)

    def test_redis_from_env(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
        with patch("redis.from_url", return_value=MagicMock()) as from_url:
            backend = create_session_backend()
        assert isinstance(backend, RedisSessionBackend)
        from_url.assert_called_once_with("redis://cache:6379/1", decode_responses=True)
