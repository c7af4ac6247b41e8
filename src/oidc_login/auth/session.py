"""Server-held session state for the login round trip.

The login flow spans several HTTP requests, so the pending attempt and the
provider tokens live in a per-session key/value store. Backends apply each
change set atomically; concurrent requests for one session are
last-writer-wins.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL_SECONDS = 3600

STATE_KEY = "open_id_state"
CODE_VERIFIER_KEY = "open_id_code_verifier"
AUTHORIZE_KEY = "open_id_authorize"
CREATED_AT_KEY = "open_id_created_at"
PROVIDER_KEY = "open_id_provider"
ACCESS_TOKEN_KEY = "open_id_access_token"
SESSION_TOKEN_KEY = "open_id_session_token"
END_SESSION_KEY = "open_id_end_session"
NONCE_KEY = "open_id_nonce"

PENDING_ATTEMPT_KEYS = (
    STATE_KEY,
    CODE_VERIFIER_KEY,
    NONCE_KEY,
    AUTHORIZE_KEY,
    CREATED_AT_KEY,
)
TOKEN_KEYS = (ACCESS_TOKEN_KEY, SESSION_TOKEN_KEY, END_SESSION_KEY)
PROVIDER_SESSION_KEYS = PENDING_ATTEMPT_KEYS + TOKEN_KEYS + (PROVIDER_KEY,)


class SessionBackend(ABC):
    """Abstract base class for session storage backends."""

    @abstractmethod
    def load(self, session_id: str) -> dict[str, Any]:
        """Return a copy of the session data (empty when unknown)."""
        pass

    @abstractmethod
    def apply(
        self,
        session_id: str,
        updates: Mapping[str, Any],
        removals: Iterable[str] = (),
    ) -> None:
        """Atomically set ``updates`` and delete ``removals``."""
        pass

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Drop the whole session."""
        pass


class MemorySessionBackend(SessionBackend):
    """In-process session storage (default, single worker only)."""

    def __init__(self, ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS) -> None:
        self.ttl_seconds = ttl_seconds
        self._store: Dict[str, Tuple[float, dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def load(self, session_id: str) -> dict[str, Any]:
        with self._lock:
            entry = self._store.get(session_id)
            if not entry:
                return {}
            expires_at, data = entry
            if time.time() > expires_at:
                self._store.pop(session_id, None)
                return {}
            return dict(data)

    def apply(
        self,
        session_id: str,
        updates: Mapping[str, Any],
        removals: Iterable[str] = (),
    ) -> None:
        with self._lock:
            entry = self._store.get(session_id)
            data = dict(entry[1]) if entry and time.time() <= entry[0] else {}
            for key in removals:
                data.pop(key, None)
            data.update(updates)
            self._store[session_id] = (time.time() + self.ttl_seconds, data)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._store.pop(session_id, None)


class RedisSessionBackend(SessionBackend):
    """Redis-backed session storage for multi-worker deployments.

    Each session is a hash of JSON-encoded values under ``oidc:session:<id>``.
    """

    KEY_PREFIX = "oidc:session:"

    def __init__(
        self, redis_url: str, ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS
    ) -> None:
        import redis

        self.ttl_seconds = ttl_seconds
        self._client = redis.from_url(redis_url, decode_responses=True)
        logger.info("Redis session store configured: %s", redis_url.split("@")[-1])

    def _key(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}{session_id}"

    def load(self, session_id: str) -> dict[str, Any]:
        raw = self._client.hgetall(self._key(session_id))
        return {field: json.loads(value) for field, value in raw.items()}

    def apply(
        self,
        session_id: str,
        updates: Mapping[str, Any],
        removals: Iterable[str] = (),
    ) -> None:
        key = self._key(session_id)
        removals = [field for field in removals if field not in updates]
        pipe = self._client.pipeline(transaction=True)
        if removals:
            pipe.hdel(key, *removals)
        if updates:
            pipe.hset(
                key,
                mapping={field: json.dumps(value) for field, value in updates.items()},
            )
        pipe.expire(key, self.ttl_seconds)
        pipe.execute()

    def delete(self, session_id: str) -> None:
        self._client.delete(self._key(session_id))


def create_session_backend(
    redis_url: Optional[str] = None,
    ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
) -> SessionBackend:
    """Create the session backend.

    Uses Redis when a URL is given or REDIS_URL is set, memory otherwise.
    """
    url = redis_url or os.getenv("REDIS_URL")
    if url:
        return RedisSessionBackend(url, ttl_seconds=ttl_seconds)
    return MemorySessionBackend(ttl_seconds=ttl_seconds)


class SessionState:
    """Session state of one browser session, bound to a backend."""

    def __init__(self, backend: SessionBackend, session_id: str):
        self.backend = backend
        self.session_id = session_id

    def get(self, key: str, default: Any = None) -> Any:
        return self.backend.load(self.session_id).get(key, default)

    def snapshot(self) -> dict[str, Any]:
        return self.backend.load(self.session_id)

    def set(self, key: str, value: Any) -> None:
        self.backend.apply(self.session_id, {key: value})

    def update(self, values: Mapping[str, Any]) -> None:
        self.backend.apply(self.session_id, dict(values))

    def discard(self, *keys: str) -> None:
        self.backend.apply(self.session_id, {}, keys)

    def clear(self) -> None:
        self.backend.delete(self.session_id)
