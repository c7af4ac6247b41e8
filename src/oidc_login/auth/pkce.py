"""CSRF state and PKCE (RFC 7636) values for one authorization attempt."""

from __future__ import annotations

import base64
import hashlib
import secrets
import time
from dataclasses import dataclass
from typing import Optional

from oidc_login.auth.session import (
    AUTHORIZE_KEY,
    CODE_VERIFIER_KEY,
    CREATED_AT_KEY,
    NONCE_KEY,
    PENDING_ATTEMPT_KEYS,
    STATE_KEY,
    SessionState,
)

STATE_BYTES = 32
CODE_VERIFIER_BYTES = 64
NONCE_BYTES = 32


def generate_state() -> str:
    return secrets.token_urlsafe(STATE_BYTES)


def generate_code_verifier() -> str:
    # 64 random bytes encode to 86 characters, inside RFC 7636's 43-128 range.
    return secrets.token_urlsafe(CODE_VERIFIER_BYTES)


def generate_nonce() -> str:
    return secrets.token_urlsafe(NONCE_BYTES)


def code_challenge(code_verifier: str) -> str:
    """S256 challenge: base64url without padding of SHA-256(verifier)."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


@dataclass
class PendingAttempt:
    """An authorization attempt waiting for the provider callback."""

    state: str
    code_verifier: Optional[str]
    authorize_in_progress: bool = False
    created_at: float = 0.0
    nonce: Optional[str] = None

    @classmethod
    def new(cls, use_pkce: bool = True) -> "PendingAttempt":
        return cls(
            state=generate_state(),
            code_verifier=generate_code_verifier() if use_pkce else None,
            authorize_in_progress=False,
            created_at=time.time(),
            nonce=generate_nonce(),
        )

    @property
    def code_challenge(self) -> Optional[str]:
        if self.code_verifier is None:
            return None
        return code_challenge(self.code_verifier)

    def is_expired(self, ttl_seconds: int, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now - self.created_at > ttl_seconds

    @classmethod
    def load(cls, session: SessionState) -> Optional["PendingAttempt"]:
        data = session.snapshot()
        state = data.get(STATE_KEY)
        if not state:
            return None
        return cls(
            state=state,
            code_verifier=data.get(CODE_VERIFIER_KEY),
            authorize_in_progress=bool(data.get(AUTHORIZE_KEY, False)),
            created_at=float(data.get(CREATED_AT_KEY) or 0.0),
            nonce=data.get(NONCE_KEY),
        )

    def save(self, session: SessionState) -> None:
        """Replace whatever attempt the session holds with this one."""
        session.update(
            {
                STATE_KEY: self.state,
                CODE_VERIFIER_KEY: self.code_verifier,
                AUTHORIZE_KEY: self.authorize_in_progress,
                CREATED_AT_KEY: self.created_at,
                NONCE_KEY: self.nonce,
            }
        )

    @staticmethod
    def discard(session: SessionState) -> None:
        session.discard(*PENDING_ATTEMPT_KEYS)
