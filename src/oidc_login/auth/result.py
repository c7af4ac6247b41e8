from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from oidc_login.auth.identity import LocalUser


@dataclass(frozen=True)
class AuthenticationResult:
    """Outcome of a login attempt handed to the session-creation collaborator.

    A failed result carries no identity fields at all.
    """

    authorized: bool = False
    plugin: Optional[str] = None
    domain_uuid: Optional[str] = None
    domain_name: Optional[str] = None
    username: Optional[str] = None
    user_uuid: Optional[str] = None
    user_email: Optional[str] = None

    @classmethod
    def failed(cls) -> "AuthenticationResult":
        return cls(authorized=False)

    @classmethod
    def succeeded(
        cls, plugin: str, user: LocalUser, user_email: Optional[str]
    ) -> "AuthenticationResult":
        return cls(
            authorized=True,
            plugin=plugin,
            domain_uuid=user.domain_uuid,
            domain_name=user.domain_name,
            username=user.username,
            user_uuid=user.user_uuid,
            user_email=user_email,
        )

    def to_dict(self) -> dict[str, Any]:
        if not self.authorized:
            return {"authorized": False}
        return {
            "authorized": True,
            "plugin": self.plugin,
            "domain_uuid": self.domain_uuid,
            "domain_name": self.domain_name,
            "username": self.username,
            "user_uuid": self.user_uuid,
            "user_email": self.user_email,
        }
