from __future__ import annotations

from typing import Optional
from urllib.parse import parse_qsl

import httpx
import pytest

from oidc_login.auth.identity import LocalUser, UserDirectory
from oidc_login.auth.session import MemorySessionBackend, SessionState
from oidc_login.auth.transport import ProviderHTTPClient
from oidc_login.settings import Settings

ISSUER = "https://idp.example.com"
DISCOVERY_PATH = "/.well-known/openid-configuration"
OKTA_DISCOVERY_PATH = "/oauth2/.well-known/oauth-authorization-server"


class FakeIdentityProvider:
    """Scriptable identity provider served through httpx.MockTransport."""

    def __init__(self):
        self.discovery = {
            "issuer": ISSUER,
            "authorization_endpoint": f"{ISSUER}/authorize",
            "token_endpoint": f"{ISSUER}/token",
            "userinfo_endpoint": f"{ISSUER}/userinfo",
            "introspection_endpoint": f"{ISSUER}/introspect",
            "end_session_endpoint": f"{ISSUER}/logout",
            "jwks_uri": f"{ISSUER}/jwks",
        }
        self.token_status = 200
        self.token_response = {
            "access_token": "access-123",
            "id_token": "id-456",
            "token_type": "Bearer",
            "expires_in": 3600,
        }
        self.userinfo = {"sub": "abc", "email": "alice@example.com"}
        self.introspection = {
            "active": True,
            "sub": "abc",
            "username": "alice@example.com",
        }
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in (DISCOVERY_PATH, OKTA_DISCOVERY_PATH):
            return httpx.Response(200, json=self.discovery)
        if path == "/token":
            return httpx.Response(self.token_status, json=self.token_response)
        if path == "/userinfo":
            return httpx.Response(200, json=self.userinfo)
        if path == "/introspect":
            return httpx.Response(200, json=self.introspection)
        return httpx.Response(404, json={"error": "not_found"})

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def form(self, path: str) -> dict[str, str]:
        """Form body of the last request made to ``path``."""
        for request in reversed(self.requests):
            if request.url.path == path:
                return dict(parse_qsl(request.content.decode()))
        raise AssertionError(f"no request to {path}")


class InMemoryDirectory(UserDirectory):
    COLUMNS = {"user_uuid", "username", "user_email", "domain_uuid"}

    def __init__(self, rows: Optional[list[dict]] = None):
        self.rows = list(rows or [])
        self.queries: list[tuple[str, str]] = []

    def is_mappable_column(self, column: str) -> bool:
        return column in self.COLUMNS

    async def find_enabled_users(
        self, column: str, value: str, limit: int = 2
    ) -> list[LocalUser]:
        self.queries.append((column, value))
        matches = [
            row
            for row in self.rows
            if row.get("user_enabled", True) and row.get(column) == value
        ]
        return [
            LocalUser(
                user_uuid=row["user_uuid"],
                username=row["username"],
                domain_uuid=row.get("domain_uuid"),
                domain_name=row.get("domain_name"),
            )
            for row in matches[:limit]
        ]


ALICE = {
    "user_uuid": "4f6c3a1e-0d7b-4c59-9a3e-1b2c3d4e5f60",
    "username": "alice",
    "user_email": "alice@example.com",
    "domain_uuid": "9a8b7c6d-5e4f-4a3b-8c2d-1e0f9a8b7c6d",
    "domain_name": "pbx.example.com",
}


def _google_settings(**overrides) -> Settings:
    values = {
        "enabled": True,
        "providers": "google",
        "google_client_id": "client-1",
        "google_client_secret": "secret-1",
        "google_redirect_uri": "https://{domain_name}/open_id?action={provider}",
        "google_username_mapping": "email=user_email",
        "google_metadata_domain": "idp.example.com",
        "google_metadata_path": DISCOVERY_PATH,
    }
    values.update(overrides)
    return Settings.from_dict({"open_id": values})


@pytest.fixture
def alice() -> dict:
    return dict(ALICE)


@pytest.fixture
def google_settings():
    """Factory for settings of a working Google provider; keyword overrides win."""
    return _google_settings


@pytest.fixture
def make_directory():
    return InMemoryDirectory


@pytest.fixture
def fake_idp() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def provider_http(fake_idp: FakeIdentityProvider) -> ProviderHTTPClient:
    return ProviderHTTPClient(transport=httpx.MockTransport(fake_idp.handler))


@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory([dict(ALICE)])


@pytest.fixture
def session_backend() -> MemorySessionBackend:
    return MemorySessionBackend()


@pytest.fixture
def session(session_backend: MemorySessionBackend) -> SessionState:
    return SessionState(session_backend, "session-1")
