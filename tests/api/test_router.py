from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from oidc_login.api import create_app
from oidc_login.api.router import SESSION_COOKIE

BASE_URL = "https://login.example.com"


def _state_of(location: str) -> str:
    return parse_qs(urlsplit(location).query)["state"][0]


@pytest.fixture
def make_app(google_settings, directory, session_backend, provider_http):
    def _make(**overrides):
        return create_app(
            settings=google_settings(**overrides),
            directory=directory,
            session_backend=session_backend,
            http=provider_http,
        )

    return _make


@pytest_asyncio.fixture
async def client(make_app):
    transport = ASGITransport(app=make_app())
    async with AsyncClient(transport=transport, base_url=BASE_URL) as client:
        yield client


async def _login(client: AsyncClient):
    start = await client.get("/open_id", params={"action": "google"})
    state = _state_of(start.headers["location"])
    return await client.get(
        "/open_id", params={"action": "google", "code": "code-1", "state": state}
    )


class TestLogin:
    @pytest.mark.asyncio
    async def test_initiation_redirects_to_provider(self, client):
        response = await client.get("/open_id", params={"action": "google"})

        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith("https://idp.example.com/authorize?")
        query = parse_qs(urlsplit(location).query)
        assert query["redirect_uri"] == ["https://login.example.com/open_id?action=google"]
        assert query["code_challenge_method"] == ["S256"]

        cookie = response.headers["set-cookie"].lower()
        assert f"{SESSION_COOKIE}=" in cookie
        assert "httponly" in cookie
        assert "secure" in cookie
        assert "samesite=lax" in cookie

    @pytest.mark.asyncio
    async def test_full_login(self, client, session_backend, fake_idp):
        await client.get("/open_id", params={"action": "google"})
        first_session_id = client.cookies.get(SESSION_COOKIE)

        start_state = session_backend.load(first_session_id)["open_id_state"]
        response = await client.get(
            "/open_id",
            params={"action": "google", "code": "code-1", "state": start_state},
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/core/dashboard"

        session_id = client.cookies.get(SESSION_COOKIE)
        assert session_id != first_session_id
        assert session_backend.load(first_session_id) == {}

        data = session_backend.load(session_id)
        assert data["authorized"] is True
        assert data["user"]["username"] == "alice"
        assert data["user"]["plugin"] == "google"
        assert fake_idp.form("/token")["redirect_uri"] == (
            "https://login.example.com/open_id?action=google"
        )

    @pytest.mark.asyncio
    async def test_custom_destination(self, make_app):
        app = make_app()
        app.state.settings = app.state.settings.with_overrides(
            {("login", "destination"): "/home"}
        )
        async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE_URL) as client:
            response = await _login(client)

        assert response.headers["location"] == "/home"

    @pytest.mark.asyncio
    async def test_state_mismatch(self, client, fake_idp):
        await client.get("/open_id", params={"action": "google"})

        response = await client.get(
            "/open_id", params={"action": "google", "code": "code-1", "state": "forged"}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == (
            "Authorization server returned an invalid state parameter"
        )
        assert "/token" not in fake_idp.paths()

    @pytest.mark.asyncio
    async def test_redirect_loop(self, client):
        await client.get("/open_id", params={"action": "google"})

        response = await client.get("/open_id", params={"action": "google"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Unable to redirect to the identity provider"

    @pytest.mark.asyncio
    async def test_provider_error(self, client):
        start = await client.get("/open_id", params={"action": "google"})

        response = await client.get(
            "/open_id",
            params={
                "action": "google",
                "error": "access_denied",
                "state": _state_of(start.headers["location"]),
            },
        )

        assert response.status_code == 400
        assert "access_denied" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_unknown_user(self, client, fake_idp, session_backend):
        fake_idp.userinfo = {"email": "mallory@example.com"}

        response = await _login(client)

        assert response.status_code == 401
        data = session_backend.load(client.cookies.get(SESSION_COOKIE))
        assert "user" not in data

    @pytest.mark.asyncio
    async def test_token_endpoint_down(self, client, fake_idp):
        fake_idp.token_status = 503
        fake_idp.token_response = {"message": "unavailable"}

        response = await _login(client)

        assert response.status_code == 401
        assert response.json()["detail"] == "Authentication failed"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [{}, {"action": ""}, {"action": "facebook"}])
    async def test_unknown_provider(self, client, params):
        response = await client.get("/open_id", params=params)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_action_is_sanitized(self, client):
        response = await client.get("/open_id", params={"action": "../google"})
        assert response.status_code == 302

    @pytest.mark.asyncio
    async def test_disabled(self, make_app):
        app = make_app(enabled=False)
        async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE_URL) as client:
            response = await client.get("/open_id", params={"action": "google"})

        assert response.status_code == 404


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_ends_provider_session(self, client, session_backend):
        await _login(client)
        session_id = client.cookies.get(SESSION_COOKIE)

        response = await client.get("/open_id/logout")

        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith("https://idp.example.com/logout?")
        assert parse_qs(urlsplit(location).query)["id_token_hint"] == ["id-456"]
        assert session_backend.load(session_id) == {}

    @pytest.mark.asyncio
    async def test_logout_with_post_logout_redirect(self, make_app):
        app = make_app(google_post_logout_redirect_uri="https://{domain_name}/")
        async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE_URL) as client:
            await _login(client)
            response = await client.get("/open_id/logout")

        query = parse_qs(urlsplit(response.headers["location"]).query)
        assert query["post_logout_redirect_uri"] == ["https://login.example.com/"]

    @pytest.mark.asyncio
    async def test_logout_without_session(self, client):
        response = await client.get("/open_id/logout")

        assert response.status_code == 302
        assert response.headers["location"] == "/"

    @pytest.mark.asyncio
    async def test_logout_without_provider_tokens(self, client, session_backend):
        await client.get("/open_id", params={"action": "google"})
        session_id = client.cookies.get(SESSION_COOKIE)

        response = await client.get("/open_id/logout")

        assert response.headers["location"] == "/"
        assert session_backend.load(session_id) == {}
