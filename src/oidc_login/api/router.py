"""HTTP entry points for OpenID login and logout.

This is the boundary of the login core: it binds the browser's session,
dispatches to the provider named by ``action``, and turns core outcomes and
errors into redirects or terminal error responses.
"""

from __future__ import annotations

import logging
import secrets
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse

from oidc_login.api.schemas import CallbackParams
from oidc_login.auth.authenticator import AuthorizationRedirect, OpenIDAuthenticator
from oidc_login.auth.errors import (
    OpenIDError,
    ProviderError,
    RedirectLoopError,
    StateMismatchError,
)
from oidc_login.auth.providers import CATEGORY, sanitize_provider_id
from oidc_login.auth.session import PROVIDER_KEY, SessionState
from oidc_login.settings import Settings
from oidc_login.utils.logging import sanitize_for_log

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/open_id", tags=["open_id"])

SESSION_COOKIE = "oidc_session"
USER_KEY = "user"
AUTHORIZED_KEY = "authorized"

DEFAULT_LOGIN_DESTINATION = "/core/dashboard"
DEFAULT_LOGOUT_DESTINATION = "/"


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _bind_session(request: Request) -> tuple[SessionState, bool]:
    session_id = request.cookies.get(SESSION_COOKIE)
    is_new = not session_id
    if is_new:
        session_id = secrets.token_urlsafe(32)
    return SessionState(request.app.state.session_backend, session_id), is_new


def _set_session_cookie(
    response: RedirectResponse, session: SessionState, settings: Settings
) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        session.session_id,
        httponly=True,
        samesite="lax",
        secure=settings.get_bool(CATEGORY, "cookie_secure", True),
    )


def _rotate_session(session: SessionState) -> SessionState:
    """Move the session data to a fresh id after login."""
    rotated = SessionState(session.backend, secrets.token_urlsafe(32))
    rotated.update(session.snapshot())
    session.clear()
    return rotated


def _lookup_authenticator(
    request: Request, provider_id: Optional[str]
) -> Optional[OpenIDAuthenticator]:
    if not provider_id:
        return None
    return request.app.state.authenticators.get(provider_id)


def _abort_detail(exc: OpenIDError) -> str:
    if isinstance(exc, RedirectLoopError):
        return "Unable to redirect to the identity provider"
    if isinstance(exc, StateMismatchError):
        return "Authorization server returned an invalid state parameter"
    if isinstance(exc, ProviderError):
        return f"Authorization server returned an error: {sanitize_for_log(exc.error, 100)}"
    return "Authentication failed"


@router.get("")
async def open_id_login(
    request: Request,
    params: Annotated[CallbackParams, Depends()],
    settings: Annotated[Settings, Depends(get_settings)],
) -> RedirectResponse:
    if not params.action or not settings.get_bool(CATEGORY, "enabled", False):
        raise HTTPException(status_code=404, detail="Not found")

    provider_id = sanitize_provider_id(params.action)
    authenticator = _lookup_authenticator(request, provider_id)
    if authenticator is None:
        raise HTTPException(status_code=404, detail="Not found")

    session, is_new = _bind_session(request)
    host = request.headers.get("host") or request.url.netloc

    try:
        step = await authenticator.authenticate(
            params.callback_values(), session, host=host
        )
    except (RedirectLoopError, StateMismatchError, ProviderError) as exc:
        logger.warning(
            "OpenID login via %s aborted: %s",
            provider_id,
            sanitize_for_log(str(exc)),
        )
        raise HTTPException(status_code=400, detail=_abort_detail(exc))
    except OpenIDError as exc:
        logger.error(
            "OpenID login via %s failed: %s (%s)",
            provider_id,
            sanitize_for_log(str(exc)),
            type(exc).__name__,
        )
        raise HTTPException(status_code=401, detail="Authentication failed")

    if isinstance(step, AuthorizationRedirect):
        response = RedirectResponse(step.url, status_code=302)
        if is_new:
            _set_session_cookie(response, session, settings)
        return response

    if not step.authorized:
        raise HTTPException(status_code=401, detail="Authentication failed")

    session.update({AUTHORIZED_KEY: True, USER_KEY: step.to_dict()})
    session = _rotate_session(session)

    destination = settings.get("login", "destination", DEFAULT_LOGIN_DESTINATION)
    response = RedirectResponse(destination, status_code=302)
    _set_session_cookie(response, session, settings)
    return response


@router.get("/logout")
async def open_id_logout(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> RedirectResponse:
    destination = settings.get(
        "login", "logout_destination", DEFAULT_LOGOUT_DESTINATION
    )
    session_id = request.cookies.get(SESSION_COOKIE)
    if not session_id:
        return RedirectResponse(destination, status_code=302)

    session = SessionState(request.app.state.session_backend, session_id)
    authenticator = _lookup_authenticator(request, session.get(PROVIDER_KEY))
    host = request.headers.get("host") or request.url.netloc
    post_logout = (
        authenticator.config.post_logout_redirect_uri_for(host)
        if authenticator is not None
        else None
    )

    outcome = request.app.state.logout_coordinator.logout(session, post_logout)
    if not outcome.session_cleared:
        session.discard(USER_KEY, AUTHORIZED_KEY)

    response = RedirectResponse(outcome.redirect_url or destination, status_code=302)
    if outcome.session_cleared:
        response.delete_cookie(SESSION_COOKIE)
    return response
