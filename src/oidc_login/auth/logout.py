from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

from oidc_login.auth.session import (
    END_SESSION_KEY,
    PROVIDER_KEY,
    PROVIDER_SESSION_KEYS,
    SESSION_TOKEN_KEY,
    SessionState,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogoutOutcome:
    redirect_url: Optional[str] = None
    session_cleared: bool = False


def build_end_session_url(
    end_session_endpoint: str,
    id_token_hint: str,
    post_logout_redirect_uri: Optional[str] = None,
) -> str:
    params = {"id_token_hint": id_token_hint}
    if post_logout_redirect_uri:
        params["post_logout_redirect_uri"] = post_logout_redirect_uri

    scheme, netloc, path, query, fragment = urlsplit(end_session_endpoint)
    encoded = urlencode(params)
    query = f"{query}&{encoded}" if query else encoded
    return urlunsplit((scheme, netloc, path, query, fragment))


class LogoutCoordinator:
    """End the provider session and drop local login state."""

    def logout(
        self,
        session: SessionState,
        post_logout_redirect_uri: Optional[str] = None,
    ) -> LogoutOutcome:
        data = session.snapshot()
        token = data.get(SESSION_TOKEN_KEY)
        end_session = data.get(END_SESSION_KEY)

        if not token:
            session.discard(*PROVIDER_SESSION_KEYS)
            return LogoutOutcome()

        redirect_url = None
        if end_session:
            redirect_url = build_end_session_url(
                end_session, token, post_logout_redirect_uri
            )
        session.clear()
        logger.info(
            "Logged out of provider %s (remote end-session: %s)",
            data.get(PROVIDER_KEY) or "unknown",
            "yes" if redirect_url else "no",
        )
        return LogoutOutcome(redirect_url=redirect_url, session_cleared=True)
