"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from oidc_login import __version__
from oidc_login.api.router import router
from oidc_login.auth.identity import SqlUserDirectory, UserDirectory
from oidc_login.auth.logout import LogoutCoordinator
from oidc_login.auth.providers import CATEGORY, build_authenticators
from oidc_login.auth.session import (
    DEFAULT_SESSION_TTL_SECONDS,
    SessionBackend,
    create_session_backend,
)
from oidc_login.auth.transport import ProviderHTTPClient
from oidc_login.db import close_engine
from oidc_login.settings import Settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await close_engine()


def create_app(
    settings: Optional[Settings] = None,
    directory: Optional[UserDirectory] = None,
    session_backend: Optional[SessionBackend] = None,
    http: Optional[ProviderHTTPClient] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    directory = directory or SqlUserDirectory()
    if session_backend is None:
        session_backend = create_session_backend(
            settings.get(CATEGORY, "session_backend_url"),
            ttl_seconds=settings.get_int(
                CATEGORY, "session_ttl", DEFAULT_SESSION_TTL_SECONDS
            ),
        )

    app = FastAPI(title="OIDC Login", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.session_backend = session_backend
    app.state.logout_coordinator = LogoutCoordinator()
    if settings.get_bool(CATEGORY, "enabled", False):
        app.state.authenticators = build_authenticators(settings, directory, http=http)
    else:
        app.state.authenticators = {}
    logger.info(
        "OpenID login providers enabled: %s",
        ", ".join(sorted(app.state.authenticators)) or "none",
    )

    app.include_router(router)
    return app
