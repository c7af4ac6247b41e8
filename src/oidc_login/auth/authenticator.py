"""Authorization-code login state machine.

``OpenIDAuthenticator.authenticate`` is called once per browser request:

* without ``code``/``error`` it starts an attempt and returns an
  ``AuthorizationRedirect`` to the provider;
* with them it validates the callback, exchanges the code, resolves claims
  and maps the caller to a local user, returning an ``AuthenticationResult``.

Suspicious or broken round trips raise ``ProtocolError``/``TransportError``
for the HTTP boundary to turn into a response. An unknown local user is a
normal negative outcome and returns a failed result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from oidc_login.auth.callback import (
    TokenExchanger,
    TokenSet,
    check_provider_error,
    validate_callback_state,
)
from oidc_login.auth.config import ProviderConfig
from oidc_login.auth.errors import (
    ConfigurationError,
    IdentityNotFoundError,
    ProtocolError,
    RedirectLoopError,
)
from oidc_login.auth.identity import IdentityMapper, UserDirectory
from oidc_login.auth.metadata import MetadataResolver, ProviderMetadata
from oidc_login.auth.pkce import PendingAttempt
from oidc_login.auth.request import build_authorization_url
from oidc_login.auth.result import AuthenticationResult
from oidc_login.auth.session import (
    ACCESS_TOKEN_KEY,
    END_SESSION_KEY,
    PROVIDER_KEY,
    SESSION_TOKEN_KEY,
    SessionState,
)
from oidc_login.auth.transport import ProviderHTTPClient
from oidc_login.utils.logging import sanitize_for_log

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationRedirect:
    url: str


AuthenticationStep = Union[AuthorizationRedirect, AuthenticationResult]


class OpenIDAuthenticator:
    def __init__(
        self,
        config: ProviderConfig,
        directory: UserDirectory,
        resolver: Optional[MetadataResolver] = None,
        http: Optional[ProviderHTTPClient] = None,
    ):
        self.config = config
        self.http = http or ProviderHTTPClient()
        self.resolver = resolver or MetadataResolver(self.http)
        self.exchanger = TokenExchanger(config, self.http)
        self.mapper: Optional[IdentityMapper] = None
        self.config_error: Optional[ConfigurationError] = None

        try:
            config.validate()
            self.mapper = IdentityMapper(config.username_mapping, directory)
        except ConfigurationError as exc:
            if not config.suppress_errors:
                raise
            logger.warning(
                "OpenID provider %s is misconfigured, logins will fail: %s",
                config.provider_id,
                sanitize_for_log(str(exc)),
            )
            self.config_error = exc

    @property
    def provider_id(self) -> str:
        return self.config.provider_id

    @property
    def is_usable(self) -> bool:
        return self.config_error is None

    async def authenticate(
        self,
        params: Mapping[str, Any],
        session: SessionState,
        host: Optional[str] = None,
    ) -> AuthenticationStep:
        if self.mapper is None:
            return AuthenticationResult.failed()

        if not params.get("code") and not params.get("error"):
            return await self.initiate(session, host)
        return await self.handle_callback(params, session, host)

    async def initiate(
        self, session: SessionState, host: Optional[str] = None
    ) -> AuthorizationRedirect:
        previous = PendingAttempt.load(session)
        if (
            previous is not None
            and previous.authorize_in_progress
            and not previous.is_expired(self.config.attempt_ttl_seconds)
        ):
            PendingAttempt.discard(session)
            logger.warning(
                "Redirect loop detected for provider %s", self.config.provider_id
            )
            raise RedirectLoopError("unable to redirect")

        metadata = await self.resolver.resolve(self.config.metadata_source)
        attempt = PendingAttempt.new(use_pkce=self.config.use_pkce)
        url = build_authorization_url(metadata, self.config, attempt, host)
        attempt.save(session)

        logger.info("Redirecting to provider %s for login", self.config.provider_id)
        return AuthorizationRedirect(url=url)

    async def handle_callback(
        self,
        params: Mapping[str, Any],
        session: SessionState,
        host: Optional[str] = None,
    ) -> AuthenticationResult:
        attempt = PendingAttempt.load(session)
        # single use, whatever the outcome
        PendingAttempt.discard(session)

        attempt = validate_callback_state(
            params.get("state"), attempt, self.config.attempt_ttl_seconds
        )
        check_provider_error(params)

        code = params.get("code")
        if not code:
            raise ProtocolError("Callback missing authorization code")

        metadata = await self.resolver.resolve(self.config.metadata_source)
        tokens = await self.exchanger.exchange_code(
            metadata, str(code), attempt.code_verifier, host
        )
        claims = await self.exchanger.fetch_claims(metadata, tokens, attempt.nonce)

        try:
            identity, user = await self.mapper.resolve(claims)
        except IdentityNotFoundError as exc:
            logger.info(
                "OpenID login via %s rejected: %s",
                self.config.provider_id,
                sanitize_for_log(str(exc)),
            )
            return AuthenticationResult.failed()

        self._store_tokens(session, tokens, metadata)

        email = claims.get(self.config.email_claim)
        if not isinstance(email, str) or not email:
            email = identity.value
        logger.info(
            "OpenID login via %s succeeded for %s",
            self.config.provider_id,
            sanitize_for_log(user.username),
        )
        return AuthenticationResult.succeeded(self.config.provider_id, user, email)

    def _store_tokens(
        self, session: SessionState, tokens: TokenSet, metadata: ProviderMetadata
    ) -> None:
        session.update(
            {
                ACCESS_TOKEN_KEY: tokens.access_token,
                SESSION_TOKEN_KEY: tokens.id_token,
                END_SESSION_KEY: metadata.end_session_endpoint,
                PROVIDER_KEY: self.config.provider_id,
            }
        )
