"""Provider callback validation, code exchange and claim retrieval."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx
import jwt
from jwt import PyJWKClient

from oidc_login.auth.config import ClaimSource, ProviderConfig
from oidc_login.auth.errors import (
    InactiveTokenError,
    ProtocolError,
    ProviderError,
    StateMismatchError,
)
from oidc_login.auth.metadata import ProviderMetadata
from oidc_login.auth.pkce import PendingAttempt
from oidc_login.auth.transport import ProviderHTTPClient
from oidc_login.utils.logging import redact_token, sanitize_for_log

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenSet:
    access_token: str
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None

    @classmethod
    def from_response(cls, data: Mapping[str, Any]) -> "TokenSet":
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ProtocolError("Token response missing access_token")
        return cls(
            access_token=access_token,
            id_token=data.get("id_token") or None,
            refresh_token=data.get("refresh_token") or None,
            token_type=data.get("token_type") or "bearer",
            expires_in=data.get("expires_in"),
        )


def _raise_for_oauth_error(payload: Mapping[str, Any], stage: str) -> None:
    error = payload.get("error")
    if error:
        logger.warning(
            "Provider %s returned error %s: %s",
            stage,
            sanitize_for_log(error),
            sanitize_for_log(payload.get("error_description")),
        )
        raise ProtocolError(f"Provider {stage} returned an error")


def validate_callback_state(
    received_state: Optional[str],
    attempt: Optional[PendingAttempt],
    ttl_seconds: int,
) -> PendingAttempt:
    """Check the callback belongs to the live attempt of this session.

    This is the CSRF defense; nothing may talk to the token endpoint before
    it passes.
    """
    if attempt is None:
        raise StateMismatchError("No authorization attempt in progress")
    if not received_state or not secrets.compare_digest(
        received_state.encode(), attempt.state.encode()
    ):
        raise StateMismatchError(
            "Authorization server returned an invalid state parameter"
        )
    if attempt.is_expired(ttl_seconds):
        raise ProtocolError("Authorization attempt expired")
    return attempt


def check_provider_error(params: Mapping[str, Any]) -> None:
    error = params.get("error")
    if error:
        raise ProviderError(str(error), params.get("error_description"))


class TokenExchanger:
    """Exchange the authorization code and resolve the caller's claims."""

    ID_TOKEN_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384", "ES512"]
    JWT_LEEWAY_SECONDS = 60

    def __init__(self, config: ProviderConfig, http: Optional[ProviderHTTPClient] = None):
        self.config = config
        self.http = http or ProviderHTTPClient()

    async def exchange_code(
        self,
        metadata: ProviderMetadata,
        code: str,
        code_verifier: Optional[str],
        host: Optional[str] = None,
    ) -> TokenSet:
        metadata.require("token_endpoint")

        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.config.redirect_uri_for(host),
            "client_id": self.config.client_id,
        }
        if self.config.client_secret:
            payload["client_secret"] = self.config.client_secret
        if code_verifier:
            payload["code_verifier"] = code_verifier

        data = await self.http.post_form(metadata.token_endpoint, payload)
        _raise_for_oauth_error(data, "token exchange")
        tokens = TokenSet.from_response(data)
        logger.debug(
            "Token exchange for %s returned access token %s",
            self.config.provider_id,
            redact_token(tokens.access_token),
        )
        return tokens

    async def fetch_claims(
        self,
        metadata: ProviderMetadata,
        tokens: TokenSet,
        nonce: Optional[str] = None,
    ) -> dict[str, Any]:
        source = self.config.claim_source
        if source == ClaimSource.USERINFO:
            return await self._fetch_userinfo(metadata, tokens.access_token)
        if source == ClaimSource.INTROSPECTION:
            return await self._introspect(metadata, tokens.access_token)
        if source == ClaimSource.ID_TOKEN:
            return await self._verify_id_token(metadata, tokens.id_token, nonce)
        raise ProtocolError(f"Unsupported claim source: {source}")

    async def _fetch_userinfo(
        self, metadata: ProviderMetadata, access_token: str
    ) -> dict[str, Any]:
        metadata.require("userinfo_endpoint")
        claims = await self.http.get_json(
            metadata.userinfo_endpoint,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        _raise_for_oauth_error(claims, "userinfo")
        return claims

    async def _introspect(
        self, metadata: ProviderMetadata, access_token: str
    ) -> dict[str, Any]:
        metadata.require("introspection_endpoint")
        payload = {
            "token": access_token,
            "token_type_hint": "access_token",
            "client_id": self.config.client_id,
        }
        if self.config.client_secret:
            payload["client_secret"] = self.config.client_secret

        claims = await self.http.post_form(metadata.introspection_endpoint, payload)
        _raise_for_oauth_error(claims, "introspection")
        if claims.get("active") is not True:
            raise InactiveTokenError("Introspection reported an inactive token")
        return claims

    async def _verify_id_token(
        self,
        metadata: ProviderMetadata,
        id_token: Optional[str],
        nonce: Optional[str] = None,
    ) -> dict[str, Any]:
        if not id_token:
            raise ProtocolError("Token response missing id_token")
        if not metadata.jwks_uri:
            raise ProtocolError("Provider metadata missing jwks_uri")
        if not metadata.issuer:
            raise ProtocolError("Provider metadata missing issuer")

        try:
            jwk_client = PyJWKClient(metadata.jwks_uri)
            signing_key = jwk_client.get_signing_key_from_jwt(id_token)
            claims = jwt.decode(
                id_token,
                signing_key.key,
                algorithms=self.ID_TOKEN_ALGORITHMS,
                audience=self.config.client_id,
                issuer=metadata.issuer,
                options={"require": ["exp", "iat", "iss", "aud"]},
                leeway=self.JWT_LEEWAY_SECONDS,
            )
        except (jwt.PyJWTError, httpx.HTTPError, ValueError, KeyError) as exc:
            logger.warning(
                "ID token validation failed for %s: %s",
                self.config.provider_id,
                type(exc).__name__,
            )
            raise ProtocolError("ID token validation failed") from exc

        if nonce is not None:
            received = claims.get("nonce")
            if not isinstance(received, str) or not secrets.compare_digest(
                received.encode(), nonce.encode()
            ):
                raise ProtocolError("ID token nonce mismatch")
        return claims
