from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from oidc_login.auth.config import (
    DiscoveryDocument,
    MetadataSource,
    StaticEndpoints,
    ensure_https,
)
from oidc_login.auth.errors import MetadataError, TransportError
from oidc_login.auth.transport import ProviderHTTPClient
from oidc_login.utils.logging import sanitize_for_log

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderMetadata:
    authorization_endpoint: Optional[str] = None
    token_endpoint: Optional[str] = None
    userinfo_endpoint: Optional[str] = None
    introspection_endpoint: Optional[str] = None
    end_session_endpoint: Optional[str] = None
    jwks_uri: Optional[str] = None
    issuer: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def require(self, *names: str) -> None:
        """Raise ``MetadataError`` if any named endpoint is missing."""
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            raise MetadataError(
                "Provider metadata missing required endpoints: " + ", ".join(missing)
            )

    def to_dict(self) -> dict[str, Optional[str]]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _string_or_none(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_discovery_document(
    document: Mapping[str, Any], end_session_key: str = "end_session_endpoint"
) -> ProviderMetadata:
    return ProviderMetadata(
        authorization_endpoint=_string_or_none(document.get("authorization_endpoint")),
        token_endpoint=_string_or_none(document.get("token_endpoint")),
        userinfo_endpoint=_string_or_none(document.get("userinfo_endpoint")),
        introspection_endpoint=_string_or_none(document.get("introspection_endpoint")),
        end_session_endpoint=_string_or_none(document.get(end_session_key)),
        jwks_uri=_string_or_none(document.get("jwks_uri")),
        issuer=_string_or_none(document.get("issuer")),
    )


class MetadataResolver:
    """Resolve provider endpoints for one authentication attempt.

    Nothing is cached: every call fetches the discovery document again.
    Fetch or parse failures yield an empty ``ProviderMetadata``; callers
    decide which endpoints are fatal through ``ProviderMetadata.require``.
    """

    def __init__(self, http: Optional[ProviderHTTPClient] = None):
        self.http = http or ProviderHTTPClient()

    async def resolve(self, source: MetadataSource) -> ProviderMetadata:
        if isinstance(source, StaticEndpoints):
            return self._from_static(source)
        if isinstance(source, DiscoveryDocument):
            return await self._from_discovery(source)
        raise TypeError(f"Unsupported metadata source: {type(source).__name__}")

    @staticmethod
    def _from_static(source: StaticEndpoints) -> ProviderMetadata:
        def _https(url: Optional[str]) -> Optional[str]:
            return ensure_https(url) if url else None

        return ProviderMetadata(
            authorization_endpoint=_https(source.authorization_endpoint),
            token_endpoint=_https(source.token_endpoint),
            userinfo_endpoint=_https(source.userinfo_endpoint),
            introspection_endpoint=_https(source.introspection_endpoint),
            end_session_endpoint=_https(source.end_session_endpoint),
            jwks_uri=_https(source.jwks_uri),
            issuer=source.issuer or None,
        )

    async def _from_discovery(self, source: DiscoveryDocument) -> ProviderMetadata:
        url = ensure_https(source.url)
        if not url:
            logger.warning("No discovery document URL configured")
            return ProviderMetadata()

        try:
            document = await self.http.get_json(url)
        except TransportError as exc:
            logger.warning(
                "Failed to load discovery document %s: %s",
                sanitize_for_log(url),
                sanitize_for_log(str(exc)),
            )
            return ProviderMetadata()

        if "error" in document:
            logger.warning(
                "Discovery document %s returned error %s",
                sanitize_for_log(url),
                sanitize_for_log(document.get("error")),
            )
            return ProviderMetadata()

        metadata = parse_discovery_document(document, source.end_session_key)
        logger.debug("Resolved provider metadata from %s", sanitize_for_log(url))
        return metadata
