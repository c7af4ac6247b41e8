"""Provider configuration value types.

Providers differ only in where their endpoints come from and which claims
they return, so a single ``ProviderConfig`` shape covers all of them:

* metadata source: ``DiscoveryDocument`` (fetched JSON) or ``StaticEndpoints``
* claim source: userinfo endpoint, token introspection, or the ID token
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union
from urllib.parse import urlsplit, urlunsplit

from oidc_login.auth.errors import ConfigurationError

DEFAULT_SCOPE = "openid email profile"
DEFAULT_ATTEMPT_TTL_SECONDS = 600


class ClaimSource(str, Enum):
    USERINFO = "userinfo"
    INTROSPECTION = "introspection"
    ID_TOKEN = "id_token"


DOMAIN_PLACEHOLDERS = ("{domain_name}", "{$domain_name}")
PROVIDER_PLACEHOLDERS = ("{provider}", "{$plugin}")


def ensure_https(url: str | None) -> str:
    """Force an https scheme onto a metadata URL.

    ``http://`` is upgraded in any letter case and a bare host gets
    ``https://`` prepended. Any other scheme raises ``ConfigurationError``.
    """
    if not url:
        return ""
    url = url.strip()
    parts = urlsplit(url)
    if not parts.netloc:
        return "https://" + url
    # urlsplit lowercases the scheme
    if parts.scheme not in ("", "http", "https"):
        raise ConfigurationError(f"Unsupported URL scheme: {parts.scheme}")
    return urlunsplit(("https", parts.netloc, parts.path, parts.query, parts.fragment))


def _require_https_url(name: str, url: str) -> None:
    parsed = urlsplit(url)
    if parsed.scheme != "https" or not parsed.netloc:
        raise ConfigurationError(f"{name} must be a valid https URL")


@dataclass(frozen=True)
class DiscoveryDocument:
    """Endpoints published in a JSON discovery document."""

    url: str
    end_session_key: str = "end_session_endpoint"

    def validate(self) -> None:
        if not self.url:
            raise ConfigurationError("Discovery document URL must not be empty")
        _require_https_url("Discovery document URL", ensure_https(self.url))


@dataclass(frozen=True)
class StaticEndpoints:
    """Endpoints taken directly from configuration."""

    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: Optional[str] = None
    introspection_endpoint: Optional[str] = None
    end_session_endpoint: Optional[str] = None
    jwks_uri: Optional[str] = None
    issuer: Optional[str] = None

    def validate(self) -> None:
        if not self.authorization_endpoint:
            raise ConfigurationError("authorization_endpoint must not be empty")
        if not self.token_endpoint:
            raise ConfigurationError("token_endpoint must not be empty")
        _require_https_url(
            "authorization_endpoint", ensure_https(self.authorization_endpoint)
        )
        _require_https_url("token_endpoint", ensure_https(self.token_endpoint))
        for name in (
            "userinfo_endpoint",
            "introspection_endpoint",
            "end_session_endpoint",
            "jwks_uri",
        ):
            value = getattr(self, name)
            if value:
                _require_https_url(name, ensure_https(value))


MetadataSource = Union[DiscoveryDocument, StaticEndpoints]


@dataclass(frozen=True)
class ProviderConfig:
    provider_id: str
    client_id: str
    client_secret: str
    redirect_uri: str
    username_mapping: str
    metadata_source: MetadataSource
    claim_source: ClaimSource = ClaimSource.USERINFO
    scope: str = DEFAULT_SCOPE
    email_claim: str = "email"
    use_pkce: bool = True
    extra_authorization_params: tuple[tuple[str, str], ...] = field(
        default_factory=tuple
    )
    post_logout_redirect_uri: Optional[str] = None
    suppress_errors: bool = True
    attempt_ttl_seconds: int = DEFAULT_ATTEMPT_TTL_SECONDS
    display_name: Optional[str] = None

    def validate(self) -> None:
        """Check the provider-level settings; the mapping is checked separately."""
        if not self.client_id:
            raise ConfigurationError(f"{self.provider_id}_client_id must not be empty")
        if not self.redirect_uri:
            raise ConfigurationError(
                f"{self.provider_id}_redirect_uri must not be empty"
            )
        self.metadata_source.validate()

        source = self.metadata_source
        if self.claim_source == ClaimSource.ID_TOKEN and isinstance(
            source, StaticEndpoints
        ):
            if not source.issuer or not source.jwks_uri:
                raise ConfigurationError(
                    f"{self.provider_id} verifies ID tokens and needs both "
                    "issuer and jwks_uri"
                )

    def _expand_placeholders(self, uri: str, host: Optional[str]) -> Optional[str]:
        """Expand host and provider placeholders in a URI template.

        Both ``{domain_name}``/``{provider}`` and ``{$domain_name}``/``{$plugin}``
        are accepted. Returns None when the template needs a host and none is
        known.
        """
        for placeholder in DOMAIN_PLACEHOLDERS:
            if placeholder in uri:
                if not host:
                    return None
                uri = uri.replace(placeholder, host)
        for placeholder in PROVIDER_PLACEHOLDERS:
            uri = uri.replace(placeholder, self.provider_id)
        return uri

    def redirect_uri_for(self, host: Optional[str] = None) -> str:
        uri = self._expand_placeholders(self.redirect_uri, host)
        if uri is None:
            raise ConfigurationError(
                "redirect_uri uses {domain_name} but no request host is known"
            )
        return uri

    def post_logout_redirect_uri_for(self, host: Optional[str] = None) -> Optional[str]:
        if not self.post_logout_redirect_uri:
            return None
        return self._expand_placeholders(self.post_logout_redirect_uri, host)
