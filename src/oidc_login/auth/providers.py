"""Provider catalogue.

Each supported provider is a function turning ``open_id`` settings into a
``ProviderConfig``. Provider names are what the login entry point receives
in its ``action`` parameter.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional
from urllib.parse import unquote

from oidc_login.auth.authenticator import OpenIDAuthenticator
from oidc_login.auth.config import (
    DEFAULT_ATTEMPT_TTL_SECONDS,
    ClaimSource,
    DiscoveryDocument,
    MetadataSource,
    ProviderConfig,
    StaticEndpoints,
    ensure_https,
)
from oidc_login.auth.errors import ConfigurationError
from oidc_login.auth.identity import UserDirectory
from oidc_login.auth.metadata import MetadataResolver
from oidc_login.auth.transport import ProviderHTTPClient
from oidc_login.settings import Settings

logger = logging.getLogger(__name__)

CATEGORY = "open_id"

ProviderFactory = Callable[[Settings], ProviderConfig]


def sanitize_provider_id(action: Optional[str]) -> str:
    if not action:
        return ""
    return re.sub(r"[^a-zA-Z0-9_]", "", unquote(action))


def _common(settings: Settings, provider_id: str) -> dict:
    def get(key: str, default=None):
        return settings.get(CATEGORY, f"{provider_id}_{key}", default)

    return {
        "provider_id": provider_id,
        "client_id": get("client_id") or "",
        "client_secret": get("client_secret") or "",
        "redirect_uri": get("redirect_uri") or "",
        "username_mapping": get("username_mapping") or "",
        "use_pkce": settings.get_bool(CATEGORY, f"{provider_id}_use_pkce", True),
        "post_logout_redirect_uri": get("post_logout_redirect_uri") or None,
        "suppress_errors": settings.get_bool(CATEGORY, "suppress_errors", True),
        "attempt_ttl_seconds": settings.get_int(
            CATEGORY, "attempt_ttl", DEFAULT_ATTEMPT_TTL_SECONDS
        ),
    }


def _metadata_base(domain: str) -> str:
    # a bad scheme is left in place for DiscoveryDocument.validate to reject
    try:
        return ensure_https(domain)
    except ConfigurationError:
        return domain


def google_metadata_url(domain: Optional[str], path: Optional[str]) -> str:
    if not domain or not path:
        return ""
    if not path.startswith("/"):
        path = "/" + path
    return _metadata_base(domain).rstrip("/") + path


def okta_metadata_url(domain: Optional[str], server: Optional[str] = None) -> str:
    if not domain:
        return ""
    base = _metadata_base(domain)
    if not base.endswith("/"):
        base += "/"
    server = (server or "").strip()
    if server and not server.startswith("/"):
        server = "/" + server
    return f"{base}oauth2{server}/.well-known/oauth-authorization-server"


def google_provider(settings: Settings) -> ProviderConfig:
    return ProviderConfig(
        **_common(settings, "google"),
        metadata_source=DiscoveryDocument(
            url=google_metadata_url(
                settings.get(CATEGORY, "google_metadata_domain"),
                settings.get(CATEGORY, "google_metadata_path"),
            )
        ),
        claim_source=ClaimSource.USERINFO,
        scope=settings.get(CATEGORY, "google_scope") or "openid email profile",
        email_claim="email",
        extra_authorization_params=(("prompt", "consent"), ("access_type", "offline")),
        display_name="Google",
    )


def okta_provider(settings: Settings) -> ProviderConfig:
    return ProviderConfig(
        **_common(settings, "okta"),
        metadata_source=DiscoveryDocument(
            url=okta_metadata_url(
                settings.get(CATEGORY, "okta_metadata_domain"),
                settings.get(CATEGORY, "okta_metadata_server"),
            )
        ),
        claim_source=ClaimSource.INTROSPECTION,
        scope=settings.get(CATEGORY, "okta_scope") or "openid profile",
        email_claim="username",
        display_name="Okta",
    )


def generic_provider(settings: Settings) -> ProviderConfig:
    """Any OIDC provider, via a discovery URL or explicit endpoints."""

    def get(key: str) -> Optional[str]:
        return settings.get(CATEGORY, f"oidc_{key}") or None

    source: MetadataSource
    discovery_url = get("discovery_url")
    if discovery_url:
        source = DiscoveryDocument(url=discovery_url)
    else:
        source = StaticEndpoints(
            authorization_endpoint=get("authorization_endpoint") or "",
            token_endpoint=get("token_endpoint") or "",
            userinfo_endpoint=get("userinfo_endpoint"),
            introspection_endpoint=get("introspection_endpoint"),
            end_session_endpoint=get("end_session_endpoint"),
            jwks_uri=get("jwks_uri"),
            issuer=get("issuer"),
        )

    raw_claim_source = (get("claim_source") or ClaimSource.USERINFO.value).lower()
    try:
        claim_source = ClaimSource(raw_claim_source)
    except ValueError:
        logger.warning(
            "Unknown oidc_claim_source %r; using userinfo", raw_claim_source
        )
        claim_source = ClaimSource.USERINFO

    return ProviderConfig(
        **_common(settings, "oidc"),
        metadata_source=source,
        claim_source=claim_source,
        scope=get("scope") or "openid email profile",
        email_claim=get("email_claim") or "email",
        display_name=get("display_name") or "OpenID Connect",
    )


PROVIDERS: dict[str, ProviderFactory] = {
    "google": google_provider,
    "okta": okta_provider,
    "oidc": generic_provider,
}


def get_provider_factory(provider_id: str) -> ProviderFactory:
    try:
        return PROVIDERS[provider_id]
    except KeyError:
        raise ConfigurationError(f"Unknown OpenID provider: {provider_id}") from None


def create_authenticator(
    provider_id: str,
    settings: Settings,
    directory: UserDirectory,
    http: Optional[ProviderHTTPClient] = None,
    resolver: Optional[MetadataResolver] = None,
) -> OpenIDAuthenticator:
    """Build an authenticator for ``provider_id`` from settings.

    Raises ``ConfigurationError`` for an unknown provider, or for invalid
    provider settings when ``open_id.suppress_errors`` is off.
    """
    config = get_provider_factory(provider_id)(settings)
    return OpenIDAuthenticator(config, directory, resolver=resolver, http=http)


def build_authenticators(
    settings: Settings,
    directory: UserDirectory,
    http: Optional[ProviderHTTPClient] = None,
) -> dict[str, OpenIDAuthenticator]:
    """Build every provider listed in ``open_id.providers``."""
    authenticators: dict[str, OpenIDAuthenticator] = {}
    for name in settings.get_list(CATEGORY, "providers"):
        provider_id = sanitize_provider_id(name)
        if provider_id not in PROVIDERS:
            if settings.get_bool(CATEGORY, "suppress_errors", True):
                logger.warning("Ignoring unknown OpenID provider %r", provider_id)
                continue
        authenticators[provider_id] = create_authenticator(
            provider_id, settings, directory, http=http
        )
    return authenticators
