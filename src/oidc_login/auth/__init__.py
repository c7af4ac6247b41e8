"""OpenID Connect login with local identity mapping.

- Authorization-code flow with PKCE and a CSRF state per attempt
- Redirect-loop protection across requests via server-held session state
- Providers differ only in metadata source and claim source
- Claims are mapped to one enabled local user by an ``oidc_field=user_column`` rule
"""

from .authenticator import AuthorizationRedirect, OpenIDAuthenticator
from .config import ClaimSource, DiscoveryDocument, ProviderConfig, StaticEndpoints
from .errors import (
    AmbiguousIdentityError,
    ConfigurationError,
    IdentityNotFoundError,
    InactiveTokenError,
    MetadataError,
    OpenIDError,
    ProtocolError,
    ProviderError,
    RedirectLoopError,
    StateMismatchError,
    TransportError,
)
from .identity import IdentityMapper, LocalUser, SqlUserDirectory, UserDirectory
from .logout import LogoutCoordinator, LogoutOutcome
from .metadata import MetadataResolver, ProviderMetadata
from .providers import build_authenticators, create_authenticator
from .result import AuthenticationResult
from .session import SessionState, create_session_backend

__all__ = [
    "AmbiguousIdentityError",
    "AuthenticationResult",
    "AuthorizationRedirect",
    "ClaimSource",
    "ConfigurationError",
    "DiscoveryDocument",
    "IdentityMapper",
    "IdentityNotFoundError",
    "InactiveTokenError",
    "LocalUser",
    "LogoutCoordinator",
    "LogoutOutcome",
    "MetadataError",
    "MetadataResolver",
    "OpenIDAuthenticator",
    "OpenIDError",
    "ProtocolError",
    "ProviderConfig",
    "ProviderError",
    "ProviderMetadata",
    "RedirectLoopError",
    "SessionState",
    "SqlUserDirectory",
    "StateMismatchError",
    "StaticEndpoints",
    "TransportError",
    "UserDirectory",
    "build_authenticators",
    "create_authenticator",
    "create_session_backend",
]
