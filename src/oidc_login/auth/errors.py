from __future__ import annotations


class OpenIDError(Exception):
    """Base exception for OpenID login errors."""

    pass


class ConfigurationError(OpenIDError):
    """Provider settings are missing or malformed."""

    pass


class TransportError(OpenIDError):
    """Talking to the provider failed (network, timeout, malformed JSON)."""

    pass


class MetadataError(TransportError):
    """Provider metadata lacks an endpoint the current step needs."""

    pass


class ProtocolError(OpenIDError):
    """The provider round trip is invalid for this attempt."""

    pass


class StateMismatchError(ProtocolError):
    """Callback state does not match the pending attempt."""

    pass


class RedirectLoopError(ProtocolError):
    """A second authorization started while the previous one was in flight."""

    pass


class ProviderError(ProtocolError):
    """The provider reported an explicit error."""

    def __init__(self, error: str, description: str | None = None):
        self.error = error
        self.description = description
        message = f"Authorization server returned an error: {error}"
        if description:
            message = f"{message} ({description})"
        super().__init__(message)


class InactiveTokenError(ProtocolError):
    """Token introspection reported the access token as inactive."""

    pass


class IdentityNotFoundError(OpenIDError):
    """No enabled local user matches the external identity."""

    pass


class AmbiguousIdentityError(IdentityNotFoundError):
    """More than one enabled local user matches the external identity."""

    pass
