from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

from oidc_login.auth.config import ProviderConfig
from oidc_login.auth.metadata import ProviderMetadata
from oidc_login.auth.pkce import PendingAttempt


def build_authorization_url(
    metadata: ProviderMetadata,
    config: ProviderConfig,
    attempt: PendingAttempt,
    host: Optional[str] = None,
) -> str:
    """Build the provider redirect for ``attempt`` and mark it in progress."""
    metadata.require("authorization_endpoint")

    params: dict[str, str] = {
        "client_id": config.client_id,
        "redirect_uri": config.redirect_uri_for(host),
        "response_type": "code",
        "scope": config.scope,
        "state": attempt.state,
    }
    if attempt.nonce:
        params["nonce"] = attempt.nonce

    challenge = attempt.code_challenge
    if challenge is not None:
        params["code_challenge"] = challenge
        params["code_challenge_method"] = "S256"

    for name, value in config.extra_authorization_params:
        params.setdefault(name, value)

    attempt.authorize_in_progress = True

    scheme, netloc, path, query, fragment = urlsplit(metadata.authorization_endpoint)
    encoded = urlencode(params)
    query = f"{query}&{encoded}" if query else encoded
    return urlunsplit((scheme, netloc, path, query, fragment))
