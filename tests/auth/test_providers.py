from __future__ import annotations

import pytest

from oidc_login.auth.config import ClaimSource, DiscoveryDocument, StaticEndpoints
from oidc_login.auth.errors import ConfigurationError
from oidc_login.auth.providers import (
    build_authenticators,
    generic_provider,
    get_provider_factory,
    google_metadata_url,
    google_provider,
    okta_metadata_url,
    okta_provider,
    sanitize_provider_id,
)
from oidc_login.settings import Settings


class TestSanitizeProviderId:
    @pytest.mark.parametrize(
        "action,expected",
        [
            ("google", "google"),
            ("okta%2F..%2F", "okta"),
            ("../../etc/passwd", "etcpasswd"),
            ("g-o o_gle", "goo_gle"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_only_word_characters_survive(self, action, expected):
        assert sanitize_provider_id(action) == expected


class TestMetadataUrls:
    def test_google(self):
        assert (
            google_metadata_url("accounts.google.com", ".well-known/openid-configuration")
            == "https://accounts.google.com/.well-known/openid-configuration"
        )

    def test_google_incomplete(self):
        assert google_metadata_url("accounts.google.com", None) == ""

    @pytest.mark.parametrize(
        "server,expected",
        [
            (None, "https://acme.okta.com/oauth2/.well-known/oauth-authorization-server"),
            (
                "default",
                "https://acme.okta.com/oauth2/default/.well-known/oauth-authorization-server",
            ),
            (
                "/aus123",
                "https://acme.okta.com/oauth2/aus123/.well-known/oauth-authorization-server",
            ),
        ],
    )
    def test_okta(self, server, expected):
        assert okta_metadata_url("http://acme.okta.com", server) == expected


class TestProviderFactories:
    def test_google_defaults(self, google_settings):
        config = google_provider(google_settings())

        assert config.claim_source is ClaimSource.USERINFO
        assert config.email_claim == "email"
        assert config.use_pkce is True
        assert dict(config.extra_authorization_params) == {
            "prompt": "consent",
            "access_type": "offline",
        }
        assert isinstance(config.metadata_source, DiscoveryDocument)

    def test_okta_defaults(self):
        config = okta_provider(
            Settings.from_dict({"open_id": {"okta_metadata_domain": "acme.okta.com"}})
        )
        assert config.claim_source is ClaimSource.INTROSPECTION
        assert config.email_claim == "username"
        assert config.scope == "openid profile"

    def test_pkce_can_be_disabled(self, google_settings):
        config = google_provider(google_settings(google_use_pkce="false"))
        assert config.use_pkce is False

    def test_generic_static_endpoints(self):
        settings = Settings.from_dict(
            {
                "open_id": {
                    "oidc_authorization_endpoint": "https://sso.example.com/auth",
                    "oidc_token_endpoint": "https://sso.example.com/token",
                    "oidc_jwks_uri": "https://sso.example.com/jwks",
                    "oidc_issuer": "https://sso.example.com",
                    "oidc_claim_source": "ID_TOKEN",
                    "oidc_email_claim": "preferred_username",
                }
            }
        )
        config = generic_provider(settings)

        assert isinstance(config.metadata_source, StaticEndpoints)
        assert config.claim_source is ClaimSource.ID_TOKEN
        assert config.email_claim == "preferred_username"

    def test_generic_unknown_claim_source_falls_back(self):
        settings = Settings.from_dict(
            {
                "open_id": {
                    "oidc_discovery_url": "https://sso.example.com/.well-known",
                    "oidc_claim_source": "carrier-pigeon",
                }
            }
        )
        config = generic_provider(settings)
        assert isinstance(config.metadata_source, DiscoveryDocument)
        assert config.claim_source is ClaimSource.USERINFO

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError, match="Unknown OpenID provider"):
            get_provider_factory("facebook")


class TestBuildAuthenticators:
    def test_builds_listed_providers(self, google_settings, directory):
        authenticators = build_authenticators(
            google_settings(providers="google, facebook"), directory
        )
        assert list(authenticators) == ["google"]
        assert authenticators["google"].is_usable

    def test_unknown_provider_raises_when_not_suppressed(self, google_settings, directory):
        with pytest.raises(ConfigurationError):
            build_authenticators(
                google_settings(providers="facebook", suppress_errors=False), directory
            )

    def test_nothing_configured(self, directory):
        assert build_authenticators(Settings(), directory) == {}
