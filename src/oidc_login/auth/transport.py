"""Outbound HTTP calls to the identity provider.

Every call is a single attempt with a client timeout. Connection failures,
timeouts, non-JSON bodies and HTTP errors without an OAuth ``error`` field
all become ``TransportError``. OAuth error bodies (``{"error": ...}``) are
returned to the caller, which turns them into protocol errors.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from oidc_login.auth.errors import TransportError
from oidc_login.utils.logging import sanitize_for_log

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_SECONDS = 30.0


class ProviderHTTPClient:
    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.transport = transport
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def get_json(
        self, url: str, headers: Optional[Mapping[str, str]] = None
    ) -> dict[str, Any]:
        async with self._client() as client:
            try:
                response = await client.get(
                    url, headers={"Accept": "application/json", **(headers or {})}
                )
            except httpx.HTTPError as exc:
                logger.warning(
                    "GET %s failed: %s", sanitize_for_log(url), type(exc).__name__
                )
                raise TransportError("Provider request failed") from exc
        return self._decode(response)

    async def post_form(
        self,
        url: str,
        data: Mapping[str, str],
        headers: Optional[Mapping[str, str]] = None,
    ) -> dict[str, Any]:
        async with self._client() as client:
            try:
                response = await client.post(
                    url,
                    data=dict(data),
                    headers={"Accept": "application/json", **(headers or {})},
                )
            except httpx.HTTPError as exc:
                logger.warning(
                    "POST %s failed: %s", sanitize_for_log(url), type(exc).__name__
                )
                raise TransportError("Provider request failed") from exc
        return self._decode(response)

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            logger.warning(
                "Provider returned non-JSON response (status %s) from %s",
                response.status_code,
                sanitize_for_log(str(response.request.url)),
            )
            raise TransportError("Provider returned a malformed response") from exc

        if not isinstance(payload, dict):
            raise TransportError("Provider returned a malformed response")

        if response.is_error and "error" not in payload:
            logger.warning(
                "Provider returned HTTP %s from %s",
                response.status_code,
                sanitize_for_log(str(response.request.url)),
            )
            raise TransportError(f"Provider returned HTTP {response.status_code}")

        return payload
