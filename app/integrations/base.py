"""
Shared plumbing for outbound HTTP adapters.

Every provider call goes through ``ProviderClient.request`` which logs the
exchange and turns transport failures and non-2xx answers into
``ExternalServiceError("<operation> failed: <provider message>")``.
"""
from typing import Any, Dict, Optional
import logging

import httpx

from app.core.config import settings
from app.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


async def _log_request(request: httpx.Request) -> None:
    logger.debug(f"-> {request.method} {request.url}")


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    logger.debug(f"<- {request.method} {request.url} {response.status_code}")


def provider_error_message(response: httpx.Response) -> str:
    """Best-effort extraction of the provider's own error text"""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase

    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, dict):
                value = value.get("message") or value.get("reason")
            if value:
                return str(value)
    return response.text or response.reason_phrase


class ProviderClient:
    """Base class for the minting, pinning and AI adapters"""

    provider: str = "provider"

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers or {},
            timeout=timeout if timeout is not None else settings.EXTERNAL_HTTP_TIMEOUT_SECONDS,
            transport=transport,
            event_hooks={"request": [_log_request], "response": [_log_response]},
        )

    def _ensure_configured(self, operation: str) -> None:
        if not self.api_key:
            raise ExternalServiceError(f"{operation} failed: {self.provider} API key is not configured")

    async def request(self, operation: str, method: str, url: str, expect_json: bool = True, **kwargs: Any) -> Any:
        """Send a request and return the decoded JSON body (an empty dict when `expect_json` is off)"""
        self._ensure_configured(operation)
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{self.provider} {operation} transport error: {e!r}")
            raise ExternalServiceError(f"{operation} failed: {e}") from e

        if response.is_error:
            message = provider_error_message(response)
            logger.error(f"{self.provider} {operation} returned {response.status_code}: {message}")
            raise ExternalServiceError(f"{operation} failed: {message}")

        if not expect_json or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError(f"{operation} failed: invalid response from {self.provider}") from e

    async def aclose(self) -> None:
        await self._client.aclose()
