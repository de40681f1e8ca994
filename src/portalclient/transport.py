from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import httpx

from portalclient.errors import NotAuthenticatedError, ResponseValidationError, TransportError
from portalclient.telemetry import Telemetry

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str | None]]


class Transport(Protocol):
    async def get(self, path: str) -> Any: ...

    async def post(self, path: str, body: Any = None) -> Any: ...

    async def patch(self, path: str, body: Any = None) -> Any: ...


class HttpxTransport:
    """JSON-over-HTTP transport. Raises on non-2xx, never retries."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        token_provider: TokenProvider | None = None,
        client: httpx.AsyncClient | None = None,
        telemetry: Telemetry | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._telemetry = telemetry or Telemetry()

    @property
    def base_url(self) -> str:
        return self._base_url

    async def get(self, path: str) -> Any:
        return await self._request("GET", path)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self._request("POST", path, body)

    async def patch(self, path: str, body: Any = None) -> Any:
        return await self._request("PATCH", path, body)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token_provider is not None:
            access = await self._token_provider()
            if access is None:
                raise NotAuthenticatedError("no valid session; log in again")
            headers["Authorization"] = f"Bearer {access}"
        return headers

    async def _request(self, method: str, path: str, body: Any = None) -> Any:
        url = f"{self._base_url}/{path.lstrip('/')}"
        headers = await self._headers()
        try:
            response = await self._client.request(
                method,
                url,
                json=body,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            self._telemetry.record_transport_request(method, result="network_error")
            logger.warning("%s %s failed: %s", method, url, exc)
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        if not response.is_success:
            self._telemetry.record_transport_request(method, result=str(response.status_code))
            raise TransportError(
                f"HTTP error! status: {response.status_code}",
                status_code=response.status_code,
                detail=_error_detail(response),
            )

        self._telemetry.record_transport_request(method, result="ok")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ResponseValidationError(f"{method} {path} did not return JSON") from exc


def _error_detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None
