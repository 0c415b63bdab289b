"""Async REST client for the Resume Mind API."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

import httpx

from .errors import ApiError, ConfigurationError, ConflictError, NetworkError

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable["str | None"]]


def static_token(token: str | None) -> TokenProvider:
    """Wrap a fixed bearer credential as a session provider."""

    async def _provider() -> str | None:
        return token

    return _provider


def _error_message(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    for field in ("message", "detail"):
        value = data.get(field)
        if isinstance(value, str) and value:
            return value
    return None


class ApiClient:
    """Async client that attaches the bearer credential to every request.

    Args:
        base_url: API root, e.g. ``https://api.example.com``.
        token_provider: Async callable returning the current session token.
        timeout_s: Per-request timeout.
        transport: Optional httpx transport (tests use ``MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider | None = None,
        timeout_s: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.token_provider = token_provider
        self.timeout_s = timeout_s
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_s, transport=self._transport
            )
        return self._client

    async def _headers(
        self, token: str | None, extra: dict[str, str] | None, json_body: bool
    ) -> dict[str, str]:
        headers: dict[str, str] = {"Accept": "application/json"}
        if json_body:
            headers["Content-Type"] = "application/json"
        if extra:
            headers.update(extra)
        if token is None and self.token_provider is not None:
            token = await self.token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def fetch(
        self,
        path: str,
        method: str = "GET",
        json: Any = None,
        headers: dict[str, str] | None = None,
        token: str | None = None,
        files: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON payload.

        Returns:
            Parsed JSON body, or ``None`` for 204 / non-JSON bodies.

        Raises:
            ConfigurationError: If no base URL is configured.
            NetworkError: If the request produced no response.
            ConflictError: On HTTP 409.
            ApiError: On any other non-2xx response.
        """
        if not self.base_url:
            raise ConfigurationError("API base URL is not configured")

        url = f"{self.base_url}{path}"
        request_headers = await self._headers(token, headers, json_body=files is None)
        try:
            resp = await self._http().request(
                method, url, json=json, files=files, headers=request_headers
            )
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError() from exc

        if resp.status_code == 204:
            return None

        try:
            data = resp.json()
        except ValueError:
            data = None

        if not resp.is_success:
            message = _error_message(data)
            logger.debug("%s %s -> HTTP %s", method, path, resp.status_code)
            if resp.status_code == 409:
                raise ConflictError(message)
            raise ApiError(resp.status_code, message)
        return data

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.fetch(path, "GET", **kwargs)

    async def post(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.fetch(path, "POST", json=json, **kwargs)

    async def put(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.fetch(path, "PUT", json=json, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.fetch(path, "DELETE", **kwargs)

    async def upload(
        self, path: str, filename: str, content: bytes, field: str = "file"
    ) -> Any:
        return await self.fetch(
            path, "POST", files={field: (filename, content)}
        )


__all__ = ["ApiClient", "TokenProvider", "static_token"]
