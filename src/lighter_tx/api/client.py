"""Async HTTP transport shared by the REST wrappers.

One ``httpx.AsyncClient`` (and therefore one connection pool) is owned per
``ApiClient``. Non-success responses are mapped onto the exception hierarchy
in ``lighter_tx.exceptions``.
"""

import logging
from typing import Any, Optional

import httpx

from lighter_tx.config import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT
from lighter_tx.exceptions import NetworkError, error_for_status

logger = logging.getLogger(__name__)


class ApiClient:
    """Thin async REST client for the venue API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Venue REST base URL
            timeout: Request timeout in seconds
            user_agent: User-Agent header value
            headers: Extra default headers
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        default_headers = {"User-Agent": user_agent}
        if headers:
            default_headers.update(headers)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=default_headers,
            transport=transport,
        )

    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        return await self._request("GET", path, params=params)

    async def post(
        self,
        path: str,
        data: Optional[dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        return await self._request("POST", path, data=data, json=json)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out")
            raise NetworkError(f"Request to {path} timed out") from e
        except httpx.RequestError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise NetworkError(f"No response from {path}: {e}") from e

        payload = self._decode(response)

        if response.status_code >= 400:
            message = response.reason_phrase or "API error"
            code = None
            if isinstance(payload, dict):
                message = payload.get("message") or message
                code = payload.get("code")
            logger.debug(f"{method} {path} -> {response.status_code}: {message}")
            raise error_for_status(response.status_code, message, code)

        return payload

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"message": response.text}

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
