# mobile/http_client.py
"""
HTTP client with the auth interceptor.

Every request carries the stored access token. A 401 on a request that has
not been retried yet triggers one refresh-token rotation and exactly one
retry; a second 401 is returned to the caller as an ApiRequestError.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from .errors import ApiRequestError, RefreshFailed
from .token_store import TokenStore

logger = logging.getLogger(__name__)

REFRESH_PATH = "/v1/auth/refresh"


class ApiClient:
    """Async API client bound to one TokenStore."""

    def __init__(
        self,
        base_url: str,
        tokens: TokenStore,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_logout: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.tokens = tokens
        self._on_logout = on_logout
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def _send(self, method: str, url: str, access_token: Optional[str], **kwargs: Any) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return await self._http.request(method, url, headers=headers, **kwargs)

    async def _force_logout(self) -> None:
        await self.tokens.clear_session()
        if self._on_logout:
            await self._on_logout()

    async def refresh_tokens(self) -> str:
        """Rotates the stored refresh token and returns the new access token."""
        refresh_token = await self.tokens.get_refresh_token()
        if not refresh_token:
            await self._force_logout()
            raise RefreshFailed("No refresh token")

        # The expired access token still identifies the account on the refresh route.
        response = await self._send(
            "POST", REFRESH_PATH, await self.tokens.get_access_token(), json={"refreshToken": refresh_token}
        )
        if response.status_code != 200:
            logger.warning(f"Token refresh rejected with HTTP {response.status_code}, logging out")
            await self._force_logout()
            raise RefreshFailed(ApiRequestError.from_response(response).message)

        data = response.json()
        await self.tokens.set_tokens(data["accessToken"], data.get("refreshToken"))
        return data["accessToken"]

    async def request(self, method: str, url: str, authenticate: bool = True, **kwargs: Any) -> httpx.Response:
        """
        Sends a request, refreshing once on 401.

        With authenticate=False no token is attached and a 401 is returned
        as-is (used for the identity exchange itself).

        Raises:
            ApiRequestError: for non-2xx answers
            RefreshFailed: when the refresh token could not be rotated
        """
        access_token = await self.tokens.get_access_token() if authenticate else None
        response = await self._send(method, url, access_token, **kwargs)

        if response.status_code == 401 and authenticate:
            logger.info(f"{method} {url} returned 401, refreshing tokens")
            access_token = await self.refresh_tokens()
            response = await self._send(method, url, access_token, **kwargs)

        if response.is_error:
            raise ApiRequestError.from_response(response)
        return response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
