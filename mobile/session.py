# mobile/session.py
"""Auth Service on the device: identity-token login, logout and session state."""

import logging
from typing import Any, Dict, Optional

import httpx

from .errors import ClientError
from .http_client import ApiClient
from .token_store import TokenStore

logger = logging.getLogger(__name__)

LOGIN_PATH = "/v1/auth/google"
LOGOUT_PATH = "/v1/auth/logout"


class AuthSession:
    def __init__(self, api: ApiClient, tokens: TokenStore):
        self.api = api
        self.tokens = tokens

    async def login_with_google(self, id_token: str) -> Dict[str, Any]:
        """
        Exchanges a Google ID token for an app session and stores it.

        Returns:
            The user profile returned by the server
        """
        response = await self.api.post(LOGIN_PATH, json={"idToken": id_token}, authenticate=False)
        data = response.json()
        user = data.get("user") or {}
        await self.tokens.save_session(data["accessToken"], data["refreshToken"], user)
        logger.info(f"Logged in as {user.get('email')}")
        return user

    async def logout(self) -> None:
        """Revokes the refresh token on the server when possible, then clears the device session."""
        refresh_token = await self.tokens.get_refresh_token()
        if refresh_token and await self.tokens.get_access_token():
            try:
                await self.api.post(LOGOUT_PATH, json={"refreshToken": refresh_token})
            except (ClientError, httpx.HTTPError) as e:
                logger.warning(f"Server-side logout failed, clearing local session anyway: {e}")
        await self.tokens.clear_session()

    async def is_authenticated(self) -> bool:
        return bool(await self.tokens.get_access_token())

    async def current_user(self) -> Optional[Dict[str, Any]]:
        return await self.tokens.get_user()
