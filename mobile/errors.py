# mobile/errors.py
"""Errors raised by the on-device sync core."""

from typing import Optional

import httpx


class ClientError(Exception):
    """Base class for client-side failures."""


class NotAuthenticated(ClientError):
    """No access token is stored on the device."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class ApiRequestError(ClientError):
    """The server answered with a non-2xx status."""

    def __init__(self, status_code: int, code: Optional[str] = None, message: Optional[str] = None):
        self.status_code = status_code
        self.code = code
        self.message = message or code or f"HTTP {status_code}"
        super().__init__(self.message)

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiRequestError":
        code = message = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code")
            message = body.get("message")
        return cls(response.status_code, code, message)


class RefreshFailed(ClientError):
    """The refresh token could not be exchanged; the local session was cleared."""
