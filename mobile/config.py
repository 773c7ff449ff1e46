# mobile/config.py
"""
Client configuration.

Values come from the environment (optionally a .env file), mirroring the
server's Settings.from_env().
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel


class ClientSettings(BaseModel):
    """Settings for the on-device sync core."""
    api_base_url: str = "http://localhost:3000"
    request_timeout: float = 10.0
    token_store_path: Optional[str] = None
    local_database_url: str = "sqlite+aiosqlite:///./livememo_local.db"

    @classmethod
    def from_env(cls) -> "ClientSettings":
        load_dotenv()
        defaults = cls()
        return cls(
            api_base_url=os.getenv("LIVEMEMO_API_URL", defaults.api_base_url),
            request_timeout=float(os.getenv("LIVEMEMO_REQUEST_TIMEOUT", defaults.request_timeout)),
            token_store_path=os.getenv("LIVEMEMO_TOKEN_STORE") or None,
            local_database_url=os.getenv("LIVEMEMO_LOCAL_DB", defaults.local_database_url),
        )
