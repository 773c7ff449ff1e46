# backend/config.py
import os
import re
from datetime import timedelta
from typing import List, Optional
from dotenv import load_dotenv
from pydantic import BaseModel

_DURATION_RE = re.compile(r"^(\d+)([smhd])$")
_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}

def parse_duration(text: Optional[str], fallback: timedelta) -> timedelta:
    """Parses '30s', '15m', '12h' or '14d'. Anything else falls back."""
    if not text: return fallback
    match = _DURATION_RE.match(text.strip())
    if not match: return fallback
    return timedelta(**{_UNITS[match.group(2)]: int(match.group(1))})

class Settings(BaseModel):
    database_url: str = "sqlite+aiosqlite:///./livememo.db"
    jwt_secret: str
    access_token_ttl: timedelta = timedelta(minutes=15)
    refresh_token_ttl: timedelta = timedelta(days=14)
    google_client_id: Optional[str] = None
    mock_google: bool = False
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        jwt_secret = os.getenv("JWT_ACCESS_SECRET")
        if not jwt_secret:
            raise ValueError("JWT_ACCESS_SECRET must be set in .env file!")
        origins = [o.strip() for o in os.getenv("CLIENT_URL", "*").split(",") if o.strip()]
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.model_fields["database_url"].default),
            jwt_secret=jwt_secret,
            access_token_ttl=parse_duration(os.getenv("ACCESS_TOKEN_TTL"), timedelta(minutes=15)),
            refresh_token_ttl=parse_duration(os.getenv("REFRESH_TOKEN_TTL"), timedelta(days=14)),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID") or None,
            mock_google=os.getenv("MOCK_GOOGLE", "").lower() == "true",
            cors_origins=origins or ["*"],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
