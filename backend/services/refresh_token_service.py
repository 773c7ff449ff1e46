# backend/services/refresh_token_service.py
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from errors import InvalidRefreshToken
from models import RefreshToken, as_utc, utcnow

logger = logging.getLogger(__name__)

def hash_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()

@dataclass
class IssuedToken:
    token: str
    expiresAt: datetime

class RefreshTokenService:
    """Issues, rotates and revokes refresh tokens. Only the sha256 of a token is ever stored."""

    def __init__(self, session: AsyncSession, ttl: timedelta):
        self.session = session
        self.ttl = ttl

    def _stage(self, user_id: str) -> IssuedToken:
        raw = secrets.token_urlsafe(32)
        expires_at = utcnow() + self.ttl
        self.session.add(RefreshToken(userId=user_id, tokenHash=hash_token(raw), expiresAt=expires_at))
        return IssuedToken(token=raw, expiresAt=expires_at)

    async def _find(self, raw: str, user_id: str) -> Optional[RefreshToken]:
        statement = select(RefreshToken).where(RefreshToken.tokenHash == hash_token(raw), RefreshToken.userId == user_id)
        result = await self.session.execute(statement)
        return result.scalar_one_or_none()

    async def issue(self, user_id: str) -> IssuedToken:
        issued = self._stage(user_id)
        await self.session.commit()
        return issued

    async def rotate(self, old_raw: str, user_id: str) -> IssuedToken:
        existing = await self._find(old_raw, user_id)
        now = utcnow()
        if existing and existing.revokedAt is not None and existing.lastUsedAt is not None:
            # A rotated token came back: whoever holds its successor may be an attacker.
            await self.revoke_all(user_id)
            logger.warning("refresh:reuse_detected user=%s", user_id)
            raise InvalidRefreshToken("Invalid refresh token")
        if not existing or existing.revokedAt is not None or as_utc(existing.expiresAt) <= now:
            raise InvalidRefreshToken("Invalid refresh token")
        # Conditional update so two concurrent rotations cannot both win.
        result = await self.session.execute(
            update(RefreshToken)
            .where(RefreshToken.id == existing.id, RefreshToken.revokedAt.is_(None))
            .values(revokedAt=now, lastUsedAt=now)
        )
        if result.rowcount != 1:
            await self.session.rollback()
            logger.warning("refresh:reuse_detected user=%s", user_id)
            raise InvalidRefreshToken("Invalid refresh token")
        issued = self._stage(user_id)
        await self.session.commit()
        return issued

    async def revoke(self, raw: str, user_id: str) -> bool:
        existing = await self._find(raw, user_id)
        if not existing: return False
        if existing.revokedAt is not None: return True
        existing.revokedAt = utcnow()
        self.session.add(existing)
        await self.session.commit()
        return True

    async def revoke_all(self, user_id: str) -> int:
        result = await self.session.execute(
            update(RefreshToken)
            .where(RefreshToken.userId == user_id, RefreshToken.revokedAt.is_(None))
            .values(revokedAt=utcnow())
        )
        await self.session.commit()
        return result.rowcount
