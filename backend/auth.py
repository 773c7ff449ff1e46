# backend/auth.py
import logging
from datetime import datetime, timezone
from typing import Optional
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlmodel import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from config import Settings
from errors import AuthFailed, Unauthorized
from models import User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
MOCK_PROFILE = {"sub": "mock-google-sub", "email": "mock@example.com", "name": "Mock User"}
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/v1/auth/google", auto_error=False)

class GoogleProfile(BaseModel):
    sub: str
    email: str
    name: str = ""
    picture: Optional[str] = None

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def create_access_token(user_id: str, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    to_encode = {"sub": user_id, "iat": now, "exp": now + settings.access_token_ttl}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=ALGORITHM)

def decode_access_token(token: str, settings: Settings, verify_exp: bool = True) -> str:
    """Returns the subject of a validly signed access token."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM], options={"verify_exp": verify_exp})
    except JWTError:
        raise Unauthorized()
    user_id = payload.get("sub")
    if not user_id: raise Unauthorized()
    return str(user_id)

async def verify_google_id_token(raw_token: str, settings: Settings) -> GoogleProfile:
    if settings.mock_google:
        return GoogleProfile(**MOCK_PROFILE)
    if not settings.google_client_id:
        raise AuthFailed("Google client not configured")
    try:
        # google-auth fetches certificates with a blocking HTTP call
        payload = await run_in_threadpool(
            id_token.verify_oauth2_token, raw_token, google_requests.Request(), settings.google_client_id
        )
    except ValueError as e:
        logger.info("auth.google:rejected %s", e)
        raise AuthFailed("Invalid Google token")
    if not payload.get("sub") or not payload.get("email"):
        raise AuthFailed("Invalid Google token")
    return GoogleProfile(sub=payload["sub"], email=payload["email"], name=payload.get("name") or "",
                         picture=payload.get("picture"))

async def find_or_create_user(session: AsyncSession, profile: GoogleProfile) -> User:
    statement = select(User).where(User.providerSub == profile.sub)
    result = await session.execute(statement)
    db_user = result.scalar_one_or_none()
    if db_user:
        db_user.email = profile.email
        db_user.displayName = profile.name
    else:
        db_user = User(providerSub=profile.sub, provider="google", email=profile.email, displayName=profile.name)
    session.add(db_user)
    await session.commit()
    await session.refresh(db_user)
    return db_user

async def get_current_user_id(token: Optional[str] = Depends(oauth2_scheme),
                              settings: Settings = Depends(get_settings)) -> str:
    if not token: raise Unauthorized("Not authenticated")
    return decode_access_token(token, settings)

async def get_token_owner_id(token: Optional[str] = Depends(oauth2_scheme),
                             settings: Settings = Depends(get_settings)) -> str:
    """Like get_current_user_id but accepts an expired access token. Used by refresh and logout."""
    if not token: raise Unauthorized("Not authenticated")
    return decode_access_token(token, settings, verify_exp=False)
