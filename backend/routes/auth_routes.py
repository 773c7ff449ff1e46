# backend/routes/auth_routes.py
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auth import create_access_token, find_or_create_user, get_settings, get_token_owner_id, verify_google_id_token
from config import Settings
from database import get_session
from errors import DatabaseError
from schemas import GoogleLoginRequest, LoginOut, LogoutOut, RefreshRequest, TokenPairOut, UserOut
from services.refresh_token_service import RefreshTokenService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/auth", tags=["auth"])

def get_refresh_tokens(session: AsyncSession = Depends(get_session),
                       settings: Settings = Depends(get_settings)) -> RefreshTokenService:
    return RefreshTokenService(session, settings.refresh_token_ttl)

@router.post("/google", response_model=LoginOut)
async def login_with_google(body: GoogleLoginRequest, session: AsyncSession = Depends(get_session),
                            settings: Settings = Depends(get_settings),
                            tokens: RefreshTokenService = Depends(get_refresh_tokens)):
    logger.info("auth.google:start mock=%s", settings.mock_google)
    profile = await verify_google_id_token(body.idToken, settings)
    try:
        user = await find_or_create_user(session, profile)
        issued = await tokens.issue(user.id)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("auth.google:db_error %s", e)
        raise DatabaseError("Could not persist the session")
    logger.info("auth.google:success user=%s", user.id)
    return LoginOut(
        accessToken=create_access_token(user.id, settings),
        refreshToken=issued.token,
        refreshExpiresAt=issued.expiresAt,
        user=UserOut(id=user.id, email=user.email, name=user.displayName),
    )

@router.post("/refresh", response_model=TokenPairOut)
async def refresh(body: RefreshRequest, user_id: str = Depends(get_token_owner_id),
                  settings: Settings = Depends(get_settings),
                  tokens: RefreshTokenService = Depends(get_refresh_tokens)):
    issued = await tokens.rotate(body.refreshToken, user_id)
    return TokenPairOut(accessToken=create_access_token(user_id, settings), refreshToken=issued.token,
                        refreshExpiresAt=issued.expiresAt)

@router.post("/logout", response_model=LogoutOut)
async def logout(body: RefreshRequest, user_id: str = Depends(get_token_owner_id),
                 tokens: RefreshTokenService = Depends(get_refresh_tokens)):
    revoked = await tokens.revoke(body.refreshToken, user_id)
    logger.info("auth.logout user=%s revoked=%s", user_id, revoked)
    return LogoutOut(revoked=revoked)
