# backend/routes/sync_routes.py
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user_id
from database import get_session
from errors import SyncError
from schemas import SyncRequest, SyncResponse, SyncStatusOut
from services import sync_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/sync", tags=["sync"])

@router.post("", response_model=SyncResponse)
async def sync(body: SyncRequest, user_id: str = Depends(get_current_user_id),
               session: AsyncSession = Depends(get_session)):
    try:
        return await sync_service.run_sync(session, user_id, body.lastSyncAt, body.clientChanges)
    except SQLAlchemyError as e:
        logger.error("sync:error user=%s %s", user_id, e)
        raise SyncError(str(e))

@router.get("/status", response_model=SyncStatusOut)
async def status(user_id: str = Depends(get_current_user_id), session: AsyncSession = Depends(get_session)):
    return await sync_service.sync_status(session, user_id)
