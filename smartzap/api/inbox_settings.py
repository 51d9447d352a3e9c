"""
Inbox settings API - message retention and human mode timeout.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from smartzap.database import get_db
from smartzap.schemas.inbox import InboxSettings, InboxSettingsUpdate
from smartzap.services.inbox_settings import get_inbox_settings, update_inbox_settings

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("/inbox", response_model=InboxSettings)
async def read_inbox_settings(db: AsyncSession = Depends(get_db)):
    return await get_inbox_settings(db)


@router.patch("/inbox", response_model=InboxSettings)
async def patch_inbox_settings(
    payload: InboxSettingsUpdate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await update_inbox_settings(
            db,
            retention_days=payload.retention_days,
            human_mode_timeout_hours=payload.human_mode_timeout_hours,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
