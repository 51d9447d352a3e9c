"""
Account limits API - WhatsApp messaging tier snapshot for the dashboard.

- GET    /api/account/limits - cached snapshot, refetched when older than 1h
- POST   /api/account/limits - force a refetch from the Graph API
- DELETE /api/account/limits - drop the cached snapshot
"""
import logging
from fastapi import APIRouter, HTTPException

from smartzap.config import get_settings
from smartzap.services.limits_cache import get_account_limits, invalidate_cached_limits

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/account", tags=["account-limits"])


def _require_credentials() -> tuple[str, str]:
    settings = get_settings()
    if not settings.whatsapp_phone_number_id or not settings.whatsapp_access_token:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "NO_CREDENTIALS",
                "message": "Credenciais do WhatsApp não configuradas.",
            },
        )
    return settings.whatsapp_phone_number_id, settings.whatsapp_access_token


async def _load(force_refresh: bool) -> dict:
    settings = get_settings()
    phone_number_id, access_token = _require_credentials()
    limits = await get_account_limits(
        phone_number_id,
        access_token,
        force_refresh=force_refresh,
        timeout=settings.meta_api_timeout_seconds,
        api_version=settings.whatsapp_api_version,
    )
    # JSON mode: unlimited ceilings go out as null
    return limits.model_dump(mode="json")


@router.get("/limits")
async def read_account_limits():
    """Account limits, served from cache while fresh."""
    return await _load(force_refresh=False)


@router.post("/limits")
async def refresh_account_limits():
    """Refetch account limits from the provider and re-cache them."""
    logger.info("Account limits refresh requested")
    return await _load(force_refresh=True)


@router.delete("/limits")
async def clear_account_limits():
    await invalidate_cached_limits()
    return {"status": "ok"}
