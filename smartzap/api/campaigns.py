"""
Campaign pre-flight validation against the account's messaging tier.
"""
import logging
from fastapi import APIRouter

from smartzap.config import get_settings
from smartzap.schemas.inbox import CampaignValidationRequest
from smartzap.services.limits_cache import get_account_limits, get_cached_limits
from smartzap.services.meta_limits import (
    TEST_LIMITS,
    blocked_without_limits,
    validate_campaign,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/campaigns", tags=["campaigns"])


@router.post("/validate")
async def validate_campaign_size(payload: CampaignValidationRequest):
    """
    Check whether a campaign of contact_count recipients may be sent today.

    A blocked campaign is a normal 200 response with can_send=false.
    Without credentials, a cached snapshot is used if one exists; otherwise
    the send is blocked.
    """
    settings = get_settings()

    if settings.debug_low_limit:
        logger.warning("debug_low_limit is on: validating against test limits")
        limits = TEST_LIMITS
    elif settings.whatsapp_phone_number_id and settings.whatsapp_access_token:
        limits = await get_account_limits(
            settings.whatsapp_phone_number_id,
            settings.whatsapp_access_token,
            timeout=settings.meta_api_timeout_seconds,
            api_version=settings.whatsapp_api_version,
        )
    else:
        limits = await get_cached_limits()

    if limits is None:
        result = blocked_without_limits(payload.contact_count)
    else:
        result = validate_campaign(payload.contact_count, limits)

    if not result.can_send:
        logger.info(
            "Campaign blocked: %d contacts on %s",
            payload.contact_count, result.current_tier,
            extra={"messaging_tier": result.current_tier},
        )
    return result.model_dump(mode="json")
