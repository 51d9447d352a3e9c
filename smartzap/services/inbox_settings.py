"""
Inbox settings stored in the app_settings key/value table.

Two settings: how long inbox messages are retained, and after how many
hours a human takeover hands the conversation back to the bot
(0 = never, the default).
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from smartzap.models.app_setting import AppSetting
from smartzap.services.conversation_mode import get_human_mode_timeout_ms

logger = logging.getLogger(__name__)

RETENTION_DAYS_KEY = "inbox_retention_days"
HUMAN_MODE_TIMEOUT_HOURS_KEY = "inbox_human_mode_timeout_hours"

DEFAULT_RETENTION_DAYS = 365
DEFAULT_HUMAN_MODE_TIMEOUT_HOURS = 0

MIN_RETENTION_DAYS = 1
MAX_RETENTION_DAYS = 3650

# Values offered by the dashboard (0 = never, 168 = one week)
ALLOWED_TIMEOUT_HOURS = (0, 1, 2, 4, 8, 12, 24, 48, 72, 168)


async def _read_int(db: AsyncSession, key: str, default: int) -> int:
    result = await db.execute(select(AppSetting).where(AppSetting.key == key))
    setting = result.scalar_one_or_none()
    if setting is None:
        return default
    try:
        return int(setting.value)
    except (TypeError, ValueError):
        logger.warning("Invalid value for setting %s: %r, using default", key, setting.value)
        return default


async def _write(db: AsyncSession, key: str, value: int) -> None:
    result = await db.execute(select(AppSetting).where(AppSetting.key == key))
    setting = result.scalar_one_or_none()
    if setting is None:
        db.add(AppSetting(key=key, value=str(value)))
    else:
        setting.value = str(value)
        setting.updated_at = datetime.now(timezone.utc)


async def get_inbox_settings(db: AsyncSession) -> dict:
    return {
        "retention_days": await _read_int(db, RETENTION_DAYS_KEY, DEFAULT_RETENTION_DAYS),
        "human_mode_timeout_hours": await _read_int(
            db, HUMAN_MODE_TIMEOUT_HOURS_KEY, DEFAULT_HUMAN_MODE_TIMEOUT_HOURS
        ),
    }


async def update_inbox_settings(
    db: AsyncSession,
    retention_days: Optional[int] = None,
    human_mode_timeout_hours: Optional[int] = None,
) -> dict:
    """
    Partially update the inbox settings and return the full set.

    Both values are validated before either is written.

    Raises:
        ValueError: retention outside 1..3650 days, or a timeout that is
            not one of ALLOWED_TIMEOUT_HOURS.
    """
    if retention_days is not None and not (
        MIN_RETENTION_DAYS <= retention_days <= MAX_RETENTION_DAYS
    ):
        raise ValueError(
            f"retention_days must be between {MIN_RETENTION_DAYS} and {MAX_RETENTION_DAYS}"
        )
    if human_mode_timeout_hours is not None and human_mode_timeout_hours not in ALLOWED_TIMEOUT_HOURS:
        raise ValueError(
            "human_mode_timeout_hours must be one of "
            + ", ".join(str(h) for h in ALLOWED_TIMEOUT_HOURS)
        )

    if retention_days is not None:
        await _write(db, RETENTION_DAYS_KEY, retention_days)
    if human_mode_timeout_hours is not None:
        await _write(db, HUMAN_MODE_TIMEOUT_HOURS_KEY, human_mode_timeout_hours)
    await db.flush()

    settings = await get_inbox_settings(db)
    logger.info(
        "Inbox settings updated: retention=%d days, human timeout=%d h",
        settings["retention_days"], settings["human_mode_timeout_hours"],
    )
    return settings


async def get_human_mode_timeout_ms_for_account(db: AsyncSession) -> int:
    """Account-wide human takeover timeout in milliseconds (0 = no expiry)."""
    hours = await _read_int(db, HUMAN_MODE_TIMEOUT_HOURS_KEY, DEFAULT_HUMAN_MODE_TIMEOUT_HOURS)
    return get_human_mode_timeout_ms(hours)
