"""
Account limits cache. Avoids hitting the Graph API on every campaign check.

One JSON blob under LIMITS_STORAGE_KEY. The cache is best-effort: read
errors and corrupt blobs are a miss, write errors are swallowed. A snapshot
is refreshed once it is more than an hour old.
"""
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError

from smartzap.schemas.account_limits import AccountLimits
from smartzap.services.meta_limits import (
    LIMITS_STORAGE_KEY,
    TIMEOUT,
    DEFAULT_API_VERSION,
    fallback_limits,
    request_account_limits,
)
from smartzap.utils.kv_store import KeyValueStore, RedisKeyValueStore

logger = logging.getLogger(__name__)

STALE_AFTER = timedelta(hours=1)


def _default_store() -> KeyValueStore:
    return RedisKeyValueStore()


async def get_cached_limits(store: Optional[KeyValueStore] = None) -> Optional[AccountLimits]:
    """Return the cached snapshot, or None when absent, unreadable or invalid."""
    store = store or _default_store()
    try:
        raw = await store.get(LIMITS_STORAGE_KEY)
    except Exception as e:
        logger.warning("Failed to read cached account limits: %s", str(e))
        return None

    if not raw:
        return None

    try:
        return AccountLimits.model_validate(json.loads(raw))
    except (json.JSONDecodeError, TypeError, ValidationError):
        logger.debug("Ignoring corrupt account limits cache entry")
        return None


async def cache_limits(limits: AccountLimits, store: Optional[KeyValueStore] = None) -> None:
    """Persist the snapshot. Never raises."""
    store = store or _default_store()
    try:
        # Python-mode dump keeps float('inf'); json round-trips it as Infinity
        await store.set(LIMITS_STORAGE_KEY, json.dumps(limits.model_dump()))
    except Exception as e:
        logger.warning("Failed to cache account limits: %s", str(e))


async def invalidate_cached_limits(store: Optional[KeyValueStore] = None) -> None:
    """Drop the cached snapshot so the next read refetches."""
    store = store or _default_store()
    try:
        await store.delete(LIMITS_STORAGE_KEY)
        logger.info("Account limits cache invalidated")
    except Exception as e:
        logger.warning("Failed to invalidate account limits cache: %s", str(e))


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def are_limits_stale(limits: Optional[AccountLimits], now: Optional[datetime] = None) -> bool:
    """
    True when there is no snapshot or it is more than one hour old.

    Exactly one hour old is still fresh.
    """
    if limits is None:
        return True
    now = now or datetime.now(timezone.utc)
    try:
        fetched_at = _parse_timestamp(limits.last_fetched)
    except (TypeError, ValueError):
        return True
    return now - fetched_at > STALE_AFTER


async def get_account_limits(
    phone_number_id: str,
    access_token: str,
    store: Optional[KeyValueStore] = None,
    force_refresh: bool = False,
    timeout: float = TIMEOUT,
    api_version: str = DEFAULT_API_VERSION,
) -> AccountLimits:
    """
    Cache-first account limits.

    Serves the cached snapshot while fresh; otherwise fetches from the
    provider and re-caches. On a provider outage the defaults are returned
    but not cached, so the next call retries.
    """
    store = store or _default_store()

    if not force_refresh:
        cached = await get_cached_limits(store)
        if cached is not None and not are_limits_stale(cached):
            return cached

    try:
        limits = await request_account_limits(
            phone_number_id,
            access_token,
            timeout=timeout,
            api_version=api_version,
        )
    except Exception as e:
        logger.error(
            "Failed to fetch account limits, using defaults: %s", str(e),
            extra={"phone_number_id": phone_number_id},
        )
        return fallback_limits()

    await cache_limits(limits, store)
    return limits
