"""
Account limits schemas: WhatsApp Cloud API messaging tier snapshot,
campaign validation result and upgrade roadmap steps.

Tier, throughput and quality values are the provider's own strings.
"""
import math
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator


# Daily unique-recipient ceiling per messaging tier
TIER_LIMITS: dict[str, Union[int, float]] = {
    "TIER_250": 250,
    "TIER_1K": 1000,
    "TIER_2K": 2000,
    "TIER_10K": 10000,
    "TIER_100K": 100000,
    "TIER_UNLIMITED": math.inf,
}

# Messages per second per throughput level
THROUGHPUT_LIMITS: dict[str, int] = {
    "STANDARD": 80,
    "HIGH": 1000,
}

QUALITY_SCORES = ("GREEN", "YELLOW", "RED", "UNKNOWN")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _finite_or_none(value: Union[int, float, None]) -> Union[int, float, None]:
    """JSON has no Infinity; unlimited goes over the wire as null."""
    if isinstance(value, float) and math.isinf(value):
        return None
    return value


class AccountLimits(BaseModel):
    """Provider-reported quota snapshot. Read-only once built."""

    messaging_tier: str = "TIER_250"
    max_unique_users_per_day: Union[int, float]
    throughput_level: str = "STANDARD"
    max_messages_per_second: int
    quality_score: str = "UNKNOWN"
    used_today: Optional[int] = Field(default=0, ge=0)
    last_fetched: str = Field(default_factory=utc_now_iso)

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _derive_ceilings(cls, data):
        """Fill the ceilings from the lookup tables when the payload omits them."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        tier = data.get("messaging_tier", "TIER_250")
        throughput = data.get("throughput_level", "STANDARD")
        if data.get("max_unique_users_per_day") is None and tier in TIER_LIMITS:
            data["max_unique_users_per_day"] = TIER_LIMITS[tier]
        if data.get("max_messages_per_second") is None and throughput in THROUGHPUT_LIMITS:
            data["max_messages_per_second"] = THROUGHPUT_LIMITS[throughput]
        return data

    @field_validator("messaging_tier")
    @classmethod
    def _known_tier(cls, value: str) -> str:
        if value not in TIER_LIMITS:
            raise ValueError(f"Unknown messaging tier: {value}")
        return value

    @field_validator("throughput_level")
    @classmethod
    def _known_throughput(cls, value: str) -> str:
        if value not in THROUGHPUT_LIMITS:
            raise ValueError(f"Unknown throughput level: {value}")
        return value

    @field_validator("quality_score")
    @classmethod
    def _known_quality(cls, value: str) -> str:
        if value not in QUALITY_SCORES:
            raise ValueError(f"Unknown quality score: {value}")
        return value

    @field_serializer("max_unique_users_per_day", when_used="json")
    def _serialize_ceiling(self, value):
        return _finite_or_none(value)

    @classmethod
    def for_tier(
        cls,
        messaging_tier: str = "TIER_250",
        throughput_level: str = "STANDARD",
        quality_score: str = "UNKNOWN",
        used_today: int = 0,
        last_fetched: Optional[str] = None,
    ) -> "AccountLimits":
        """Build a snapshot whose ceilings are derived from tier and throughput."""
        return cls(
            messaging_tier=messaging_tier,
            max_unique_users_per_day=TIER_LIMITS[messaging_tier],
            throughput_level=throughput_level,
            max_messages_per_second=THROUGHPUT_LIMITS[throughput_level],
            quality_score=quality_score,
            used_today=used_today,
            last_fetched=last_fetched or utc_now_iso(),
        )

    @property
    def is_unlimited(self) -> bool:
        return self.messaging_tier == "TIER_UNLIMITED" or math.isinf(self.max_unique_users_per_day)


class RoadmapStep(BaseModel):
    """One advisory step towards the next messaging tier."""
    title: str
    description: str
    action: Optional[str] = None
    link: Optional[str] = None
    completed: bool = False


class CampaignValidation(BaseModel):
    """Outcome of checking a campaign size against the account limits."""
    can_send: bool
    blocked_reason: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)
    current_tier: str
    current_limit: Union[int, float]
    requested_count: int
    remaining_today: Union[int, float]
    estimated_duration: str
    upgrade_roadmap: Optional[list[RoadmapStep]] = None

    @field_serializer("current_limit", "remaining_today", when_used="json")
    def _serialize_unbounded(self, value):
        return _finite_or_none(value)
