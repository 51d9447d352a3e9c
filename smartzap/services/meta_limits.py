"""
WhatsApp messaging tier governance.

Central source of truth for what each Meta messaging tier allows.
Used by the campaign validation endpoint (blocks sends above the daily
unique-recipient ceiling) and the account limits endpoints (provider fetch).

Everything above the provider fetch section is pure: no I/O, no clock.
"""
import asyncio
import logging
import math
from typing import Optional, Union

import httpx

from smartzap.schemas.account_limits import (
    AccountLimits,
    CampaignValidation,
    QUALITY_SCORES,
    RoadmapStep,
    THROUGHPUT_LIMITS,
    TIER_LIMITS,
    utc_now_iso,
)
from smartzap.services.errors import ProviderFetchError
from smartzap.utils.formatting import format_count, format_duration, format_percentage

logger = logging.getLogger(__name__)

GRAPH_API_BASE_URL = "https://graph.facebook.com"
DEFAULT_API_VERSION = "v24.0"
TIMEOUT = 10.0

LIMITS_STORAGE_KEY = "smartzap_account_limits"

# Warning thresholds (product constants, keep literal)
LARGE_CAMPAIGN_THRESHOLD = 5000
NEAR_LIMIT_RATIO = 0.80

# Real-world throughput is ~90% of the nominal messages-per-second
THROUGHPUT_EFFICIENCY = 0.9

BUSINESS_VERIFICATION_URL = "https://business.facebook.com/settings/security"

TIER_DISPLAY_NAMES: dict[str, str] = {
    "TIER_250": "Iniciante (250/dia)",
    "TIER_1K": "Básico (1K/dia)",
    "TIER_2K": "Verificado (2K/dia)",
    "TIER_10K": "Crescimento (10K/dia)",
    "TIER_100K": "Escala (100K/dia)",
    "TIER_UNLIMITED": "Ilimitado",
}

# Automatic upgrade path. TIER_1K is a legacy tier outside of it.
TIER_UPGRADE_PATH: dict[str, Optional[str]] = {
    "TIER_250": "TIER_2K",
    "TIER_2K": "TIER_10K",
    "TIER_10K": "TIER_100K",
    "TIER_100K": "TIER_UNLIMITED",
    "TIER_UNLIMITED": None,
    "TIER_1K": None,
}

DEFAULT_LIMITS = AccountLimits.for_tier(
    messaging_tier="TIER_250",
    throughput_level="STANDARD",
    quality_score="UNKNOWN",
    used_today=0,
)

# Very low ceiling for exercising the blocked-campaign flow by hand
TEST_LIMITS = AccountLimits(
    messaging_tier="TIER_250",
    max_unique_users_per_day=5,
    throughput_level="STANDARD",
    max_messages_per_second=80,
    quality_score="GREEN",
    used_today=0,
)


def get_tier_display_name(tier: str) -> str:
    """Human-readable tier name. Unknown tiers are shown as-is."""
    return TIER_DISPLAY_NAMES.get(tier, tier)


def get_next_tier(tier: str) -> Optional[str]:
    """Next tier on the automatic upgrade path, or None at the top / off-path."""
    return TIER_UPGRADE_PATH.get(tier)


def estimate_send_duration(contact_count: int, max_messages_per_second: int) -> str:
    """Estimated wall-clock time to send a campaign at derated throughput."""
    effective_rate = max_messages_per_second * THROUGHPUT_EFFICIENCY
    if effective_rate <= 0:
        return format_duration(0)
    return format_duration(contact_count / effective_rate)


def _remaining_today(limits: AccountLimits) -> Union[int, float]:
    if limits.is_unlimited:
        return math.inf
    return max(0, limits.max_unique_users_per_day - (limits.used_today or 0))


def _blocked_reason(
    contact_count: int,
    limits: AccountLimits,
    remaining: Union[int, float],
) -> str:
    ceiling = limits.max_unique_users_per_day
    if contact_count > ceiling:
        return (
            f"Sua conta pode enviar para no máximo {format_count(ceiling)} usuários por dia "
            f"({get_tier_display_name(limits.messaging_tier)}). "
            f"Esta campanha tem {format_count(contact_count)} contatos."
        )
    return (
        f"Você já enviou para {format_count(limits.used_today or 0)} usuários hoje. "
        f"Restam apenas {format_count(remaining)} usuários disponíveis, "
        f"mas esta campanha tem {format_count(contact_count)} contatos."
    )


def _quality_warning(quality_score: str) -> Optional[str]:
    if quality_score == "RED":
        return (
            "Sua conta está com qualidade BAIXA. Envios em massa podem "
            "reduzir seu limite ou bloquear o número."
        )
    if quality_score == "YELLOW":
        return (
            "Sua conta está com qualidade MÉDIA. Monitore bloqueios e "
            "denúncias antes de enviar campanhas grandes."
        )
    return None


def validate_campaign(contact_count: int, limits: AccountLimits) -> CampaignValidation:
    """
    Decide whether a campaign of contact_count recipients may be sent today.

    Blocking is a normal result (can_send=False), never an exception.
    Warnings are advisory and independent of the block decision.
    """
    remaining = _remaining_today(limits)
    can_send = True
    blocked_reason = None
    upgrade_roadmap = None
    warnings: list[str] = []

    if not limits.is_unlimited and contact_count > remaining:
        can_send = False
        blocked_reason = _blocked_reason(contact_count, limits, remaining)
        upgrade_roadmap = get_upgrade_roadmap(limits)

    quality_warning = _quality_warning(limits.quality_score)
    if quality_warning:
        warnings.append(quality_warning)

    if contact_count > LARGE_CAMPAIGN_THRESHOLD and limits.throughput_level == "STANDARD":
        warnings.append(
            f"Campanha grande: {format_count(contact_count)} contatos com throughput "
            f"padrão ({limits.max_messages_per_second} msg/s). O envio levará cerca de "
            f"{estimate_send_duration(contact_count, limits.max_messages_per_second)}."
        )

    ceiling = limits.max_unique_users_per_day
    if not math.isinf(ceiling) and ceiling > 0:
        usage_ratio = contact_count / ceiling
        if usage_ratio > NEAR_LIMIT_RATIO:
            warnings.append(
                f"Esta campanha usará {format_percentage(usage_ratio)} do seu limite diário."
            )

    return CampaignValidation(
        can_send=can_send,
        blocked_reason=blocked_reason,
        warnings=warnings,
        current_tier=limits.messaging_tier,
        current_limit=ceiling,
        requested_count=contact_count,
        remaining_today=remaining,
        estimated_duration=estimate_send_duration(contact_count, limits.max_messages_per_second),
        upgrade_roadmap=upgrade_roadmap,
    )


def blocked_without_limits(contact_count: int, reason: Optional[str] = None) -> CampaignValidation:
    """Result used when the account limits are not known: never allow the send."""
    return CampaignValidation(
        can_send=False,
        blocked_reason=reason or "Limites da conta não carregados. Configure as credenciais do WhatsApp.",
        warnings=[],
        current_tier="TIER_250",
        current_limit=0,
        requested_count=contact_count,
        remaining_today=0,
        estimated_duration="-",
    )


def _maintain_quality_step(limits: AccountLimits) -> RoadmapStep:
    return RoadmapStep(
        title="Manter qualidade alta",
        description=(
            "Mantenha a qualidade da conta em VERDE ou AMARELO: evite bloqueios "
            "e denúncias enviando apenas para contatos que aceitaram receber mensagens."
        ),
        completed=limits.quality_score in ("GREEN", "YELLOW"),
    )


def _usage_step(threshold: int, ceiling: int) -> RoadmapStep:
    return RoadmapStep(
        title="Usar pelo menos 50% do limite",
        description=(
            f"Envie para {format_count(threshold)}+ usuários únicos em 7 dias "
            f"(50% do limite de {format_count(ceiling)}/dia)."
        ),
    )


def _automatic_upgrade_step() -> RoadmapStep:
    return RoadmapStep(
        title="Aguardar upgrade automático",
        description=(
            "A Meta avalia a conta automaticamente e aplica o novo limite "
            "em até 6 horas após atingir os critérios."
        ),
    )


def get_upgrade_roadmap(limits: AccountLimits) -> list[RoadmapStep]:
    """Advisory steps towards the next tier. Never gates sending."""
    tier = limits.messaging_tier

    if tier == "TIER_250":
        return [
            RoadmapStep(
                title="Verificar sua empresa",
                description=(
                    "Conclua a verificação da empresa no Meta Business Manager "
                    "para sair do limite inicial de 250 usuários por dia."
                ),
                action="Verificar Empresa",
                link=BUSINESS_VERIFICATION_URL,
                completed=False,
            ),
            _maintain_quality_step(limits),
            RoadmapStep(
                title="Aguardar avaliação automática",
                description=(
                    "Após a verificação, a Meta promove a conta para 2.000 "
                    "usuários por dia automaticamente."
                ),
            ),
        ]

    if tier == "TIER_2K":
        return [
            _usage_step(1000, 2000),
            _maintain_quality_step(limits),
            _automatic_upgrade_step(),
        ]

    if tier == "TIER_10K":
        return [_usage_step(5000, 10000), _automatic_upgrade_step()]

    if tier == "TIER_100K":
        return [_usage_step(50000, 100000), _automatic_upgrade_step()]

    # TIER_UNLIMITED has nowhere to go; TIER_1K is off the upgrade path
    return []


# ---------------------------------------------------------------------------
# Provider fetch
# ---------------------------------------------------------------------------

def _normalize_throughput(level) -> str:
    normalized = str(level or "").upper()
    return normalized if normalized in THROUGHPUT_LIMITS else "STANDARD"


def _normalize_quality(score) -> str:
    normalized = str(score or "").upper()
    return normalized if normalized in QUALITY_SCORES else "UNKNOWN"


def _normalize_tier(tier) -> str:
    normalized = str(tier or "").upper()
    return normalized if normalized in TIER_LIMITS else "TIER_250"


async def _graph_get(
    client: httpx.AsyncClient,
    url: str,
    fields: str,
    access_token: str,
) -> dict:
    """GET a Graph API node. Raises ProviderFetchError on non-2xx or a non-object body."""
    response = await client.get(
        url,
        params={"fields": fields},
        headers={"Authorization": f"Bearer {access_token}"},
    )
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise ProviderFetchError(
            f"Graph API returned {e.response.status_code} for fields={fields}",
            status_code=e.response.status_code,
        ) from e
    data = response.json()
    if not isinstance(data, dict):
        raise ProviderFetchError(f"Unexpected Graph API body for fields={fields}")
    return data


def _provider_error(eg: ExceptionGroup) -> Exception:
    """First failure of the concurrent Graph API calls, as a ProviderFetchError."""
    for exc in eg.exceptions:
        if isinstance(exc, ProviderFetchError):
            return exc
    first = eg.exceptions[0]
    if isinstance(first, (httpx.HTTPError, ValueError)):
        return ProviderFetchError(f"Graph API request failed: {first}")
    return first


async def request_account_limits(
    phone_number_id: str,
    access_token: str,
    timeout: float = TIMEOUT,
    api_version: str = DEFAULT_API_VERSION,
) -> AccountLimits:
    """
    Fetch tier, throughput and quality from the WhatsApp Cloud API.

    The throughput/quality and tier calls run concurrently and both must
    succeed within `timeout` seconds overall. If one fails, the other is
    cancelled before the client closes. Raises ProviderFetchError
    otherwise; callers that must never fail use fetch_account_limits.
    """
    url = f"{GRAPH_API_BASE_URL}/{api_version}/{phone_number_id}"

    try:
        async with asyncio.timeout(timeout):
            async with httpx.AsyncClient(timeout=timeout) as client:
                async with asyncio.TaskGroup() as tg:
                    throughput_task = tg.create_task(
                        _graph_get(client, url, "throughput,quality_score", access_token)
                    )
                    tier_task = tg.create_task(
                        _graph_get(client, url, "whatsapp_business_manager_messaging_limit", access_token)
                    )
    except ExceptionGroup as eg:
        raise _provider_error(eg) from eg
    except TimeoutError as e:
        raise ProviderFetchError(f"Graph API request exceeded {timeout}s") from e
    except (httpx.HTTPError, ValueError) as e:
        raise ProviderFetchError(f"Graph API request failed: {e}") from e

    throughput_data = throughput_task.result()
    tier_data = tier_task.result()

    throughput = throughput_data.get("throughput") or {}
    quality = throughput_data.get("quality_score") or {}
    if not isinstance(throughput, dict) or not isinstance(quality, dict):
        raise ProviderFetchError("Unexpected throughput/quality shape")

    limits = AccountLimits.for_tier(
        messaging_tier=_normalize_tier(
            tier_data.get("whatsapp_business_manager_messaging_limit")
        ),
        throughput_level=_normalize_throughput(throughput.get("level")),
        quality_score=_normalize_quality(quality.get("score")),
        used_today=0,
    )
    logger.info(
        "Account limits fetched: tier=%s throughput=%s quality=%s",
        limits.messaging_tier, limits.throughput_level, limits.quality_score,
        extra={"phone_number_id": phone_number_id, "messaging_tier": limits.messaging_tier},
    )
    return limits


def fallback_limits() -> AccountLimits:
    """DEFAULT_LIMITS stamped with the current time."""
    return DEFAULT_LIMITS.model_copy(update={"last_fetched": utc_now_iso()})


async def fetch_account_limits(
    phone_number_id: str,
    access_token: str,
    timeout: float = TIMEOUT,
    api_version: str = DEFAULT_API_VERSION,
) -> AccountLimits:
    """
    Like request_account_limits, but a provider outage of any kind
    (network, timeout, non-2xx, malformed body) yields DEFAULT_LIMITS
    instead of raising. No retries.
    """
    try:
        return await request_account_limits(
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
