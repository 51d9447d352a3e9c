"""
Conversation mode controller - bot/human takeover and automation pause.

Every inbox conversation is answered either by the bot or by a human
operator. A human takeover may carry an expiry; once it passes, the next
inbound message hands the conversation back to the bot (lazy expiry, no
scheduler). Pausing automation is orthogonal to the mode: it silences the
bot for a while without changing who owns the conversation.

Transitions are validated before anything is mutated, so a rejected
transition leaves the row untouched.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from smartzap.models.inbox_conversation import InboxConversation
from smartzap.models.inbox_message import InboxMessage
from smartzap.services.errors import ConversationNotFoundError, InvalidStateError

logger = logging.getLogger(__name__)

MODE_BOT = "bot"
MODE_HUMAN = "human"
MODES = (MODE_BOT, MODE_HUMAN)

STATUS_OPEN = "open"
STATUS_CLOSED = "closed"

# 0 = human takeover never expires
DEFAULT_HUMAN_MODE_TIMEOUT_MS = 0

PAUSED_BY_HANDOFF = "manual_handoff"
PAUSED_BY_OPERATOR = "operator"

MS_PER_HOUR = 3_600_000


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_human_mode_timeout_ms(hours) -> int:
    """Account timeout setting (hours) to milliseconds. 0 or less disables expiry."""
    if not hours or hours <= 0:
        return 0
    return int(hours * MS_PER_HOUR)


def is_human_mode_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """A takeover without expiry never expires; otherwise expired once now reaches it."""
    if expires_at is None:
        return False
    now = now or _utc_now()
    return _as_utc(expires_at) <= _as_utc(now)


def is_automation_paused(paused_until: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if paused_until is None:
        return False
    now = now or _utc_now()
    return _as_utc(paused_until) > _as_utc(now)


def effective_mode(conversation: InboxConversation, now: Optional[datetime] = None) -> str:
    """Mode as seen at `now`: an expired human takeover reads as bot."""
    if conversation.mode == MODE_HUMAN and is_human_mode_expired(
        conversation.human_mode_expires_at, now
    ):
        return MODE_BOT
    return conversation.mode


class ConversationModeController:
    """
    Mode transitions for one inbox conversation at a time.

    Works inside the caller's session: changes are flushed, never committed.
    The clock is injectable so expiry can be tested deterministically.
    """

    def __init__(self, db: AsyncSession, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or _utc_now

    async def get(self, conversation_id) -> InboxConversation:
        try:
            key = conversation_id if isinstance(conversation_id, uuid.UUID) else uuid.UUID(str(conversation_id))
        except ValueError:
            raise ConversationNotFoundError(f"Conversation not found: {conversation_id}") from None

        result = await self.db.execute(
            select(InboxConversation).where(InboxConversation.id == key)
        )
        conversation = result.scalar_one_or_none()
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation not found: {conversation_id}")
        return conversation

    async def _get_open(self, conversation_id, action: str) -> InboxConversation:
        conversation = await self.get(conversation_id)
        if conversation.status == STATUS_CLOSED:
            raise InvalidStateError(
                f"Cannot {action}: conversation is closed",
                conversation_id=str(conversation.id),
            )
        return conversation

    def _add_note(self, conversation: InboxConversation, content: str, payload: dict) -> InboxMessage:
        note = InboxMessage(
            conversation_id=conversation.id,
            direction="outbound",
            content=content,
            message_type="internal_note",
            delivery_status="delivered",
            payload=payload,
        )
        self.db.add(note)
        return note

    async def _save(self, conversation: InboxConversation, now: datetime) -> InboxConversation:
        conversation.updated_at = now
        await self.db.flush()
        return conversation

    async def switch_mode(
        self,
        conversation_id,
        target_mode: str,
        timeout_ms: Optional[int] = None,
    ) -> InboxConversation:
        """
        Switch between bot and human.

        To human: a positive timeout_ms sets the takeover expiry, 0/None
        means no expiry. To bot: the expiry is cleared. Pause is untouched.
        """
        if target_mode not in MODES:
            raise ValueError(f"Unknown conversation mode: {target_mode}")
        if timeout_ms is not None and timeout_ms < 0:
            raise ValueError("timeout_ms must be >= 0")

        conversation = await self._get_open(conversation_id, f"switch to {target_mode}")
        now = self.clock()

        conversation.mode = target_mode
        if target_mode == MODE_HUMAN and timeout_ms:
            conversation.human_mode_expires_at = now + timedelta(milliseconds=timeout_ms)
        else:
            conversation.human_mode_expires_at = None

        logger.info(
            "Conversation mode switched to %s", target_mode,
            extra={"conversation_id": str(conversation.id)},
        )
        return await self._save(conversation, now)

    async def handoff(
        self,
        conversation_id,
        reason: Optional[str] = None,
        summary: Optional[str] = None,
        pause_minutes: Optional[int] = None,
    ) -> InboxConversation:
        """
        Hand the conversation to a human operator.

        Forces human mode with no expiry. A positive pause_minutes also
        pauses automation, owned by the handoff.
        """
        if pause_minutes is not None and pause_minutes < 0:
            raise ValueError("pause_minutes must be >= 0")

        conversation = await self._get_open(conversation_id, "hand off")
        now = self.clock()
        pause_until = now + timedelta(minutes=pause_minutes) if pause_minutes else None

        conversation.mode = MODE_HUMAN
        conversation.human_mode_expires_at = None
        if pause_until:
            conversation.automation_paused_until = pause_until
            conversation.automation_paused_by = PAUSED_BY_HANDOFF
        if summary:
            conversation.handoff_summary = summary

        content = "Transferência manual para atendente"
        if reason:
            content += f"\n\nMotivo: {reason}"
        if summary:
            content += f"\n\nResumo: {summary}"
        if pause_until:
            content += f"\n\nAutomação pausada por {pause_minutes} minutos"
        self._add_note(conversation, content, {
            "type": "manual_handoff",
            "reason": reason,
            "summary": summary,
            "pause_minutes": pause_minutes or 0,
            "pause_until": pause_until.isoformat() if pause_until else None,
            "timestamp": now.isoformat(),
        })

        logger.info(
            "Conversation handed off to human (pause=%s min)", pause_minutes or 0,
            extra={"conversation_id": str(conversation.id)},
        )
        return await self._save(conversation, now)

    async def return_to_bot(self, conversation_id) -> InboxConversation:
        """
        End a human takeover.

        Same end state as switch_mode(bot), plus the handoff summary is
        cleared and a pause owned by the handoff ends with it. A pause set
        by an operator stays.
        """
        conversation = await self._get_open(conversation_id, "return to bot")
        now = self.clock()

        conversation.mode = MODE_BOT
        conversation.human_mode_expires_at = None
        conversation.handoff_summary = None
        if conversation.automation_paused_by == PAUSED_BY_HANDOFF:
            conversation.automation_paused_until = None
            conversation.automation_paused_by = None

        self._add_note(
            conversation,
            "Atendimento retornado para o bot\n\nA automação foi reativada.",
            {"type": "handoff_ended", "timestamp": now.isoformat()},
        )

        logger.info(
            "Conversation returned to bot",
            extra={"conversation_id": str(conversation.id)},
        )
        return await self._save(conversation, now)

    async def pause_automation(
        self,
        conversation_id,
        duration_minutes: int,
        reason: Optional[str] = None,
    ) -> InboxConversation:
        """Silence the bot for duration_minutes. Mode is untouched."""
        if duration_minutes is None or duration_minutes <= 0:
            raise ValueError("duration_minutes must be > 0")

        conversation = await self._get_open(conversation_id, "pause automation")
        now = self.clock()
        paused_until = now + timedelta(minutes=duration_minutes)

        conversation.automation_paused_until = paused_until
        conversation.automation_paused_by = PAUSED_BY_OPERATOR

        content = f"Automação pausada por {duration_minutes} minutos"
        if reason:
            content += f"\n\nMotivo: {reason}"
        self._add_note(conversation, content, {
            "type": "automation_paused",
            "reason": reason,
            "duration_minutes": duration_minutes,
            "paused_until": paused_until.isoformat(),
            "timestamp": now.isoformat(),
        })

        logger.info(
            "Automation paused for %d minutes", duration_minutes,
            extra={"conversation_id": str(conversation.id)},
        )
        return await self._save(conversation, now)

    async def resume_automation(self, conversation_id) -> InboxConversation:
        conversation = await self._get_open(conversation_id, "resume automation")
        now = self.clock()

        conversation.automation_paused_until = None
        conversation.automation_paused_by = None
        self._add_note(
            conversation,
            "Automação retomada",
            {"type": "automation_resumed", "timestamp": now.isoformat()},
        )

        logger.info(
            "Automation resumed",
            extra={"conversation_id": str(conversation.id)},
        )
        return await self._save(conversation, now)

    async def close(self, conversation_id) -> InboxConversation:
        """Close the conversation. Mode and takeover expiry are kept as they are."""
        conversation = await self._get_open(conversation_id, "close")
        now = self.clock()
        conversation.status = STATUS_CLOSED
        logger.info("Conversation closed", extra={"conversation_id": str(conversation.id)})
        return await self._save(conversation, now)

    async def reopen(self, conversation_id) -> InboxConversation:
        conversation = await self.get(conversation_id)
        if conversation.status == STATUS_OPEN:
            raise InvalidStateError(
                "Cannot reopen: conversation is already open",
                conversation_id=str(conversation.id),
            )
        now = self.clock()
        conversation.status = STATUS_OPEN
        logger.info("Conversation reopened", extra={"conversation_id": str(conversation.id)})
        return await self._save(conversation, now)

    async def route_inbound(self, conversation_id) -> bool:
        """
        Called when a customer message arrives.

        Demotes an expired human takeover to bot, then returns whether the
        bot should answer: mode is bot and automation is not paused.
        """
        conversation = await self._get_open(conversation_id, "route inbound message")
        now = self.clock()

        if conversation.mode == MODE_HUMAN and is_human_mode_expired(
            conversation.human_mode_expires_at, now
        ):
            conversation.mode = MODE_BOT
            conversation.human_mode_expires_at = None
            logger.info(
                "Human mode expired, conversation returned to bot",
                extra={"conversation_id": str(conversation.id)},
            )
            await self._save(conversation, now)

        return conversation.mode == MODE_BOT and not is_automation_paused(
            conversation.automation_paused_until, now
        )
