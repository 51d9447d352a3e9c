"""
Tests for smartzap/services/conversation_mode.py - bot/human transitions,
lazy human mode expiry and automation pause.
"""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from smartzap.models.inbox_conversation import InboxConversation
from smartzap.models.inbox_message import InboxMessage
from smartzap.services.conversation_mode import (
    DEFAULT_HUMAN_MODE_TIMEOUT_MS,
    ConversationModeController,
    effective_mode,
    get_human_mode_timeout_ms,
    is_automation_paused,
    is_human_mode_expired,
)
from smartzap.services.errors import ConversationNotFoundError, InvalidStateError


FIXED_NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)
HOUR_MS = 3_600_000


async def _notes(db, conversation):
    result = await db.execute(
        select(InboxMessage).where(InboxMessage.conversation_id == conversation.id)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_timeout_from_hours(self):
        assert get_human_mode_timeout_ms(0) == 0
        assert get_human_mode_timeout_ms(None) == 0
        assert get_human_mode_timeout_ms(2) == 2 * HOUR_MS
        assert get_human_mode_timeout_ms(168) == 168 * HOUR_MS

    def test_default_timeout_never_expires(self):
        assert DEFAULT_HUMAN_MODE_TIMEOUT_MS == 0

    def test_no_expiry_never_expired(self):
        assert is_human_mode_expired(None, FIXED_NOW) is False

    def test_expired_at_boundary(self):
        assert is_human_mode_expired(FIXED_NOW, FIXED_NOW) is True
        assert is_human_mode_expired(FIXED_NOW + timedelta(seconds=1), FIXED_NOW) is False

    def test_naive_datetime_treated_as_utc(self):
        naive = datetime(2026, 3, 10, 11, 0, 0)
        assert is_human_mode_expired(naive, FIXED_NOW) is True

    def test_pause_active_until_end(self):
        assert is_automation_paused(None, FIXED_NOW) is False
        assert is_automation_paused(FIXED_NOW + timedelta(minutes=1), FIXED_NOW) is True
        assert is_automation_paused(FIXED_NOW, FIXED_NOW) is False

    async def test_effective_mode(self, make_conversation):
        expired = await make_conversation(
            mode="human", human_mode_expires_at=FIXED_NOW - timedelta(minutes=1)
        )
        active = await make_conversation(
            mode="human", human_mode_expires_at=FIXED_NOW + timedelta(minutes=1)
        )

        assert effective_mode(expired, FIXED_NOW) == "bot"
        assert effective_mode(active, FIXED_NOW) == "human"


# ---------------------------------------------------------------------------
# switch_mode
# ---------------------------------------------------------------------------


class TestSwitchMode:
    async def test_human_without_timeout_has_no_expiry(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)

        await controller.switch_mode(conversation.id, "human", timeout_ms=0)
        await db.refresh(conversation)

        assert conversation.mode == "human"
        assert conversation.human_mode_expires_at is None

    async def test_human_with_timeout_sets_expiry(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)

        updated = await controller.switch_mode(str(conversation.id), "human", timeout_ms=HOUR_MS)

        assert updated.human_mode_expires_at == FIXED_NOW + timedelta(hours=1)

    async def test_bot_clears_expiry(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)
        await controller.switch_mode(conversation.id, "human", timeout_ms=HOUR_MS)

        await controller.switch_mode(conversation.id, "bot")
        await db.refresh(conversation)

        assert conversation.mode == "bot"
        assert conversation.human_mode_expires_at is None

    async def test_pause_untouched(self, db, clock, make_conversation):
        paused_until = FIXED_NOW + timedelta(minutes=30)
        conversation = await make_conversation(automation_paused_until=paused_until)
        controller = ConversationModeController(db, clock=clock)

        updated = await controller.switch_mode(conversation.id, "human")

        assert updated.automation_paused_until == paused_until

    async def test_unknown_mode_rejected(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)

        with pytest.raises(ValueError):
            await controller.switch_mode(conversation.id, "robot")
        assert conversation.mode == "bot"

    async def test_closed_conversation_rejected(self, db, clock, make_conversation):
        conversation = await make_conversation(status="closed")
        controller = ConversationModeController(db, clock=clock)

        with pytest.raises(InvalidStateError):
            await controller.switch_mode(conversation.id, "human")
        assert conversation.mode == "bot"

    async def test_updates_timestamp(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)

        updated = await controller.switch_mode(conversation.id, "human")

        assert updated.updated_at == FIXED_NOW


# ---------------------------------------------------------------------------
# Handoff / return to bot
# ---------------------------------------------------------------------------


class TestHandoff:
    async def test_handoff_forces_human_and_pauses(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)

        updated = await controller.handoff(
            conversation.id, reason="Cliente pediu atendente", summary="Quer cancelar", pause_minutes=60
        )

        assert updated.mode == "human"
        assert updated.human_mode_expires_at is None
        assert updated.automation_paused_until == FIXED_NOW + timedelta(minutes=60)
        assert updated.automation_paused_by == "manual_handoff"
        assert updated.handoff_summary == "Quer cancelar"

    async def test_handoff_clears_existing_expiry(self, db, clock, make_conversation):
        conversation = await make_conversation(
            mode="human", human_mode_expires_at=FIXED_NOW + timedelta(hours=2)
        )
        controller = ConversationModeController(db, clock=clock)

        updated = await controller.handoff(conversation.id)

        assert updated.mode == "human"
        assert updated.human_mode_expires_at is None

    async def test_handoff_without_pause(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)

        updated = await controller.handoff(conversation.id, pause_minutes=0)

        assert updated.automation_paused_until is None
        assert updated.automation_paused_by is None

    async def test_handoff_writes_internal_note(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)

        await controller.handoff(conversation.id, reason="Reclamação", pause_minutes=15)

        notes = await _notes(db, conversation)
        assert len(notes) == 1
        assert notes[0].message_type == "internal_note"
        assert notes[0].direction == "outbound"
        assert notes[0].delivery_status == "delivered"
        assert notes[0].payload["type"] == "manual_handoff"
        assert notes[0].payload["pause_minutes"] == 15
        assert "Reclamação" in notes[0].content

    async def test_handoff_on_closed_rejected(self, db, clock, make_conversation):
        conversation = await make_conversation(status="closed")
        controller = ConversationModeController(db, clock=clock)

        with pytest.raises(InvalidStateError):
            await controller.handoff(conversation.id, pause_minutes=60)
        assert conversation.mode == "bot"
        assert await _notes(db, conversation) == []

    async def test_negative_pause_rejected(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)

        with pytest.raises(ValueError):
            await controller.handoff(conversation.id, pause_minutes=-5)

    async def test_return_to_bot_after_handoff(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)
        await controller.handoff(conversation.id, summary="Resumo", pause_minutes=60)

        updated = await controller.return_to_bot(conversation.id)

        assert updated.mode == "bot"
        assert updated.human_mode_expires_at is None
        assert updated.handoff_summary is None
        assert updated.automation_paused_until is None
        assert updated.automation_paused_by is None
        notes = await _notes(db, conversation)
        assert sorted(n.payload["type"] for n in notes) == ["handoff_ended", "manual_handoff"]

    async def test_return_to_bot_keeps_operator_pause(self, db, clock, make_conversation):
        conversation = await make_conversation(mode="human")
        controller = ConversationModeController(db, clock=clock)
        await controller.pause_automation(conversation.id, 30)

        updated = await controller.return_to_bot(conversation.id)

        assert updated.mode == "bot"
        assert updated.automation_paused_until == FIXED_NOW + timedelta(minutes=30)
        assert updated.automation_paused_by == "operator"


# ---------------------------------------------------------------------------
# Pause / resume
# ---------------------------------------------------------------------------


class TestPause:
    async def test_pause_does_not_change_mode(self, db, clock, make_conversation):
        conversation = await make_conversation(mode="human")
        controller = ConversationModeController(db, clock=clock)

        updated = await controller.pause_automation(conversation.id, 30, reason="Almoço")

        assert updated.mode == "human"
        assert updated.automation_paused_until == FIXED_NOW + timedelta(minutes=30)
        assert updated.automation_paused_by == "operator"

    async def test_resume_clears_pause_only(self, db, clock, make_conversation):
        conversation = await make_conversation(mode="human")
        controller = ConversationModeController(db, clock=clock)
        await controller.pause_automation(conversation.id, 30)

        await controller.resume_automation(conversation.id)
        await db.refresh(conversation)

        assert conversation.mode == "human"
        assert conversation.automation_paused_until is None
        assert conversation.automation_paused_by is None

    async def test_pause_and_resume_write_notes(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)

        await controller.pause_automation(conversation.id, 10)
        await controller.resume_automation(conversation.id)

        types = sorted(n.payload["type"] for n in await _notes(db, conversation))
        assert types == ["automation_paused", "automation_resumed"]

    async def test_non_positive_duration_rejected(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)

        with pytest.raises(ValueError):
            await controller.pause_automation(conversation.id, 0)

    async def test_pause_on_closed_rejected(self, db, clock, make_conversation):
        conversation = await make_conversation(status="closed")
        controller = ConversationModeController(db, clock=clock)

        with pytest.raises(InvalidStateError):
            await controller.pause_automation(conversation.id, 30)
        assert conversation.automation_paused_until is None


# ---------------------------------------------------------------------------
# Close / reopen
# ---------------------------------------------------------------------------


class TestCloseReopen:
    async def test_close_keeps_mode_and_expiry(self, db, clock, make_conversation):
        expires = FIXED_NOW + timedelta(hours=4)
        conversation = await make_conversation(mode="human", human_mode_expires_at=expires)
        controller = ConversationModeController(db, clock=clock)

        updated = await controller.close(conversation.id)

        assert updated.status == "closed"
        assert updated.mode == "human"
        assert updated.human_mode_expires_at == expires

    async def test_close_twice_rejected(self, db, clock, make_conversation):
        conversation = await make_conversation(status="closed")
        controller = ConversationModeController(db, clock=clock)

        with pytest.raises(InvalidStateError):
            await controller.close(conversation.id)

    async def test_reopen(self, db, clock, make_conversation):
        conversation = await make_conversation(status="closed")
        controller = ConversationModeController(db, clock=clock)

        updated = await controller.reopen(conversation.id)

        assert updated.status == "open"

    async def test_reopen_open_rejected(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)

        with pytest.raises(InvalidStateError):
            await controller.reopen(conversation.id)


# ---------------------------------------------------------------------------
# Inbound routing (lazy expiry)
# ---------------------------------------------------------------------------


class TestRouteInbound:
    async def test_bot_answers(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)

        assert await controller.route_inbound(conversation.id) is True

    async def test_active_human_takeover_silences_bot(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)
        await controller.switch_mode(conversation.id, "human", timeout_ms=HOUR_MS)

        clock.now = FIXED_NOW + timedelta(minutes=59)

        assert await controller.route_inbound(conversation.id) is False
        assert conversation.mode == "human"

    async def test_expired_takeover_demoted_to_bot(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)
        await controller.switch_mode(conversation.id, "human", timeout_ms=HOUR_MS)

        clock.now = FIXED_NOW + timedelta(hours=1)

        assert await controller.route_inbound(conversation.id) is True
        assert conversation.mode == "bot"
        assert conversation.human_mode_expires_at is None

    async def test_human_without_expiry_stays(self, db, clock, make_conversation):
        conversation = await make_conversation(mode="human")
        controller = ConversationModeController(db, clock=clock)

        clock.now = FIXED_NOW + timedelta(days=30)

        assert await controller.route_inbound(conversation.id) is False
        assert conversation.mode == "human"

    async def test_paused_bot_does_not_answer(self, db, clock, make_conversation):
        conversation = await make_conversation()
        controller = ConversationModeController(db, clock=clock)
        await controller.pause_automation(conversation.id, 30)

        assert await controller.route_inbound(conversation.id) is False

        clock.now = FIXED_NOW + timedelta(minutes=30)
        assert await controller.route_inbound(conversation.id) is True

    async def test_closed_conversation_rejected(self, db, clock, make_conversation):
        conversation = await make_conversation(status="closed")
        controller = ConversationModeController(db, clock=clock)

        with pytest.raises(InvalidStateError):
            await controller.route_inbound(conversation.id)


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


class TestLookup:
    async def test_unknown_id(self, db, clock):
        controller = ConversationModeController(db, clock=clock)

        with pytest.raises(ConversationNotFoundError):
            await controller.get(uuid.uuid4())

    async def test_malformed_id(self, db, clock):
        controller = ConversationModeController(db, clock=clock)

        with pytest.raises(ConversationNotFoundError):
            await controller.switch_mode("not-a-uuid", "human")

    async def test_not_found_is_lookup_error(self, db, clock):
        controller = ConversationModeController(db, clock=clock)

        with pytest.raises(LookupError):
            await controller.get(str(uuid.uuid4()))


class TestConversationColumns:
    def test_only_automation_state_is_stored(self):
        assert set(InboxConversation.__table__.columns.keys()) == {
            "id",
            "contact_id",
            "phone",
            "status",
            "mode",
            "priority",
            "human_mode_expires_at",
            "automation_paused_until",
            "automation_paused_by",
            "handoff_summary",
            "created_at",
            "updated_at",
        }
