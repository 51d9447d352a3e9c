"""
Inbox conversation API - bot/human mode, handoff and automation pause.

Rejected transitions (closed conversation, reopening an open one) are 409,
unknown conversations 404.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from smartzap.database import get_db
from smartzap.schemas.inbox import (
    ConversationState,
    ConversationUpdate,
    HandoffRequest,
    PauseRequest,
)
from smartzap.services.conversation_mode import (
    MODE_HUMAN,
    STATUS_CLOSED,
    STATUS_OPEN,
    ConversationModeController,
)
from smartzap.services.errors import ConversationNotFoundError, InvalidStateError
from smartzap.services.inbox_settings import get_human_mode_timeout_ms_for_account

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/inbox/conversations", tags=["inbox"])


def _serialize(conversation) -> dict:
    return ConversationState.model_validate(conversation).model_dump(mode="json")


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, ConversationNotFoundError):
        return HTTPException(status_code=404, detail="Conversation not found")
    if isinstance(e, InvalidStateError):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    db: AsyncSession = Depends(get_db),
):
    controller = ConversationModeController(db)
    try:
        conversation = await controller.get(conversation_id)
    except ConversationNotFoundError as e:
        raise _http_error(e)
    return _serialize(conversation)


@router.patch("/{conversation_id}")
async def update_conversation(
    conversation_id: str,
    payload: ConversationUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Change mode and/or status.

    Switching to human applies the account's human mode timeout. A
    reopen is applied before a mode change and a close after it, so both
    can be sent in one request.
    """
    controller = ConversationModeController(db)
    try:
        conversation = await controller.get(conversation_id)

        if payload.status == STATUS_OPEN and conversation.status == STATUS_CLOSED:
            conversation = await controller.reopen(conversation_id)

        if payload.mode:
            timeout_ms = None
            if payload.mode == MODE_HUMAN:
                timeout_ms = await get_human_mode_timeout_ms_for_account(db)
            conversation = await controller.switch_mode(
                conversation_id, payload.mode, timeout_ms=timeout_ms
            )

        if payload.status == STATUS_CLOSED and conversation.status != STATUS_CLOSED:
            conversation = await controller.close(conversation_id)
    except (ConversationNotFoundError, InvalidStateError, ValueError) as e:
        raise _http_error(e)

    return _serialize(conversation)


@router.post("/{conversation_id}/handoff")
async def handoff_conversation(
    conversation_id: str,
    payload: HandoffRequest,
    db: AsyncSession = Depends(get_db),
):
    """Transfer to a human operator, pausing automation for pauseMinutes (default 60)."""
    controller = ConversationModeController(db)
    try:
        conversation = await controller.handoff(
            conversation_id,
            reason=payload.reason,
            summary=payload.summary,
            pause_minutes=payload.pause_minutes,
        )
    except (ConversationNotFoundError, InvalidStateError, ValueError) as e:
        raise _http_error(e)

    message = "Conversa transferida para atendimento humano"
    if payload.pause_minutes > 0:
        message += f". Automação pausada por {payload.pause_minutes} minutos."
    else:
        message += "."
    return {"success": True, "conversation": _serialize(conversation), "message": message}


@router.delete("/{conversation_id}/handoff")
async def end_handoff(
    conversation_id: str,
    db: AsyncSession = Depends(get_db),
):
    controller = ConversationModeController(db)
    try:
        conversation = await controller.return_to_bot(conversation_id)
    except (ConversationNotFoundError, InvalidStateError) as e:
        raise _http_error(e)
    return {
        "success": True,
        "conversation": _serialize(conversation),
        "message": "Conversa retornada para atendimento automático.",
    }


@router.post("/{conversation_id}/pause")
async def pause_conversation(
    conversation_id: str,
    payload: PauseRequest,
    db: AsyncSession = Depends(get_db),
):
    controller = ConversationModeController(db)
    try:
        conversation = await controller.pause_automation(
            conversation_id, payload.duration_minutes, reason=payload.reason
        )
    except (ConversationNotFoundError, InvalidStateError, ValueError) as e:
        raise _http_error(e)
    return _serialize(conversation)


@router.post("/{conversation_id}/resume")
async def resume_conversation(
    conversation_id: str,
    db: AsyncSession = Depends(get_db),
):
    controller = ConversationModeController(db)
    try:
        conversation = await controller.resume_automation(conversation_id)
    except (ConversationNotFoundError, InvalidStateError) as e:
        raise _http_error(e)
    return _serialize(conversation)
