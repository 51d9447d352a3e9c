"""
InboxMessage model - messages and internal notes on an inbox conversation.
Handoffs, returns to bot, pauses and resumes are recorded as internal notes.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from smartzap.database import Base


class InboxMessage(Base):
    __tablename__ = "inbox_messages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("inbox_conversations.id"), nullable=False
    )

    direction: Mapped[str] = mapped_column(String(10), nullable=False)  # inbound, outbound
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(
        String(20), default="text"
    )  # text, template, internal_note
    delivery_status: Mapped[str] = mapped_column(
        String(20), default="pending"
    )  # pending, sent, delivered, read, failed
    whatsapp_message_id: Mapped[Optional[str]] = mapped_column(String(100))
    payload: Mapped[Optional[dict]] = mapped_column(JSONB, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    conversation: Mapped["InboxConversation"] = relationship(back_populates="messages")

    __table_args__ = (
        Index("ix_inbox_messages_conversation_id", "conversation_id"),
        Index("ix_inbox_messages_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<InboxMessage {self.direction} type={self.message_type}>"
