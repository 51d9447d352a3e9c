"""
InboxConversation model - one WhatsApp thread per contact.
Holds the automation state: who answers (bot or human operator), until when
a human takeover lasts, and whether the bot is temporarily paused.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from smartzap.database import Base


class InboxConversation(Base):
    __tablename__ = "inbox_conversations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    contact_id: Mapped[Optional[str]] = mapped_column(String(64))
    phone: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(String(10), default="open")  # open, closed
    mode: Mapped[str] = mapped_column(String(10), default="bot")  # bot, human
    priority: Mapped[str] = mapped_column(
        String(10), default="normal"
    )  # low, normal, high, urgent

    # Automation state. Expiry only means something while mode == human.
    human_mode_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    automation_paused_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    automation_paused_by: Mapped[Optional[str]] = mapped_column(
        String(50)
    )  # manual_handoff, operator
    handoff_summary: Mapped[Optional[str]] = mapped_column(Text)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    messages: Mapped[list["InboxMessage"]] = relationship(
        back_populates="conversation", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_inbox_conversations_phone", "phone"),
        Index("ix_inbox_conversations_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<InboxConversation {self.phone} mode={self.mode} status={self.status}>"
