"""Inbox conversations, inbox messages and app settings.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "inbox_conversations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("contact_id", sa.String(64)),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("status", sa.String(10), nullable=False, server_default="open"),
        sa.Column("mode", sa.String(10), nullable=False, server_default="bot"),
        sa.Column("priority", sa.String(10), nullable=False, server_default="normal"),
        sa.Column("human_mode_expires_at", sa.DateTime(timezone=True)),
        sa.Column("automation_paused_until", sa.DateTime(timezone=True)),
        sa.Column("automation_paused_by", sa.String(50)),
        sa.Column("handoff_summary", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("mode IN ('bot', 'human')", name="ck_inbox_conversations_mode"),
        sa.CheckConstraint("status IN ('open', 'closed')", name="ck_inbox_conversations_status"),
    )
    op.create_index("ix_inbox_conversations_phone", "inbox_conversations", ["phone"])
    op.create_index("ix_inbox_conversations_status", "inbox_conversations", ["status"])

    op.create_table(
        "inbox_messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "conversation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("inbox_conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("direction", sa.String(10), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("message_type", sa.String(20), nullable=False, server_default="text"),
        sa.Column("delivery_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("whatsapp_message_id", sa.String(100)),
        sa.Column("payload", postgresql.JSONB, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_inbox_messages_conversation_id", "inbox_messages", ["conversation_id"])
    op.create_index("ix_inbox_messages_created_at", "inbox_messages", ["created_at"])

    op.create_table(
        "app_settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value", sa.Text, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("app_settings")
    op.drop_index("ix_inbox_messages_created_at", table_name="inbox_messages")
    op.drop_index("ix_inbox_messages_conversation_id", table_name="inbox_messages")
    op.drop_table("inbox_messages")
    op.drop_index("ix_inbox_conversations_status", table_name="inbox_conversations")
    op.drop_index("ix_inbox_conversations_phone", table_name="inbox_conversations")
    op.drop_table("inbox_conversations")
