"""
Inbox API schemas: conversation state, mode/handoff/pause requests and
inbox settings.
"""
import uuid
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ConversationState(BaseModel):
    """Conversation as returned by the inbox endpoints."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    phone: str
    contact_id: Optional[str] = None
    status: str
    mode: str
    priority: str = "normal"
    human_mode_expires_at: Optional[datetime] = None
    automation_paused_until: Optional[datetime] = None
    automation_paused_by: Optional[str] = None
    handoff_summary: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ConversationUpdate(BaseModel):
    """PATCH body. Mode and status may be changed together."""
    mode: Optional[str] = Field(default=None, pattern="^(bot|human)$")
    status: Optional[str] = Field(default=None, pattern="^(open|closed)$")


class HandoffRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reason: Optional[str] = Field(default=None, max_length=500)
    summary: Optional[str] = Field(default=None, max_length=2000)
    pause_minutes: int = Field(default=60, ge=0, le=1440, alias="pauseMinutes")


class PauseRequest(BaseModel):
    duration_minutes: int = Field(..., ge=1, le=1440)
    reason: Optional[str] = Field(default=None, max_length=500)


class InboxSettings(BaseModel):
    retention_days: int
    human_mode_timeout_hours: int


class InboxSettingsUpdate(BaseModel):
    retention_days: Optional[int] = None
    human_mode_timeout_hours: Optional[int] = None


class CampaignValidationRequest(BaseModel):
    contact_count: int = Field(..., ge=0)
