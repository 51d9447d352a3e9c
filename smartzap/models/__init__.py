"""
Database models - import all models here so Alembic can discover them.
"""
from smartzap.models.inbox_conversation import InboxConversation
from smartzap.models.inbox_message import InboxMessage
from smartzap.models.app_setting import AppSetting

__all__ = [
    "InboxConversation",
    "InboxMessage",
    "AppSetting",
]
