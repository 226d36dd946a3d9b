"""
CRUD operations module.

This module provides database operations organized by domain aggregate.
All CRUD functions are exported at the package level.
"""

# Conversation operations
from .conversations import (
    add_participant,
    create_conversation,
    get_conversation,
    list_conversations,
    save_schedule,
    update_status,
)

# Conversion helpers
from .helpers import message_from_row, participant_from_row, record_from_row

# Message operations
from .messages import append_message, get_messages, get_messages_since

# User operations
from .users import get_user_display_name, upsert_user

__all__ = [
    # Conversations
    "create_conversation",
    "get_conversation",
    "list_conversations",
    "update_status",
    "save_schedule",
    "add_participant",
    # Messages
    "append_message",
    "get_messages",
    "get_messages_since",
    # Users
    "upsert_user",
    "get_user_display_name",
    # Helpers
    "message_from_row",
    "participant_from_row",
    "record_from_row",
]
