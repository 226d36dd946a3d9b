"""
CRUD operations for Message entities.
"""

import logging
from typing import List

import models
from domain.messages import Message
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from utils.serializers import utcnow

logger = logging.getLogger("CRUD")


async def append_message(db: AsyncSession, message: Message) -> models.Message:
    """
    Store a committed message.

    Idempotent on (conversation_id, seq): writing the same position twice
    returns the existing row.

    Args:
        db: Database session
        message: Committed message (seq assigned)

    Returns:
        The stored row
    """
    if message.seq is None:
        raise ValueError("Only committed messages (with seq) can be stored")

    result = await db.execute(
        select(models.Message).where(
            models.Message.conversation_id == message.conversation_id,
            models.Message.seq == message.seq,
        )
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        if existing.id != message.id:
            logger.warning(
                f"Conversation {message.conversation_id} already has seq {message.seq} ({existing.id}); keeping it"
            )
        return existing

    db_message = models.Message(
        id=message.id,
        conversation_id=message.conversation_id,
        seq=message.seq,
        sender=message.sender,
        text=message.text,
        is_user=message.is_user,
        kind=message.kind.value,
        created_at=message.created_at,
    )
    db.add(db_message)

    # Bump conversation activity atomically with the message
    conversation = await db.get(models.Conversation, message.conversation_id)
    if conversation:
        conversation.updated_at = utcnow()

    await db.commit()
    return db_message


async def get_messages(db: AsyncSession, conversation_id: str) -> List[models.Message]:
    """Full transcript ordered by seq."""
    result = await db.execute(
        select(models.Message).where(models.Message.conversation_id == conversation_id).order_by(models.Message.seq)
    )
    return list(result.scalars().all())


async def get_messages_since(db: AsyncSession, conversation_id: str, after_seq: int) -> List[models.Message]:
    """
    Messages with seq greater than ``after_seq``, for polling clients.
    """
    result = await db.execute(
        select(models.Message)
        .where(models.Message.conversation_id == conversation_id, models.Message.seq > after_seq)
        .order_by(models.Message.seq)
    )
    return list(result.scalars().all())
