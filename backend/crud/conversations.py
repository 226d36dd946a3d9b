"""
CRUD operations for Conversation entities.
"""

import logging
from typing import List, Optional

import models
from domain.contexts import ConversationRecord
from domain.enums import ConversationStatus
from domain.participants import Participant
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from .helpers import get_conversation_with_relationships, participant_columns

logger = logging.getLogger("CRUD")


async def create_conversation(db: AsyncSession, record: ConversationRecord) -> models.Conversation:
    """Create a conversation together with its participants."""
    db_conversation = models.Conversation(
        id=record.id,
        owner_id=record.user_id,
        topic=record.topic,
        status=record.status.value,
        speaking_order=list(record.speaking_order),
        cursor=record.cursor,
    )
    for position, participant in enumerate(record.participants):
        db_conversation.participants.append(
            models.ConversationParticipant(position=position, **participant_columns(participant))
        )
    db.add(db_conversation)
    await db.commit()
    return db_conversation


async def get_conversation(db: AsyncSession, conversation_id: str) -> Optional[models.Conversation]:
    """Get a conversation with participants and messages loaded."""
    return await get_conversation_with_relationships(db, conversation_id)


async def list_conversations(
    db: AsyncSession, owner_id: Optional[str] = None, limit: int = 50
) -> List[models.Conversation]:
    """Most recently updated conversations first."""
    query = (
        select(models.Conversation)
        .options(selectinload(models.Conversation.participants))
        .order_by(models.Conversation.updated_at.desc())
        .limit(limit)
    )
    if owner_id:
        query = query.where(models.Conversation.owner_id == owner_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def update_status(db: AsyncSession, conversation_id: str, status: ConversationStatus) -> bool:
    """
    Persist a status change.

    Returns:
        False if the conversation does not exist
    """
    db_conversation = await db.get(models.Conversation, conversation_id)
    if db_conversation is None:
        return False
    db_conversation.status = ConversationStatus(status).value
    await db.commit()
    return True


async def save_schedule(db: AsyncSession, conversation_id: str, speaking_order: List[str], cursor: int) -> bool:
    """Persist the speaking order and cursor."""
    db_conversation = await db.get(models.Conversation, conversation_id)
    if db_conversation is None:
        return False
    db_conversation.speaking_order = list(speaking_order)
    db_conversation.cursor = cursor
    await db.commit()
    return True


async def add_participant(
    db: AsyncSession, conversation_id: str, participant: Participant, position: int
) -> models.ConversationParticipant:
    """
    Add a participant to a conversation.

    Re-adding an existing participant id updates its row instead of inserting.
    """
    result = await db.execute(
        select(models.ConversationParticipant).where(
            models.ConversationParticipant.conversation_id == conversation_id,
            models.ConversationParticipant.participant_id == participant.id,
        )
    )
    row = result.scalar_one_or_none()
    columns = participant_columns(participant)
    if row is None:
        row = models.ConversationParticipant(conversation_id=conversation_id, position=position, **columns)
        db.add(row)
    else:
        for key, value in columns.items():
            setattr(row, key, value)
    await db.commit()
    return row
