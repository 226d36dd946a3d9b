"""
Helper functions shared across CRUD operations.

Converts between ORM rows and the domain types used by the engine.
"""

import logging
from typing import Optional

import models
from domain.contexts import ConversationRecord
from domain.enums import ConversationStatus, MessageKind, ProviderKind
from domain.messages import Message
from domain.participants import CustomParticipant, KnownParticipant, Participant, ProviderRef
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from utils.serializers import as_utc

logger = logging.getLogger("CRUD")


async def get_conversation_with_relationships(
    db: AsyncSession, conversation_id: str
) -> Optional[models.Conversation]:
    """
    Helper to fetch a conversation with participants and messages loaded.
    """
    result = await db.execute(
        select(models.Conversation)
        .options(selectinload(models.Conversation.participants), selectinload(models.Conversation.messages))
        .where(models.Conversation.id == conversation_id)
        # Refresh collections this session already loaded; rows added by foreign key are missing from them
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def participant_from_row(row: models.ConversationParticipant) -> Participant:
    ref = ProviderRef(
        provider=ProviderKind(row.provider),
        model_id=row.model_id,
        api_key=row.api_key,
        endpoint=row.endpoint,
    )
    if row.kind == "custom":
        return CustomParticipant(id=row.participant_id, persona_prompt=row.persona_prompt, provider_ref=ref)
    return KnownParticipant(
        id=row.participant_id,
        persona_prompt=row.persona_prompt,
        provider_ref=ref,
        description=row.description or "",
    )


def participant_columns(participant: Participant) -> dict:
    ref = participant.provider_ref
    return {
        "participant_id": participant.id,
        "kind": participant.kind.value,
        "persona_prompt": participant.persona_prompt,
        "provider": ref.provider.value,
        "model_id": ref.model_id,
        "api_key": ref.api_key,
        "endpoint": ref.endpoint,
        "description": getattr(participant, "description", None) or None,
    }


def message_from_row(row: models.Message) -> Message:
    return Message(
        id=row.id,
        conversation_id=row.conversation_id,
        seq=row.seq,
        sender=row.sender,
        text=row.text,
        is_user=bool(row.is_user),
        kind=MessageKind(row.kind),
        created_at=as_utc(row.created_at),
    )


def record_from_row(row: models.Conversation) -> ConversationRecord:
    return ConversationRecord(
        id=row.id,
        topic=row.topic,
        status=ConversationStatus(row.status),
        participants=[participant_from_row(p) for p in row.participants],
        speaking_order=list(row.speaking_order or []),
        cursor=row.cursor or 0,
        messages=[message_from_row(m) for m in row.messages],
        user_id=row.owner_id,
    )
