"""Conversation routes: creation, snapshots, polling, user messages and status control."""

from typing import List

import schemas
from core import Settings
from dependencies import get_app_settings, get_orchestrator
from fastapi import APIRouter, Depends, HTTPException, Query
from orchestration import ConversationOrchestrator

router = APIRouter()


@router.post("", response_model=schemas.Conversation, status_code=201)
async def create_conversation(
    conversation: schemas.ConversationCreate,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
):
    """Start a conversation between 2 and 3 participants (configurable)."""
    count = conversation.participant_count
    if not settings.min_participants <= count <= settings.max_participants:
        raise HTTPException(
            status_code=422,
            detail=f"Select between {settings.min_participants} and {settings.max_participants} participants",
        )

    actor = await orchestrator.create_conversation(
        topic=conversation.topic,
        participant_ids=conversation.participant_ids,
        custom_participants=[c.model_dump() for c in conversation.custom_participants],
        user_id=conversation.user_id,
        start_immediately=conversation.start_immediately,
    )
    return schemas.Conversation.from_snapshot(actor.snapshot())


@router.get("", response_model=List[schemas.ConversationSummary])
async def list_conversations(
    owner_id: str = Query(None),
    limit: int = Query(50, ge=1, le=200),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """List stored conversations, or the live ones when running without a store."""
    if orchestrator.store is not None:
        records = await orchestrator.store.list_conversations(owner_id=owner_id, limit=limit)
        summaries = []
        for record in records:
            # Live status wins over the last persisted one
            actor = orchestrator.actors.get(record.id)
            summaries.append(
                schemas.ConversationSummary(
                    id=record.id,
                    topic=record.topic,
                    status=actor.status if actor else record.status,
                    participants=[p.id for p in record.participants],
                )
            )
        return summaries

    return [
        schemas.ConversationSummary(
            id=actor.id,
            topic=actor.state.topic,
            status=actor.status,
            participants=actor.state.participant_ids,
        )
        for actor in list(orchestrator.actors.values())[:limit]
    ]


@router.get("/{conversation_id}", response_model=schemas.Conversation)
async def get_conversation(
    conversation_id: str,
    after_seq: int = Query(-1, ge=-1),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    actor = await orchestrator.get_actor(conversation_id)
    return schemas.Conversation.from_snapshot(actor.snapshot(after_seq))


@router.get("/{conversation_id}/messages", response_model=List[schemas.Message])
async def get_messages(
    conversation_id: str,
    after_seq: int = Query(-1, ge=-1),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """Poll for messages committed after ``after_seq``."""
    actor = await orchestrator.get_actor(conversation_id)
    return [schemas.Message.from_domain(m) for m in actor.sink.messages_since(after_seq)]


@router.post("/{conversation_id}/messages", response_model=schemas.Message, status_code=201)
async def send_message(
    conversation_id: str,
    message: schemas.MessageCreate,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    committed = await orchestrator.send_user_message(conversation_id, message.text, sender=message.sender)
    if committed is None:
        raise HTTPException(status_code=409, detail="Conversation is stopped")
    return schemas.Message.from_domain(committed)


@router.post("/{conversation_id}/pause", response_model=schemas.StatusResponse)
async def pause_conversation(conversation_id: str, orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    status = await orchestrator.pause(conversation_id)
    return schemas.StatusResponse(conversation_id=conversation_id, status=status)


@router.post("/{conversation_id}/resume", response_model=schemas.StatusResponse)
async def resume_conversation(conversation_id: str, orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    status = await orchestrator.resume(conversation_id)
    return schemas.StatusResponse(conversation_id=conversation_id, status=status)


@router.post("/{conversation_id}/stop", response_model=schemas.StatusResponse)
async def stop_conversation(conversation_id: str, orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    status = await orchestrator.stop(conversation_id)
    return schemas.StatusResponse(conversation_id=conversation_id, status=status)


@router.post("/{conversation_id}/participants", response_model=schemas.ParticipantAdmitted)
async def add_participant(
    conversation_id: str,
    participant: schemas.ParticipantAdd,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """Admit a built-in or custom participant into a running conversation."""
    admitted_participant, admitted = await orchestrator.admit_participant(
        conversation_id,
        participant.name,
        persona_prompt=participant.persona_prompt,
        api_key=participant.api_key,
        endpoint=participant.endpoint,
        model_id=participant.model_id,
    )
    if admitted is None:
        raise HTTPException(status_code=409, detail="Conversation is stopped")
    return schemas.ParticipantAdmitted(
        conversation_id=conversation_id,
        participant=schemas.Participant.from_domain(admitted_participant),
        admitted=admitted,
    )
