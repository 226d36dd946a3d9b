from datetime import datetime
from typing import List, Optional

from domain.enums import ConversationStatus, MessageKind
from domain.events import ConversationSnapshot
from domain.messages import Message as DomainMessage
from domain.participants import Participant as DomainParticipant
from pydantic import BaseModel, Field, field_serializer, field_validator
from utils.serializers import as_utc


def _strip_required(value: str, field_name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{field_name} must not be empty")
    return value


class CustomParticipantCreate(BaseModel):
    """A user-supplied participant: name plus its own credential."""

    name: str
    api_key: Optional[str] = None
    endpoint: Optional[str] = None
    model_id: Optional[str] = None
    persona_prompt: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_required(v, "name")


class ConversationCreate(BaseModel):
    """
    Start a conversation with built-in participants (by id) and/or custom ones.
    The participant count policy is checked by the router against settings.
    """

    topic: str
    participant_ids: List[str] = Field(default_factory=list)
    custom_participants: List[CustomParticipantCreate] = Field(default_factory=list)
    user_id: Optional[str] = None
    start_immediately: bool = False

    @field_validator("topic")
    @classmethod
    def validate_topic(cls, v: str) -> str:
        return _strip_required(v, "topic")

    @property
    def participant_count(self) -> int:
        names = list(dict.fromkeys(self.participant_ids + [c.name for c in self.custom_participants]))
        return len(names)


class MessageCreate(BaseModel):
    text: str
    sender: Optional[str] = None  # Defaults to the conversation owner's display name

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        return _strip_required(v, "text")


class ParticipantAdd(CustomParticipantCreate):
    """Admit a participant into a running conversation (built-in id or custom)."""

    pass


class Participant(BaseModel):
    id: str
    kind: str
    provider: str
    model_id: str
    description: Optional[str] = None

    @classmethod
    def from_domain(cls, participant: DomainParticipant) -> "Participant":
        return cls(
            id=participant.id,
            kind=participant.kind.value,
            provider=participant.provider_ref.provider.value,
            model_id=participant.provider_ref.model_id,
            description=getattr(participant, "description", None) or None,
        )


class Message(BaseModel):
    id: str
    conversation_id: str
    seq: int
    sender: str
    text: str
    is_user: bool
    kind: MessageKind
    created_at: datetime

    @field_serializer("created_at")
    def serialize_created_at(self, dt: datetime, _info):
        return as_utc(dt)

    @classmethod
    def from_domain(cls, message: DomainMessage) -> "Message":
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            seq=message.seq,
            sender=message.sender,
            text=message.text,
            is_user=message.is_user,
            kind=message.kind,
            created_at=message.created_at,
        )


class ConversationSummary(BaseModel):
    id: str
    topic: str
    status: ConversationStatus
    participants: List[str]


class Conversation(BaseModel):
    """Snapshot of a conversation as seen by a newly joined client."""

    id: str
    topic: str
    status: ConversationStatus
    participants: List[str]
    speaking_order: List[str]
    cursor: int
    thinking: List[str]
    last_seq: int
    messages: List[Message]

    @classmethod
    def from_snapshot(cls, snapshot: ConversationSnapshot) -> "Conversation":
        return cls(
            id=snapshot.conversation_id,
            topic=snapshot.topic,
            status=snapshot.status,
            participants=snapshot.participants,
            speaking_order=snapshot.speaking_order,
            cursor=snapshot.cursor,
            thinking=snapshot.thinking,
            last_seq=snapshot.last_seq,
            messages=[Message.from_domain(m) for m in snapshot.messages],
        )


class StatusResponse(BaseModel):
    conversation_id: str
    status: ConversationStatus


class ParticipantAdmitted(BaseModel):
    conversation_id: str
    participant: Participant
    admitted: bool  # False when the participant was already present
