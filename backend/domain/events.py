"""
Outbound notifications and conversation snapshots.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .enums import ConversationStatus, EventType
from .messages import Message


@dataclass(frozen=True)
class ConversationEvent:
    """
    A notification published to every subscriber of a conversation.

    Exactly one of ``participant_id`` (thinking), ``message`` (message) or
    ``status`` (status_changed) is set, according to ``type``.
    """

    type: EventType
    conversation_id: str
    participant_id: Optional[str] = None
    message: Optional[Message] = None
    status: Optional[ConversationStatus] = None

    @classmethod
    def thinking(cls, conversation_id: str, participant_id: str) -> "ConversationEvent":
        return cls(type=EventType.THINKING, conversation_id=conversation_id, participant_id=participant_id)

    @classmethod
    def for_message(cls, message: Message) -> "ConversationEvent":
        return cls(type=EventType.MESSAGE, conversation_id=message.conversation_id, message=message)

    @classmethod
    def status_changed(cls, conversation_id: str, status: ConversationStatus) -> "ConversationEvent":
        return cls(type=EventType.STATUS_CHANGED, conversation_id=conversation_id, status=status)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type.value, "conversation_id": self.conversation_id}
        if self.type == EventType.THINKING:
            payload["participant_id"] = self.participant_id
        elif self.type == EventType.MESSAGE and self.message is not None:
            payload["message"] = self.message.to_dict()
        elif self.type == EventType.STATUS_CHANGED and self.status is not None:
            payload["status"] = self.status.value
        return payload


@dataclass
class ConversationSnapshot:
    """
    Point-in-time view handed to a subscriber when it joins.

    Every message with ``seq > after_seq`` committed before the snapshot is in
    ``messages``; everything committed afterwards arrives as a live event.
    """

    conversation_id: str
    topic: str
    status: ConversationStatus
    participants: List[str]
    speaking_order: List[str]
    cursor: int
    messages: List[Message] = field(default_factory=list)
    thinking: List[str] = field(default_factory=list)
    last_seq: int = -1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "snapshot",
            "conversation_id": self.conversation_id,
            "topic": self.topic,
            "status": self.status.value,
            "participants": list(self.participants),
            "speaking_order": list(self.speaking_order),
            "cursor": self.cursor,
            "messages": [m.to_dict() for m in self.messages],
            "thinking": list(self.thinking),
            "last_seq": self.last_seq,
        }
