"""
Transcript message record.
"""

import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional

from utils.serializers import utcnow

from .enums import MessageKind


@dataclass(frozen=True)
class Message:
    """
    One transcript entry. Immutable once committed.

    ``seq`` is the 0-based position in the conversation transcript; it is
    assigned by the transcript sink at commit time and is the offset clients
    resume from.
    """

    conversation_id: str
    sender: str
    text: str
    is_user: bool = False
    kind: MessageKind = MessageKind.PARTICIPANT
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    seq: Optional[int] = None

    @classmethod
    def from_user(cls, conversation_id: str, sender: str, text: str) -> "Message":
        return cls(conversation_id=conversation_id, sender=sender, text=text, is_user=True, kind=MessageKind.USER)

    @classmethod
    def from_participant(cls, conversation_id: str, participant_id: str, text: str) -> "Message":
        return cls(conversation_id=conversation_id, sender=participant_id, text=text)

    @classmethod
    def error(cls, conversation_id: str, participant_id: str, text: str) -> "Message":
        return cls(conversation_id=conversation_id, sender=participant_id, text=text, kind=MessageKind.ERROR)

    @classmethod
    def system(cls, conversation_id: str, sender: str, text: str) -> "Message":
        return cls(conversation_id=conversation_id, sender=sender, text=text, kind=MessageKind.SYSTEM)

    def committed(self, seq: int) -> "Message":
        """Return the canonical record, filling id and timestamp when absent."""
        return replace(
            self,
            seq=seq,
            id=self.id or str(uuid.uuid4()),
            created_at=self.created_at or utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "seq": self.seq,
            "sender": self.sender,
            "text": self.text,
            "is_user": self.is_user,
            "kind": self.kind.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @property
    def is_system(self) -> bool:
        return self.kind == MessageKind.SYSTEM
