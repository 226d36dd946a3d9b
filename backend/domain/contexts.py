"""
Consolidated context data structures.

Contains the context dataclasses passed between the orchestration layer,
the provider adapters and the store.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .enums import ConversationStatus
from .messages import Message
from .participants import Participant


@dataclass(frozen=True)
class GenerationRequest:
    """
    Everything a provider needs to produce one reply.

    Attributes:
        participant: The speaker (carries persona and provider reference)
        persona_prompt: System prompt for the speaker
        transcript_text: Conversation so far, one ``sender: text`` line per message
        topic: Conversation topic
        user_display_name: How the human is addressed
        prompt: Fully rendered user prompt (topic, transcript and instruction)
    """

    participant: Participant
    persona_prompt: str
    transcript_text: str
    topic: str
    user_display_name: str
    prompt: str


@dataclass
class TurnContext:
    """
    Identity of one in-flight turn.

    ``epoch`` is bumped on every pause/stop; a turn whose epoch no longer matches
    the conversation's must not commit anything.
    """

    conversation_id: str
    turn_id: int
    epoch: int
    speaker_id: str


@dataclass
class ConversationRecord:
    """
    Conversation as loaded from (or created in) the store.

    Attributes:
        id: Conversation ID
        topic: Free-text topic
        status: Persisted status
        participants: Participants in registration order
        speaking_order: Shuffled participant ids
        cursor: Index into speaking_order of the next speaker
        messages: Committed transcript, ordered by seq
        user_id: Owner of the conversation, if any
    """

    id: str
    topic: str
    status: ConversationStatus = ConversationStatus.ACTIVE
    participants: List[Participant] = field(default_factory=list)
    speaking_order: List[str] = field(default_factory=list)
    cursor: int = 0
    messages: List[Message] = field(default_factory=list)
    user_id: Optional[str] = None
