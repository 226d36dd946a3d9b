"""
Participant types.

A participant is either a registry-backed persona (``KnownParticipant``) or a
user-supplied one carrying its own credential (``CustomParticipant``). Both are
immutable once registered for a conversation.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .enums import ParticipantKind, ProviderKind


@dataclass(frozen=True)
class ProviderRef:
    """
    Reference to the provider function that generates a participant's replies.

    Attributes:
        provider: Vendor API to call
        model_id: Model identifier understood by that vendor
        api_key: Per-participant credential (custom participants only)
        endpoint: Per-participant chat-completions URL (custom participants only)
    """

    provider: ProviderKind
    model_id: str
    api_key: Optional[str] = None
    endpoint: Optional[str] = None


@dataclass(frozen=True)
class KnownParticipant:
    id: str
    persona_prompt: str
    provider_ref: ProviderRef
    description: str = ""

    @property
    def kind(self) -> ParticipantKind:
        return ParticipantKind.KNOWN


@dataclass(frozen=True)
class CustomParticipant:
    id: str
    persona_prompt: str
    provider_ref: ProviderRef

    @property
    def kind(self) -> ParticipantKind:
        return ParticipantKind.CUSTOM

    def __repr__(self) -> str:
        # Keep the credential out of logs
        return f"CustomParticipant(id={self.id!r}, model_id={self.provider_ref.model_id!r})"


Participant = Union[KnownParticipant, CustomParticipant]
