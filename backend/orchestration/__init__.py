"""
Conversation orchestration module.

Provides the turn-taking engine: participant registry, round-robin scheduling,
the per-conversation state machine and actor, turn generation, and the
transcript sink that fans events out to subscribers.
"""

from .context import build_generation_request, build_transcript_text, build_turn_prompt
from .conversation import ConversationActor
from .coordinator import GenerationCoordinator, ProviderFunction, TurnResult
from .handlers import PersistenceWriter
from .orchestrator import ConversationOrchestrator
from .reaper import ConversationReaper
from .registry import ParticipantRegistry
from .scheduler import TurnScheduler, fisher_yates_shuffle
from .state import ConversationState
from .transcript import Subscription, TranscriptSink

__all__ = [
    "ConversationActor",
    "ConversationOrchestrator",
    "ConversationReaper",
    "ConversationState",
    "GenerationCoordinator",
    "ParticipantRegistry",
    "PersistenceWriter",
    "ProviderFunction",
    "Subscription",
    "TranscriptSink",
    "TurnResult",
    "TurnScheduler",
    "build_generation_request",
    "build_transcript_text",
    "build_turn_prompt",
    "fisher_yates_shuffle",
]
