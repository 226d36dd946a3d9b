"""
Generation coordinator.

Drives one "think -> produce reply -> commit" cycle:

1. ``start_turn`` picks the next speaker and publishes a thinking indicator.
2. ``generate`` calls the provider under a timeout. It is the only suspension
   point and never raises for provider problems; failures come back as a
   result carrying the error reason.
3. ``complete_turn`` re-checks the conversation after the suspension point and
   either commits the reply (or a visible error message) or discards it.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from core.settings import PROVIDER_FAILURE_TEMPLATE
from domain.contexts import GenerationRequest, TurnContext
from domain.enums import TurnOutcome
from domain.messages import Message
from exceptions import ProviderError

from .context import build_generation_request
from .state import ConversationState
from .transcript import TranscriptSink

logger = logging.getLogger("GenerationCoordinator")

ProviderFunction = Callable[[GenerationRequest], Awaitable[str]]


@dataclass(frozen=True)
class TurnResult:
    turn: TurnContext
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class GenerationCoordinator:
    """
    Runs individual turns for conversations.

    Stateless across conversations: the state and sink of the conversation
    being served are passed in by its actor.
    """

    def __init__(self, provider: ProviderFunction, timeout_seconds: Optional[float] = None):
        """
        Args:
            provider: Async function mapping a GenerationRequest to reply text
            timeout_seconds: Upper bound for one provider call; None or 0 disables it
        """
        self.provider = provider
        self.timeout_seconds = timeout_seconds or None

    def start_turn(self, state: ConversationState, sink: TranscriptSink) -> Optional[TurnContext]:
        """
        Begin the next turn if the conversation allows one.

        Returns:
            The pending turn, or None when inactive, busy, out of budget or empty
        """
        if not state.can_start_turn():
            return None

        turn = state.begin_turn()
        if turn is None:
            logger.debug(f"Conversation {state.id} has no participants; nothing to schedule")
            return None

        sink.mark_thinking(turn.speaker_id)
        logger.info(f"💭 Turn {turn.turn_id} | Conversation: {state.id} | Speaker: {turn.speaker_id}")
        return turn

    def build_request(
        self, state: ConversationState, sink: TranscriptSink, turn: TurnContext, user_display_name: str
    ) -> GenerationRequest:
        participant = state.participant(turn.speaker_id)
        if participant is None:
            raise ProviderError(f"Unknown participant {turn.speaker_id}", turn.speaker_id)
        return build_generation_request(participant, sink.messages, state.topic, user_display_name)

    async def generate(self, turn: TurnContext, request: GenerationRequest) -> TurnResult:
        """
        Call the provider for ``turn``.

        Cancellation propagates; every other failure becomes an error result.
        """
        try:
            if self.timeout_seconds:
                text = await asyncio.wait_for(self.provider(request), timeout=self.timeout_seconds)
            else:
                text = await self.provider(request)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ {turn.speaker_id} timed out after {self.timeout_seconds}s | Conversation: {turn.conversation_id}")
            return TurnResult(turn=turn, error=f"no reply within {self.timeout_seconds:g} seconds")
        except ProviderError as e:
            logger.warning(f"⚠️ {turn.speaker_id} failed | Conversation: {turn.conversation_id} | {e.message}")
            return TurnResult(turn=turn, error=e.message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ Unexpected provider failure for {turn.speaker_id} | Conversation: {turn.conversation_id} | {e}")
            return TurnResult(turn=turn, error=str(e) or e.__class__.__name__)

        if not isinstance(text, str) or not text.strip():
            return TurnResult(turn=turn, error="empty reply")
        return TurnResult(turn=turn, text=text.strip())

    async def run(
        self, state: ConversationState, sink: TranscriptSink, turn: TurnContext, user_display_name: str
    ) -> TurnResult:
        """Build the request from the current transcript and generate."""
        try:
            request = self.build_request(state, sink, turn, user_display_name)
        except ProviderError as e:
            return TurnResult(turn=turn, error=e.message)
        return await self.generate(turn, request)

    def complete_turn(
        self, state: ConversationState, sink: TranscriptSink, result: TurnResult
    ) -> tuple[TurnOutcome, Optional[Message]]:
        """
        Commit or discard a finished turn.

        A result for a turn that is no longer current (paused, stopped, or
        superseded) is discarded without touching the transcript.

        Returns:
            The outcome and the committed message, if any
        """
        turn = result.turn
        if not state.is_current(turn):
            logger.info(
                f"⏸️ Conversation {state.id} is {state.status} or turn {turn.turn_id} is stale. "
                f"Discarding response from {turn.speaker_id}"
            )
            live = state.pending_turn
            if live is None or live.speaker_id != turn.speaker_id:
                sink.clear_thinking(turn.speaker_id)
            return TurnOutcome.DISCARDED, None

        state.finish_turn(turn)
        if result.failed:
            text = PROVIDER_FAILURE_TEMPLATE.format(speaker=turn.speaker_id, reason=result.error)
            committed = sink.append(Message.error(state.id, turn.speaker_id, text))
            return TurnOutcome.FAILED, committed

        committed = sink.append(Message.from_participant(state.id, turn.speaker_id, result.text))
        logger.info(f"✅ {turn.speaker_id} replied | Conversation: {state.id} | seq {committed.seq}")
        return TurnOutcome.COMMITTED, committed
