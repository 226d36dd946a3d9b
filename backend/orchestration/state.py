"""
Per-conversation state machine.

Statuses: active, paused, stopped. ``active <-> paused`` is reversible and
``stopped`` is terminal. The state also tracks the participant set, the turn
scheduler, the single pending turn, and the budget of AI turns granted by the
last trigger. It is only ever mutated by the owning ConversationActor.
"""

import itertools
from typing import Dict, List, Optional

from domain.contexts import TurnContext
from domain.enums import ConversationStatus
from domain.participants import Participant
from exceptions import InvalidTransition

from .scheduler import TurnScheduler

_ALLOWED = {
    ConversationStatus.ACTIVE: {ConversationStatus.PAUSED, ConversationStatus.STOPPED},
    ConversationStatus.PAUSED: {ConversationStatus.ACTIVE, ConversationStatus.STOPPED},
    ConversationStatus.STOPPED: set(),
}


class ConversationState:
    def __init__(
        self,
        conversation_id: str,
        topic: str,
        participants: List[Participant],
        scheduler: TurnScheduler,
        status: ConversationStatus = ConversationStatus.ACTIVE,
    ):
        self.id = conversation_id
        self.topic = topic
        self.status = status
        self.scheduler = scheduler
        self._participants: Dict[str, Participant] = {}
        for participant in participants:
            self._participants.setdefault(participant.id, participant)
        for participant_id in self._participants:
            # Rehydrated orders may predate a participant row; keep both in sync
            self.scheduler.append(participant_id)

        self.pending_turn: Optional[TurnContext] = None
        # Bumped on pause/stop so results of older turns are recognisably stale
        self.epoch = 0
        self.turns_remaining: Optional[int] = None
        self._turn_ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    @property
    def participant_ids(self) -> List[str]:
        return list(self._participants.keys())

    def participant(self, participant_id: str) -> Optional[Participant]:
        return self._participants.get(participant_id)

    def admit(self, participant: Participant) -> bool:
        """
        Add a participant and give it a slot at the end of the speaking order.

        An existing id is updated in place without a second slot. A newcomer
        adds one turn to a bounded budget so it is reached when the order wraps.

        Returns:
            True if the participant is new to this conversation

        Raises:
            InvalidTransition: if the conversation is stopped
        """
        if self.status == ConversationStatus.STOPPED:
            raise InvalidTransition(self.status, "admit")
        is_new = participant.id not in self._participants
        self._participants[participant.id] = participant
        self.scheduler.append(participant.id)
        if is_new and self.turns_remaining is not None:
            self.turns_remaining += 1
        return is_new

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self.status == ConversationStatus.ACTIVE

    @property
    def is_stopped(self) -> bool:
        return self.status == ConversationStatus.STOPPED

    def transition(self, requested: ConversationStatus) -> bool:
        """
        Move to ``requested``.

        Returns:
            False if already in that status (no-op)

        Raises:
            InvalidTransition: for any move out of STOPPED
        """
        if self.status == ConversationStatus.STOPPED:
            raise InvalidTransition(self.status, requested)
        if requested == self.status:
            return False
        if requested not in _ALLOWED[self.status]:
            raise InvalidTransition(self.status, requested)

        self.status = requested
        if requested != ConversationStatus.ACTIVE:
            self.epoch += 1
            self.pending_turn = None
        return True

    def pause(self) -> bool:
        return self.transition(ConversationStatus.PAUSED)

    def resume(self) -> bool:
        return self.transition(ConversationStatus.ACTIVE)

    def stop(self) -> bool:
        return self.transition(ConversationStatus.STOPPED)

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def grant_budget(self, max_rounds: Optional[int]) -> None:
        """Allow ``max_rounds`` full cycles of AI turns; None or 0 means unbounded."""
        if not max_rounds or max_rounds < 0:
            self.turns_remaining = None
        else:
            self.turns_remaining = max_rounds * len(self.scheduler)

    def has_budget(self) -> bool:
        return self.turns_remaining is None or self.turns_remaining > 0

    def can_start_turn(self) -> bool:
        return self.is_active and self.pending_turn is None and self.has_budget()

    def begin_turn(self) -> Optional[TurnContext]:
        """
        Select the next speaker and mark a turn as pending.

        Returns:
            The new turn, or None if no participant can speak
        """
        if self.pending_turn is not None:
            raise RuntimeError(f"Conversation {self.id} already has a turn in flight")
        speaker = self.scheduler.next_speaker()
        if speaker is None:
            return None
        if self.turns_remaining is not None:
            self.turns_remaining -= 1
        self.pending_turn = TurnContext(
            conversation_id=self.id,
            turn_id=next(self._turn_ids),
            epoch=self.epoch,
            speaker_id=speaker,
        )
        return self.pending_turn

    def is_current(self, turn: TurnContext) -> bool:
        """Whether ``turn`` may still commit its result."""
        return (
            self.is_active
            and self.epoch == turn.epoch
            and self.pending_turn is not None
            and self.pending_turn.turn_id == turn.turn_id
        )

    def finish_turn(self, turn: TurnContext) -> None:
        if self.pending_turn is not None and self.pending_turn.turn_id == turn.turn_id:
            self.pending_turn = None
