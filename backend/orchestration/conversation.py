"""
Conversation actor.

One actor owns one conversation. Commands (user messages, status changes,
admissions, finished turns) go through an inbox consumed by a single task, so
the state machine and transcript have exactly one writer. Provider calls and
the pacing delay run as separate tasks whose outcomes are fed back through the
same inbox; at most one of them exists at a time.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from core.settings import SYSTEM_SENDER
from domain.contexts import ConversationRecord, TurnContext
from domain.enums import ConversationStatus, TurnOutcome
from domain.events import ConversationSnapshot
from domain.messages import Message
from domain.participants import Participant
from exceptions import InvalidTransition

from .coordinator import GenerationCoordinator, TurnResult
from .handlers import PersistenceWriter
from .scheduler import TurnScheduler
from .state import ConversationState
from .transcript import Subscription, TranscriptSink

logger = logging.getLogger("ConversationActor")

JOIN_NOTICE_TEMPLATE = "{name} has joined the conversation."


# ----------------------------------------------------------------------
# Inbox commands
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class UserMessage:
    sender: str
    text: str


@dataclass(frozen=True)
class ChangeStatus:
    requested: ConversationStatus


@dataclass(frozen=True)
class AdmitParticipant:
    participant: Participant


@dataclass(frozen=True)
class TurnResolved:
    result: TurnResult


@dataclass(frozen=True)
class PacingElapsed:
    epoch: int


class ConversationActor:
    def __init__(
        self,
        state: ConversationState,
        sink: TranscriptSink,
        coordinator: GenerationCoordinator,
        writer: Optional[PersistenceWriter] = None,
        user_display_name: str = "User",
        turn_delay_seconds: float = 1.0,
        max_rounds_per_trigger: Optional[int] = None,
    ):
        self.state = state
        self.sink = sink
        self.coordinator = coordinator
        self.writer = writer or PersistenceWriter(state.id, None)
        self.user_display_name = user_display_name
        self.turn_delay_seconds = turn_delay_seconds
        self.max_rounds_per_trigger = max_rounds_per_trigger

        self._inbox: asyncio.Queue[Tuple[Any, Optional[asyncio.Future]]] = asyncio.Queue()
        self._loop_task: Optional[asyncio.Task] = None
        self._turn_task: Optional[asyncio.Task] = None
        self._pacing_task: Optional[asyncio.Task] = None
        self.last_activity = time.monotonic()
        self.closed = False

    @classmethod
    def from_record(
        cls,
        record: ConversationRecord,
        coordinator: GenerationCoordinator,
        writer: Optional[PersistenceWriter] = None,
        **kwargs,
    ) -> "ConversationActor":
        state = ConversationState(
            conversation_id=record.id,
            topic=record.topic,
            participants=record.participants,
            scheduler=TurnScheduler(record.speaking_order, record.cursor),
            status=record.status,
        )
        sink = TranscriptSink(record.id, record.messages)
        return cls(state, sink, coordinator, writer=writer, **kwargs)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self.state.id

    @property
    def status(self) -> ConversationStatus:
        return self.state.status

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def is_busy(self) -> bool:
        """A turn is generating or the pacing delay before the next one is running."""
        return self.state.pending_turn is not None or self._pacing_task is not None

    def idle_seconds(self) -> float:
        return time.monotonic() - self.last_activity

    def is_evictable(self, max_idle_seconds: float) -> bool:
        return (
            not self.is_busy
            and self._inbox.empty()
            and self.sink.subscriber_count == 0
            and self.idle_seconds() >= max_idle_seconds
        )

    def start(self) -> None:
        if self._loop_task is None:
            self.writer.start()
            self._loop_task = asyncio.create_task(self._run(), name=f"conversation-{self.id}")
            logger.debug(f"▶️ Actor started | Conversation: {self.id}")

    async def close(self, timeout: float = 5.0) -> None:
        """Cancel in-flight work, flush pending writes and release subscribers."""
        if self.closed:
            return
        self.closed = True

        await self._cancel_task(self._turn_task)
        await self._cancel_task(self._pacing_task)
        self._turn_task = None
        self._pacing_task = None
        await self._cancel_task(self._loop_task)
        self._loop_task = None

        while not self._inbox.empty():
            _, reply = self._inbox.get_nowait()
            if reply is not None and not reply.done():
                reply.cancel()

        await self.writer.close(timeout=timeout)
        self.sink.close_all()
        logger.info(f"🧹 Actor closed | Conversation: {self.id}")

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def snapshot(self, after_seq: int = -1) -> ConversationSnapshot:
        return self._build_snapshot(self.sink.messages_since(after_seq), self.sink.thinking)

    def join(self, after_seq: int = -1) -> Subscription:
        """
        Subscribe to live events.

        The returned subscription carries a snapshot of everything after
        ``after_seq``; every later commit is delivered as an event.
        """
        self.last_activity = time.monotonic()
        return self.sink.open_subscription(after_seq, snapshot_factory=self._build_snapshot)

    def leave(self, subscription: Subscription) -> None:
        subscription.close()
        self.last_activity = time.monotonic()

    def _build_snapshot(self, messages, thinking) -> ConversationSnapshot:
        return ConversationSnapshot(
            conversation_id=self.id,
            topic=self.state.topic,
            status=self.state.status,
            participants=self.state.participant_ids,
            speaking_order=self.state.scheduler.speaking_order,
            cursor=self.state.scheduler.cursor,
            messages=list(messages),
            thinking=list(thinking),
            last_seq=self.sink.last_seq,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def send_user_message(self, sender: str, text: str) -> Optional[Message]:
        """
        Append a user message and, if active, trigger the next AI turn.

        Returns:
            The committed message, or None if the conversation is stopped
        """
        return await self._call(UserMessage(sender=sender, text=text))

    async def pause(self) -> ConversationStatus:
        return await self._call(ChangeStatus(ConversationStatus.PAUSED))

    async def resume(self) -> ConversationStatus:
        return await self._call(ChangeStatus(ConversationStatus.ACTIVE))

    async def stop(self) -> ConversationStatus:
        return await self._call(ChangeStatus(ConversationStatus.STOPPED))

    async def admit(self, participant: Participant) -> Optional[bool]:
        """
        Admit a participant mid-conversation.

        Returns:
            True if new, False if it was already present, None if refused (stopped)
        """
        return await self._call(AdmitParticipant(participant))

    async def _call(self, command: Any) -> Any:
        if self.closed:
            raise RuntimeError(f"Conversation actor {self.id} is closed")
        if self._loop_task is None:
            self.start()
        reply = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait((command, reply))
        return await reply

    # ------------------------------------------------------------------
    # Inbox loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            command, reply = await self._inbox.get()
            self.last_activity = time.monotonic()
            try:
                result = await self._handle(command)
            except Exception as e:
                logger.error(f"💥 Error handling {type(command).__name__} | Conversation: {self.id} | {e}")
                if reply is not None and not reply.done():
                    reply.set_exception(e)
                continue
            if reply is not None and not reply.done():
                reply.set_result(result)

    async def _handle(self, command: Any) -> Any:
        if isinstance(command, UserMessage):
            return self._on_user_message(command)
        if isinstance(command, ChangeStatus):
            return await self._on_change_status(command.requested)
        if isinstance(command, AdmitParticipant):
            return self._on_admit(command.participant)
        if isinstance(command, TurnResolved):
            return self._on_turn_resolved(command.result)
        if isinstance(command, PacingElapsed):
            return self._on_pacing_elapsed(command.epoch)
        raise TypeError(f"Unknown command: {command!r}")

    def _on_user_message(self, command: UserMessage) -> Optional[Message]:
        if self.state.is_stopped:
            logger.warning(f"⚠️ Ignoring user message for stopped conversation {self.id}")
            return None

        committed = self.sink.append(Message.from_user(self.id, command.sender, command.text))
        self.writer.save_message(committed)
        logger.info(f"🔵 USER MESSAGE | Conversation: {self.id} | {command.text[:50]}")

        self.state.grant_budget(self.max_rounds_per_trigger)
        if self.state.is_active and not self.is_busy:
            self._start_next_turn()
        return committed

    async def _on_change_status(self, requested: ConversationStatus) -> ConversationStatus:
        try:
            changed = self.state.transition(requested)
        except InvalidTransition as e:
            logger.warning(f"⚠️ {e} | Conversation: {self.id}")
            return self.state.status

        if not changed:
            return self.state.status

        if requested == ConversationStatus.ACTIVE:
            logger.info(f"▶️ Resumed | Conversation: {self.id}")
            self._announce_status()
            self.state.grant_budget(self.max_rounds_per_trigger)
            self._start_next_turn()
        else:
            # Paused or stopped: nothing in flight may commit
            await self._cancel_in_flight()
            self.sink.clear_thinking()
            logger.info(f"{'⏸️ Paused' if requested == ConversationStatus.PAUSED else '🛑 Stopped'} | Conversation: {self.id}")
            self._announce_status()
        return self.state.status

    def _on_admit(self, participant: Participant) -> Optional[bool]:
        previous = self.state.participant(participant.id)
        try:
            is_new = self.state.admit(participant)
        except InvalidTransition as e:
            logger.warning(f"⚠️ {e} | Conversation: {self.id}")
            return None

        if is_new:
            self.writer.save_participant(participant, len(self.state.participant_ids) - 1)
            self.writer.save_schedule(self.state.scheduler.speaking_order, self.state.scheduler.cursor)
            notice = self.sink.append(
                Message.system(self.id, SYSTEM_SENDER, JOIN_NOTICE_TEMPLATE.format(name=participant.id))
            )
            self.writer.save_message(notice)
            logger.info(f"👋 {participant.id} joined | Conversation: {self.id}")
        elif previous != participant:
            self.writer.save_participant(participant, self.state.participant_ids.index(participant.id))
            logger.info(f"✏️ {participant.id} updated | Conversation: {self.id}")
        return is_new

    def _on_turn_resolved(self, result: TurnResult) -> TurnOutcome:
        if self._turn_task is not None and self._turn_task.done():
            self._turn_task = None

        outcome, committed = self.coordinator.complete_turn(self.state, self.sink, result)
        if committed is not None:
            self.writer.save_message(committed)
        if outcome in (TurnOutcome.COMMITTED, TurnOutcome.FAILED):
            self._after_turn()
        return outcome

    def _on_pacing_elapsed(self, epoch: int) -> None:
        self._pacing_task = None
        if epoch != self.state.epoch or not self.state.is_active:
            return
        self._start_next_turn()

    # ------------------------------------------------------------------
    # Turn chaining
    # ------------------------------------------------------------------

    def _start_next_turn(self) -> Optional[TurnContext]:
        turn = self.coordinator.start_turn(self.state, self.sink)
        if turn is None:
            if self.state.is_active and not self.state.has_budget():
                logger.info(f"💤 Turn budget spent, waiting for next trigger | Conversation: {self.id}")
            return None

        self.writer.save_schedule(self.state.scheduler.speaking_order, self.state.scheduler.cursor)
        task = asyncio.create_task(
            self.coordinator.run(self.state, self.sink, turn, self.user_display_name),
            name=f"turn-{self.id}-{turn.turn_id}",
        )
        task.add_done_callback(lambda t, turn=turn: self._on_turn_task_done(turn, t))
        self._turn_task = task
        return turn

    def _on_turn_task_done(self, turn: TurnContext, task: asyncio.Task) -> None:
        if task.cancelled() or self.closed:
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"❌ Turn {turn.turn_id} crashed | Conversation: {self.id} | {exc}")
            result = TurnResult(turn=turn, error=str(exc) or exc.__class__.__name__)
        else:
            result = task.result()
        self._inbox.put_nowait((TurnResolved(result), None))

    def _after_turn(self) -> None:
        if not self.state.is_active:
            return
        if not self.state.has_budget():
            logger.info(f"💤 Turn budget spent, waiting for next trigger | Conversation: {self.id}")
            return
        if self.turn_delay_seconds <= 0:
            self._start_next_turn()
            return
        self._pacing_task = asyncio.create_task(self._pace(self.state.epoch), name=f"pacing-{self.id}")

    async def _pace(self, epoch: int) -> None:
        await asyncio.sleep(self.turn_delay_seconds)
        self._inbox.put_nowait((PacingElapsed(epoch), None))

    def _announce_status(self) -> None:
        self.sink.publish_status(self.state.status)
        self.writer.save_status(self.state.status)

    async def _cancel_in_flight(self) -> None:
        turn_task, pacing_task = self._turn_task, self._pacing_task
        self._turn_task = None
        self._pacing_task = None
        await self._cancel_task(turn_task)
        await self._cancel_task(pacing_task)

    @staticmethod
    async def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass  # Expected
