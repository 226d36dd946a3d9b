"""
Transcript sink and event fan-out.

The sink is the single source of truth for what was said and in what order.
Each committed message gets a monotonic ``seq``; subscribers receive events
through their own queue, so a slow reader never blocks the conversation or
other readers. Opening a subscription and taking its snapshot happen in one
synchronous step, which is what makes snapshot-then-live free of gaps and
duplicates.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, Dict, List, Optional, Tuple

from domain.enums import ConversationStatus, EventType
from domain.events import ConversationEvent
from domain.messages import Message

logger = logging.getLogger("TranscriptSink")

MessageCallback = Callable[[Message], None]
ThinkingCallback = Callable[[str], None]
StatusCallback = Callable[[ConversationStatus], None]


class Subscription:
    """
    A subscriber's private event cursor.

    Iterate with ``async for event in subscription``; iteration ends when the
    subscription is closed.
    """

    _CLOSED = object()

    def __init__(self, sink: "TranscriptSink", snapshot=None):
        self._sink = sink
        self._queue: asyncio.Queue = asyncio.Queue()
        self.snapshot = snapshot
        self.closed = False

    def _deliver(self, event: ConversationEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    async def get(self) -> Optional[ConversationEvent]:
        """Wait for the next event; None once the subscription is closed."""
        if self.closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is self._CLOSED:
            return None
        return item

    def get_nowait(self) -> Optional[ConversationEvent]:
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return None if item is self._CLOSED else item

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if self.closed:
            return
        self._sink._remove(self)
        self.closed = True
        self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> AsyncIterator[ConversationEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ConversationEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class TranscriptSink:
    def __init__(self, conversation_id: str, messages: Optional[List[Message]] = None):
        self.conversation_id = conversation_id
        self._messages: List[Message] = []
        for message in messages or []:
            self._messages.append(message if message.seq is not None else message.committed(len(self._messages)))
        # Ordered set of speakers with a pending reply
        self._thinking: Dict[str, None] = {}
        self._subscriptions: List[Subscription] = []
        self._listeners: List[Tuple[Optional[MessageCallback], Optional[ThinkingCallback], Optional[StatusCallback]]] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def last_seq(self) -> int:
        return len(self._messages) - 1

    @property
    def thinking(self) -> List[str]:
        return list(self._thinking.keys())

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions) + len(self._listeners)

    def __len__(self) -> int:
        return len(self._messages)

    def messages_since(self, after_seq: int = -1) -> List[Message]:
        start = max(after_seq + 1, 0)
        return self._messages[start:]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, message: Message) -> Message:
        """
        Commit a message and publish it.

        A committed participant message clears that speaker's thinking
        indicator. User messages never do, whatever their sender name.

        Returns:
            The canonical record with id, timestamp and seq assigned
        """
        committed = message.committed(len(self._messages))
        self._messages.append(committed)
        if not committed.is_user:
            self._thinking.pop(committed.sender, None)
        self._publish(ConversationEvent.for_message(committed))
        return committed

    def mark_thinking(self, participant_id: str) -> None:
        self._thinking[participant_id] = None
        self._publish(ConversationEvent.thinking(self.conversation_id, participant_id))

    def clear_thinking(self, participant_id: Optional[str] = None) -> None:
        """Forget one speaker's indicator, or all of them."""
        if participant_id is None:
            self._thinking.clear()
        else:
            self._thinking.pop(participant_id, None)

    def publish_status(self, status: ConversationStatus) -> None:
        self._publish(ConversationEvent.status_changed(self.conversation_id, status))

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def open_subscription(self, after_seq: int = -1, snapshot_factory=None) -> Subscription:
        """
        Register a subscriber and capture its snapshot without yielding.

        Args:
            after_seq: Last seq the subscriber already has
            snapshot_factory: Called with (messages since after_seq, thinking list)
                to build the snapshot stored on the subscription
        """
        subscription = Subscription(self)
        backlog = self.messages_since(after_seq)
        if snapshot_factory is not None:
            subscription.snapshot = snapshot_factory(backlog, self.thinking)
        else:
            subscription.snapshot = backlog
        self._subscriptions.append(subscription)
        return subscription

    def listen(
        self,
        on_message: Optional[MessageCallback] = None,
        on_thinking: Optional[ThinkingCallback] = None,
        on_status_change: Optional[StatusCallback] = None,
    ) -> Callable[[], None]:
        """
        Register synchronous callbacks.

        Returns:
            A function that removes the callbacks
        """
        entry = (on_message, on_thinking, on_status_change)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def close_all(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()
        self._listeners.clear()

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def _publish(self, event: ConversationEvent) -> None:
        for subscription in self._subscriptions:
            subscription._deliver(event)
        for on_message, on_thinking, on_status_change in list(self._listeners):
            try:
                if event.type == EventType.MESSAGE and on_message:
                    on_message(event.message)
                elif event.type == EventType.THINKING and on_thinking:
                    on_thinking(event.participant_id)
                elif event.type == EventType.STATUS_CHANGED and on_status_change:
                    on_status_change(event.status)
            except Exception as e:
                logger.error(f"❌ Listener failed for conversation {self.conversation_id}: {e}")
