"""
Handlers that write conversation changes to the record store.

Writes are queued and applied one at a time by a background task, so the
store sees changes in commit order and a slow or failing store never stalls
the turn loop. Failures are logged and dropped.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional

from domain.enums import ConversationStatus
from domain.messages import Message
from domain.participants import Participant

if TYPE_CHECKING:
    from persistence import ConversationStore

logger = logging.getLogger("PersistenceWriter")

_STOP = object()


class PersistenceWriter:
    def __init__(self, conversation_id: str, store: Optional["ConversationStore"]):
        self.conversation_id = conversation_id
        self.store = store
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self.failures = 0

    @property
    def enabled(self) -> bool:
        return self.store is not None

    def start(self) -> None:
        if self.enabled and self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"persist-{self.conversation_id}")

    def _submit(self, description: str, write: Callable[[], Awaitable[None]]) -> None:
        if not self.enabled:
            return
        self._queue.put_nowait((description, write))

    def save_message(self, message: Message) -> None:
        self._submit(f"message seq {message.seq}", lambda: self.store.append_message(message))

    def save_status(self, status: ConversationStatus) -> None:
        self._submit(f"status {status}", lambda: self.store.update_status(self.conversation_id, status))

    def save_schedule(self, speaking_order: List[str], cursor: int) -> None:
        order = list(speaking_order)
        self._submit(f"schedule cursor {cursor}", lambda: self.store.save_schedule(self.conversation_id, order, cursor))

    def save_participant(self, participant: Participant, position: int) -> None:
        self._submit(
            f"participant {participant.id}",
            lambda: self.store.add_participant(self.conversation_id, participant, position),
        )

    async def flush(self) -> None:
        """Wait until every queued write has been attempted."""
        if self._task is not None:
            await self._queue.join()

    async def close(self, timeout: float = 5.0) -> None:
        if self._task is None:
            return
        self._queue.put_nowait(_STOP)
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Persistence writer for {self.conversation_id} did not drain within {timeout}s")
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is _STOP:
                    return
                description, write = item
                try:
                    await write()
                except Exception as e:
                    self.failures += 1
                    logger.error(f"💾 Failed to persist {description} | Conversation: {self.conversation_id} | {e}")
            finally:
                self._queue.task_done()
