"""
Conversation orchestrator.

Holds the live ConversationActor for every loaded conversation, creates new
conversations, loads existing ones from the store on first use, and routes
commands to the owning actor. Conversations are independent of each other and
run concurrently.
"""

import asyncio
import logging
import random
import uuid
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from core.settings import OPENING_MESSAGE_TEMPLATE
from domain.contexts import ConversationRecord
from domain.enums import ConversationStatus
from domain.messages import Message
from domain.participants import Participant
from exceptions import ConversationNotFoundError, PersistenceError

from .conversation import ConversationActor
from .coordinator import GenerationCoordinator, ProviderFunction
from .handlers import PersistenceWriter
from .registry import ParticipantRegistry
from .scheduler import fisher_yates_shuffle
from .transcript import Subscription

if TYPE_CHECKING:
    from core.settings import Settings
    from persistence import ConversationStore

logger = logging.getLogger("ConversationOrchestrator")


class ConversationOrchestrator:
    """
    Entry point for every conversation operation.

    The orchestrator itself never touches conversation state; it only finds or
    creates the owning actor and hands it the command.
    """

    def __init__(
        self,
        registry: ParticipantRegistry,
        provider: ProviderFunction,
        store: Optional["ConversationStore"] = None,
        turn_delay_seconds: float = 1.0,
        provider_timeout_seconds: Optional[float] = None,
        max_rounds_per_trigger: Optional[int] = None,
        user_name: str = "User",
        rng: Optional[random.Random] = None,
    ):
        self.registry = registry
        self.store = store
        self.coordinator = GenerationCoordinator(provider, provider_timeout_seconds)
        self.turn_delay_seconds = turn_delay_seconds
        self.max_rounds_per_trigger = max_rounds_per_trigger
        self.user_name = user_name
        self.rng = rng or random.Random()
        self.actors: Dict[str, ConversationActor] = {}
        self._load_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        registry: ParticipantRegistry,
        provider: ProviderFunction,
        store: Optional["ConversationStore"] = None,
    ) -> "ConversationOrchestrator":
        return cls(
            registry=registry,
            provider=provider,
            store=store,
            turn_delay_seconds=settings.turn_delay_seconds,
            provider_timeout_seconds=settings.provider_timeout_seconds,
            max_rounds_per_trigger=settings.max_rounds_per_trigger,
            user_name=settings.user_name,
        )

    # ------------------------------------------------------------------
    # Creation and loading
    # ------------------------------------------------------------------

    async def create_conversation(
        self,
        topic: str,
        participant_ids: Sequence[str],
        custom_participants: Optional[Sequence[Dict[str, Any]]] = None,
        user_id: Optional[str] = None,
        start_immediately: bool = False,
        conversation_id: Optional[str] = None,
    ) -> ConversationActor:
        """
        Create a conversation and its actor.

        Args:
            topic: Non-empty topic
            participant_ids: Registry ids, in registration order
            custom_participants: Dicts with ``name`` and optional ``api_key``,
                ``endpoint``, ``model_id`` and ``persona_prompt``
            user_id: Owner, used to look up the display name
            start_immediately: Post the opening message and start the first turn
            conversation_id: Explicit id (generated when omitted)

        Raises:
            ValueError: empty topic or no participants
            ParticipantNotFoundError: unknown registry id
            PersistenceError: the store rejected the new conversation
        """
        topic = (topic or "").strip()
        if not topic:
            raise ValueError("Topic must not be empty")

        participants: List[Participant] = []
        seen = set()
        for participant_id in participant_ids:
            if participant_id in seen:
                continue
            participants.append(self.registry.resolve(participant_id))
            seen.add(participant_id)
        for custom in custom_participants or []:
            participant = self.registry.register(
                custom["name"],
                persona_prompt=custom.get("persona_prompt"),
                api_key=custom.get("api_key"),
                endpoint=custom.get("endpoint"),
                model_id=custom.get("model_id"),
            )
            if participant.id not in seen:
                participants.append(participant)
                seen.add(participant.id)

        if not participants:
            raise ValueError("A conversation needs at least one participant")

        record = ConversationRecord(
            id=conversation_id or str(uuid.uuid4()),
            topic=topic,
            status=ConversationStatus.ACTIVE,
            participants=participants,
            speaking_order=fisher_yates_shuffle([p.id for p in participants], self.rng),
            cursor=0,
            user_id=user_id,
        )

        if self.store is not None:
            await self.store.create_conversation(record)

        display_name = await self._display_name(user_id)
        actor = self._spawn(record, display_name)
        logger.info(
            f"🆕 Conversation created | ID: {record.id} | Topic: {topic[:50]} | Order: {record.speaking_order}"
        )

        if start_immediately:
            await actor.send_user_message(display_name, OPENING_MESSAGE_TEMPLATE.format(topic=topic))
        return actor

    async def get_actor(self, conversation_id: str) -> ConversationActor:
        """
        Return the live actor, loading the conversation from the store if needed.

        Raises:
            ConversationNotFoundError: unknown id, or the store could not confirm it
        """
        actor = self.actors.get(conversation_id)
        if actor is not None:
            return actor
        if self.store is None:
            raise ConversationNotFoundError(conversation_id)

        async with self._load_lock:
            actor = self.actors.get(conversation_id)
            if actor is not None:
                return actor
            try:
                record = await self.store.get_conversation(conversation_id)
            except PersistenceError as e:
                logger.error(f"💾 Could not load conversation {conversation_id}: {e}")
                raise ConversationNotFoundError(conversation_id) from e
            if record is None:
                raise ConversationNotFoundError(conversation_id)

            display_name = await self._display_name(record.user_id)
            actor = self._spawn(record, display_name)
            logger.info(f"📂 Conversation loaded | ID: {conversation_id} | Messages: {len(record.messages)}")
            return actor

    def _spawn(self, record: ConversationRecord, display_name: str) -> ConversationActor:
        actor = ConversationActor.from_record(
            record,
            self.coordinator,
            writer=PersistenceWriter(record.id, self.store),
            user_display_name=display_name,
            turn_delay_seconds=self.turn_delay_seconds,
            max_rounds_per_trigger=self.max_rounds_per_trigger,
        )
        actor.start()
        self.actors[record.id] = actor
        return actor

    async def _display_name(self, user_id: Optional[str]) -> str:
        if not user_id or self.store is None:
            return self.user_name
        try:
            name = await self.store.get_user_display_name(user_id)
        except PersistenceError as e:
            logger.warning(f"⚠️ Could not read display name for user {user_id}: {e}")
            return self.user_name
        return name or self.user_name

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def join(self, conversation_id: str, after_seq: int = -1) -> Subscription:
        actor = await self.get_actor(conversation_id)
        return actor.join(after_seq)

    def leave(self, conversation_id: str, subscription: Subscription) -> None:
        actor = self.actors.get(conversation_id)
        if actor is not None:
            actor.leave(subscription)
        else:
            subscription.close()

    async def send_user_message(
        self, conversation_id: str, text: str, sender: Optional[str] = None
    ) -> Optional[Message]:
        actor = await self.get_actor(conversation_id)
        return await actor.send_user_message(sender or actor.user_display_name, text)

    async def pause(self, conversation_id: str) -> ConversationStatus:
        actor = await self.get_actor(conversation_id)
        return await actor.pause()

    async def resume(self, conversation_id: str) -> ConversationStatus:
        actor = await self.get_actor(conversation_id)
        return await actor.resume()

    async def stop(self, conversation_id: str) -> ConversationStatus:
        actor = await self.get_actor(conversation_id)
        return await actor.stop()

    async def admit_participant(
        self,
        conversation_id: str,
        participant_id: str,
        persona_prompt: Optional[str] = None,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        model_id: Optional[str] = None,
    ) -> Tuple[Participant, Optional[bool]]:
        """
        Register a participant and admit it into a running conversation.

        Returns:
            The participant, and True/False/None as returned by the actor
            (new, already present, refused)
        """
        actor = await self.get_actor(conversation_id)
        participant = self.registry.register(
            participant_id,
            persona_prompt=persona_prompt,
            api_key=api_key,
            endpoint=endpoint,
            model_id=model_id,
        )
        admitted = await actor.admit(participant)
        return participant, admitted

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def active_conversation_ids(self) -> List[str]:
        return list(self.actors.keys())

    async def evict_idle(self, max_idle_seconds: float) -> List[str]:
        """
        Close actors with no subscribers and nothing in flight that have been
        idle for at least ``max_idle_seconds``. They are reloaded on next use.
        """
        evicted = []
        for conversation_id, actor in list(self.actors.items()):
            if actor.is_evictable(max_idle_seconds):
                self.actors.pop(conversation_id, None)
                await actor.close()
                evicted.append(conversation_id)
        if evicted:
            logger.info(f"🧹 Evicted {len(evicted)} idle conversation(s)")
        return evicted

    async def shutdown(self, timeout: float = 5.0):
        """
        Gracefully shutdown the orchestrator, closing every actor.

        Args:
            timeout: Maximum time to wait for actors to finish closing
        """
        if not self.actors:
            return

        logger.info(f"🛑 Shutting down orchestrator with {len(self.actors)} active conversation(s)")

        actors = list(self.actors.values())
        self.actors.clear()
        tasks = [asyncio.create_task(actor.close(timeout=timeout)) for actor in actors]
        done, pending = await asyncio.wait(tasks, timeout=timeout)

        if pending:
            logger.warning(f"⚠️ {len(pending)} conversation(s) did not close within {timeout}s")
            for task in pending:
                task.cancel()

        logger.info("✅ Orchestrator shutdown complete")
