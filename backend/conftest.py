"""
Pytest configuration and shared fixtures for backend tests.

This module provides a scripted provider stub, a small participant registry,
actor and event-recording helpers, an in-memory SQLite database, and API
clients wired to all of them.
"""

import asyncio
import sys
from pathlib import Path
from typing import AsyncGenerator, Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

# Add backend directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from database import build_engine, build_session_maker, init_db
from domain.contexts import GenerationRequest
from domain.enums import ProviderKind
from domain.participants import KnownParticipant, ProviderRef
from orchestration import (
    ConversationActor,
    ConversationState,
    GenerationCoordinator,
    ParticipantRegistry,
    TranscriptSink,
    TurnScheduler,
)
from persistence import SqlConversationStore

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FirstIndexRandom:
    """
    Random source whose ``randint`` always returns the lower bound.

    With Fisher-Yates this rotates the list left by one:
    ``[Alpha, Beta] -> [Beta, Alpha]`` and ``[A, B, C] -> [B, C, A]``.
    """

    def randint(self, a: int, b: int) -> int:
        return a


class ScriptedProvider:
    """
    Async provider stub.

    Replies come from ``replies`` (per speaker) or a generated default;
    speakers listed in ``failures`` raise the given exception. If ``gate`` is
    set, every call waits on it before answering. Tracks the number of calls
    in flight to check turn exclusivity.
    """

    def __init__(
        self,
        replies: Optional[Dict[str, str]] = None,
        failures: Optional[Dict[str, Exception]] = None,
        gate: Optional[asyncio.Event] = None,
        delay: float = 0.0,
    ):
        self.replies = replies or {}
        self.failures = failures or {}
        self.gate = gate
        self.delay = delay
        self.calls: List[GenerationRequest] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.started = asyncio.Event()

    @property
    def speakers(self) -> List[str]:
        return [request.participant.id for request in self.calls]

    async def __call__(self, request: GenerationRequest) -> str:
        self.calls.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.started.set()
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            speaker = request.participant.id
            if speaker in self.failures:
                raise self.failures[speaker]
            return self.replies.get(speaker, f"{speaker} reply #{len(self.calls)}")
        finally:
            self.in_flight -= 1


class EventRecorder:
    """Collects (kind, value) tuples from a transcript sink in emission order."""

    def __init__(self, sink: TranscriptSink):
        self.events = []
        self.messages = []
        self.unsubscribe = sink.listen(
            on_message=self._on_message,
            on_thinking=self._on_thinking,
            on_status_change=self._on_status,
        )

    def _on_message(self, message):
        self.messages.append(message)
        self.events.append(("message", message.sender))

    def _on_thinking(self, participant_id):
        self.events.append(("thinking", participant_id))

    def _on_status(self, status):
        self.events.append(("status_changed", status.value))

    def of_type(self, kind: str) -> list:
        return [event for event in self.events if event[0] == kind]

    def clear(self):
        self.events.clear()
        self.messages.clear()


def make_participant(name: str, provider: ProviderKind = ProviderKind.OPENROUTER) -> KnownParticipant:
    return KnownParticipant(
        id=name,
        persona_prompt=f"You are {name}.",
        provider_ref=ProviderRef(provider=provider, model_id=f"test/{name.lower()}"),
        description=f"{name} test persona",
    )


@pytest.fixture
def registry() -> ParticipantRegistry:
    """Registry with three built-in participants: Alpha, Beta and Gamma."""
    return ParticipantRegistry(
        [make_participant("Alpha"), make_participant("Beta"), make_participant("Gamma")],
        custom_defaults={
            "model_id": "openai/gpt-3.5-turbo",
            "endpoint": "https://openrouter.ai/api/v1/chat/completions",
        },
    )


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def first_index_rng() -> FirstIndexRandom:
    return FirstIndexRandom()


@pytest.fixture
def wait_until():
    """Poll ``predicate`` on the event loop until it holds or the timeout expires."""

    async def _wait(predicate, timeout: float = 2.0, interval: float = 0.005):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(interval)

    return _wait


@pytest.fixture
async def make_actor(registry: ParticipantRegistry):
    """
    Factory for running actors over a fixed speaking order.

    Defaults: no pacing delay and one round per trigger. Actors are closed
    at teardown.
    """
    actors = []

    def _make(
        provider,
        speaking_order=("Alpha", "Beta"),
        topic: str = "cats vs dogs",
        turn_delay_seconds: float = 0.0,
        max_rounds_per_trigger: Optional[int] = 1,
        timeout_seconds: Optional[float] = None,
        writer=None,
        conversation_id: str = "conv-1",
    ) -> ConversationActor:
        participants = [registry.resolve(p) for p in speaking_order]
        state = ConversationState(conversation_id, topic, participants, TurnScheduler(list(speaking_order)))
        actor = ConversationActor(
            state,
            TranscriptSink(conversation_id),
            GenerationCoordinator(provider, timeout_seconds),
            writer=writer,
            user_display_name="Tester",
            turn_delay_seconds=turn_delay_seconds,
            max_rounds_per_trigger=max_rounds_per_trigger,
        )
        actor.start()
        actors.append(actor)
        return actor

    yield _make

    for actor in actors:
        await actor.close(timeout=1.0)


@pytest.fixture
def record_events():
    """Attach an EventRecorder to an actor's sink."""
    return lambda actor: EventRecorder(actor.sink)


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory SQLite database with all tables created."""
    engine = build_engine(TEST_DATABASE_URL)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine: AsyncEngine):
    return build_session_maker(db_engine)


@pytest.fixture
async def test_db(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def sql_store(session_maker) -> SqlConversationStore:
    return SqlConversationStore(session_maker)


@pytest.fixture
def api_settings():
    """Settings for API tests: no pacing, one round per trigger, quiet reaper."""
    from core import Settings

    return Settings(
        database_url=TEST_DATABASE_URL,
        turn_delay_seconds=0,
        max_rounds_per_trigger=1,
        reaper_interval_seconds=3600,
        user_name="Tester",
    )


@pytest.fixture
def app(api_settings, provider, first_index_rng):
    """Application wired to the scripted provider and a fresh in-memory database."""
    from core.app_factory import create_app

    return create_app(
        settings=api_settings,
        provider=provider,
        db_engine=build_engine(TEST_DATABASE_URL),
        rng=first_index_rng,
    )


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client running the app's lifespan on the test event loop."""
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


@pytest.fixture
def ws_client(app):
    """Synchronous TestClient for WebSocket tests."""
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client
