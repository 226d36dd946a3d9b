"""
Unit tests for ConversationActor.

These drive a real actor with a scripted provider and check the turn-taking
guarantees: one provider call at a time, pause/stop suppression, resume and
user messages each starting exactly one turn, visible failures, and late
joiners getting a turn.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from conftest import ScriptedProvider
from domain.enums import ConversationStatus, MessageKind
from exceptions import PersistenceError, ProviderError
from orchestration.handlers import PersistenceWriter


async def settle(cycles: int = 20):
    """Give background tasks a chance to run."""
    for _ in range(cycles):
        await asyncio.sleep(0.001)


class TestUserMessages:
    """Tests for the user interjection path."""

    @pytest.mark.unit
    async def test_user_message_appended_without_thinking(self, make_actor, record_events):
        provider = ScriptedProvider(gate=asyncio.Event())
        actor = make_actor(provider)
        events = record_events(actor)

        committed = await actor.send_user_message("Tester", "go")

        assert committed.seq == 0
        assert committed.is_user
        assert committed.kind == MessageKind.USER
        assert events.events[0] == ("message", "Tester")

    @pytest.mark.unit
    async def test_user_message_triggers_exactly_one_thinking(self, make_actor, record_events, wait_until):
        provider = ScriptedProvider(gate=asyncio.Event())
        actor = make_actor(provider, speaking_order=("Beta", "Alpha"))
        events = record_events(actor)

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: provider.started.is_set())
        await settle()

        assert events.of_type("thinking") == [("thinking", "Beta")]
        assert provider.speakers == ["Beta"]

    @pytest.mark.unit
    async def test_user_message_while_idle_advances_turn(self, make_actor, record_events, wait_until):
        """After the budget is spent, the next user message starts the next speaker."""
        provider = ScriptedProvider()
        actor = make_actor(provider, speaking_order=("Alpha", "Beta", "Gamma"), max_rounds_per_trigger=1)

        await actor.send_user_message("Tester", "first")
        await wait_until(lambda: len(actor.sink) == 4 and not actor.is_busy)

        provider.gate = asyncio.Event()
        events = record_events(actor)
        await actor.send_user_message("Tester", "second")
        await wait_until(lambda: len(provider.calls) == 4)
        await settle()

        assert events.of_type("thinking") == [("thinking", "Alpha")]

    @pytest.mark.unit
    async def test_zero_rounds_runs_without_limit(self, make_actor, wait_until):
        provider = ScriptedProvider(delay=0.001)
        actor = make_actor(provider, max_rounds_per_trigger=0)

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: len(provider.calls) >= 5)
        await actor.stop()

        assert provider.speakers[:4] == ["Alpha", "Beta", "Alpha", "Beta"]

    @pytest.mark.unit
    async def test_user_message_during_turn_does_not_start_another(self, make_actor, wait_until):
        gate = asyncio.Event()
        provider = ScriptedProvider(gate=gate)
        actor = make_actor(provider, speaking_order=("Alpha", "Beta"))

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: provider.started.is_set())
        await actor.send_user_message("Tester", "also this")
        await settle()

        assert len(provider.calls) == 1
        gate.set()
        await wait_until(lambda: not actor.is_busy)

        assert provider.max_in_flight == 1
        # The second message re-grants a full round after the in-flight turn
        assert [m.sender for m in actor.sink.messages] == ["Tester", "Tester", "Alpha", "Beta", "Alpha"]

    @pytest.mark.unit
    async def test_user_message_while_paused_is_appended_only(self, make_actor, record_events):
        provider = ScriptedProvider()
        actor = make_actor(provider)
        await actor.pause()
        events = record_events(actor)

        committed = await actor.send_user_message("Tester", "hello?")
        await settle()

        assert committed is not None
        assert events.of_type("thinking") == []
        assert provider.calls == []


class TestTurnExclusivity:
    """At most one provider call per conversation."""

    @pytest.mark.unit
    async def test_never_two_calls_in_flight(self, make_actor, wait_until):
        provider = ScriptedProvider(delay=0.005)
        actor = make_actor(provider, speaking_order=("Alpha", "Beta", "Gamma"), max_rounds_per_trigger=3)

        await actor.send_user_message("Tester", "go")
        await asyncio.sleep(0.012)
        await actor.send_user_message("Tester", "interrupting")
        await actor.pause()
        await actor.resume()
        await actor.send_user_message("Tester", "again")
        await wait_until(lambda: actor.state.turns_remaining == 0 and not actor.is_busy, timeout=5.0)

        assert provider.max_in_flight == 1
        assert len(provider.calls) >= 9

    @pytest.mark.unit
    async def test_turns_follow_speaking_order(self, make_actor, wait_until):
        provider = ScriptedProvider()
        actor = make_actor(provider, speaking_order=("Alpha", "Beta", "Gamma"), max_rounds_per_trigger=2)

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: len(actor.sink) == 7 and not actor.is_busy)

        assert provider.speakers == ["Alpha", "Beta", "Gamma", "Alpha", "Beta", "Gamma"]
        assert actor.state.scheduler.cursor == 0

    @pytest.mark.unit
    async def test_pacing_delay_between_turns(self, make_actor, wait_until):
        provider = ScriptedProvider()
        actor = make_actor(provider, turn_delay_seconds=0.05)

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: len(actor.sink) == 2)

        assert actor.is_busy
        assert len(provider.calls) == 1
        await wait_until(lambda: len(actor.sink) == 3)
        assert provider.speakers == ["Alpha", "Beta"]


class TestPause:
    """Pausing suppresses in-flight work."""

    @pytest.mark.unit
    async def test_pause_suppresses_in_flight_result(self, make_actor, record_events, wait_until):
        provider = ScriptedProvider(delay=0.2)
        actor = make_actor(provider)
        events = record_events(actor)

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: provider.started.is_set())
        status = await actor.pause()
        await asyncio.sleep(0.3)

        assert status == ConversationStatus.PAUSED
        assert [m.sender for m in actor.sink.messages] == ["Tester"]
        assert actor.sink.thinking == []
        assert len(provider.calls) == 1
        assert not actor.is_busy
        assert events.of_type("status_changed") == [("status_changed", "paused")]

    @pytest.mark.unit
    async def test_pause_during_pacing_stops_chain(self, make_actor, wait_until):
        provider = ScriptedProvider()
        actor = make_actor(provider, turn_delay_seconds=0.1)

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: len(actor.sink) == 2)
        await actor.pause()
        await asyncio.sleep(0.2)

        assert len(provider.calls) == 1
        assert not actor.is_busy

    @pytest.mark.unit
    async def test_pause_twice_is_noop(self, make_actor, record_events):
        actor = make_actor(ScriptedProvider())
        events = record_events(actor)

        await actor.pause()
        await actor.pause()

        assert events.of_type("status_changed") == [("status_changed", "paused")]


class TestResume:
    """Resume starts exactly one turn."""

    @pytest.mark.unit
    async def test_resume_triggers_exactly_one_thinking(self, make_actor, record_events, wait_until):
        provider = ScriptedProvider(gate=asyncio.Event())
        actor = make_actor(provider, speaking_order=("Beta", "Alpha"))
        await actor.pause()
        events = record_events(actor)

        status = await actor.resume()
        await wait_until(lambda: provider.started.is_set())
        await actor.resume()
        await settle()

        assert status == ConversationStatus.ACTIVE
        assert events.of_type("thinking") == [("thinking", "Beta")]
        assert events.events[0] == ("status_changed", "active")
        assert len(provider.calls) == 1

    @pytest.mark.unit
    async def test_resume_after_paused_turn_uses_next_speaker(self, make_actor, wait_until):
        """The interrupted speaker's slot is used; the next speaker goes after resume."""
        provider = ScriptedProvider(delay=0.2)
        actor = make_actor(provider, speaking_order=("Alpha", "Beta"))

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: provider.started.is_set())
        await actor.pause()
        provider.delay = 0
        await actor.resume()
        await wait_until(lambda: len(actor.sink) >= 2)

        assert provider.speakers[:2] == ["Alpha", "Beta"]
        assert actor.sink.messages[1].sender == "Beta"


class TestStop:
    """Stop is terminal."""

    @pytest.mark.unit
    async def test_stop_is_terminal(self, make_actor, record_events):
        provider = ScriptedProvider()
        actor = make_actor(provider)
        assert await actor.stop() == ConversationStatus.STOPPED
        events = record_events(actor)

        assert await actor.resume() == ConversationStatus.STOPPED
        assert await actor.pause() == ConversationStatus.STOPPED
        assert await actor.send_user_message("Tester", "anyone?") is None
        await settle()

        assert events.events == []
        assert provider.calls == []
        assert actor.sink.messages == []

    @pytest.mark.unit
    async def test_stop_discards_in_flight_turn(self, make_actor, wait_until):
        gate = asyncio.Event()
        provider = ScriptedProvider(gate=gate)
        actor = make_actor(provider)

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: provider.started.is_set())
        await actor.stop()
        gate.set()
        await settle()

        assert [m.sender for m in actor.sink.messages] == ["Tester"]
        assert actor.sink.thinking == []
        assert actor.state.pending_turn is None


class TestProviderFailure:
    """Provider failures become visible messages."""

    @pytest.mark.unit
    async def test_failure_visible_and_conversation_continues(self, make_actor, wait_until):
        provider = ScriptedProvider(failures={"Alpha": ProviderError("rate limited", "Alpha")})
        actor = make_actor(provider, speaking_order=("Alpha", "Beta"))

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: len(actor.sink) == 3)

        failed, reply = actor.sink.messages[1], actor.sink.messages[2]
        assert failed.sender == "Alpha"
        assert failed.kind == MessageKind.ERROR
        assert failed.text == "Alpha could not respond: rate limited"
        assert reply.sender == "Beta"
        assert reply.kind == MessageKind.PARTICIPANT

    @pytest.mark.unit
    async def test_timeout_visible_and_conversation_continues(self, make_actor, wait_until):
        provider = ScriptedProvider(delay=0.5)
        actor = make_actor(provider, max_rounds_per_trigger=1, timeout_seconds=0.02)

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: len(actor.sink) == 3)

        assert [m.kind for m in actor.sink.messages[1:]] == [MessageKind.ERROR, MessageKind.ERROR]
        assert "no reply within" in actor.sink.messages[1].text


class TestLateJoin:
    """Participants admitted mid-conversation get a turn."""

    @pytest.mark.unit
    async def test_late_joiner_speaks_after_prior_cycle(self, make_actor, registry, wait_until):
        gate = asyncio.Event()
        provider = ScriptedProvider(gate=gate)
        actor = make_actor(provider, speaking_order=("Alpha", "Beta"), max_rounds_per_trigger=1)

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: provider.started.is_set())
        assert await actor.admit(registry.resolve("Gamma")) is True
        gate.set()
        await wait_until(lambda: len(provider.calls) == 3 and not actor.is_busy)

        assert provider.speakers == ["Alpha", "Beta", "Gamma"]
        assert actor.state.scheduler.speaking_order == ["Alpha", "Beta", "Gamma"]

    @pytest.mark.unit
    async def test_join_notice_is_system_message(self, make_actor, registry):
        actor = make_actor(ScriptedProvider())

        await actor.admit(registry.resolve("Gamma"))

        notice = actor.sink.messages[-1]
        assert notice.kind == MessageKind.SYSTEM
        assert notice.sender == "System"
        assert notice.text == "Gamma has joined the conversation."

    @pytest.mark.unit
    async def test_readmitting_is_idempotent(self, make_actor, registry):
        actor = make_actor(ScriptedProvider())

        assert await actor.admit(registry.resolve("Alpha")) is False
        assert actor.state.scheduler.speaking_order == ["Alpha", "Beta"]
        assert actor.sink.messages == []

    @pytest.mark.unit
    async def test_readmitting_with_new_persona_is_persisted(self, make_actor, registry):
        store = AsyncMock()
        writer = PersistenceWriter("conv-1", store)
        actor = make_actor(ScriptedProvider(), writer=writer)

        pirate = registry.register("Alpha", persona_prompt="You are a pirate.")
        assert await actor.admit(pirate) is False
        await writer.flush()

        assert actor.state.participant("Alpha").persona_prompt == "You are a pirate."
        store.add_participant.assert_awaited_once_with("conv-1", pirate, 0)
        assert actor.state.scheduler.speaking_order == ["Alpha", "Beta"]

    @pytest.mark.unit
    async def test_readmitting_unchanged_participant_writes_nothing(self, make_actor, registry):
        store = AsyncMock()
        writer = PersistenceWriter("conv-1", store)
        actor = make_actor(ScriptedProvider(), writer=writer)

        assert await actor.admit(registry.resolve("Beta")) is False
        await writer.flush()

        store.add_participant.assert_not_awaited()

    @pytest.mark.unit
    async def test_admit_refused_when_stopped(self, make_actor, registry):
        actor = make_actor(ScriptedProvider())
        await actor.stop()

        assert await actor.admit(registry.resolve("Gamma")) is None
        assert "Gamma" not in actor.state.participant_ids


class TestSnapshots:
    """Joining returns a snapshot followed by live events."""

    @pytest.mark.unit
    async def test_join_snapshot_then_live(self, make_actor, wait_until):
        provider = ScriptedProvider()
        actor = make_actor(provider)
        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: len(actor.sink) == 3 and not actor.is_busy)

        subscription = actor.join(after_seq=0)
        await actor.send_user_message("Tester", "more")
        await wait_until(lambda: len(actor.sink) == 6 and not actor.is_busy)

        snapshot = subscription.snapshot
        assert [m.seq for m in snapshot.messages] == [1, 2]
        assert snapshot.last_seq == 2
        assert snapshot.topic == "cats vs dogs"
        assert snapshot.status == ConversationStatus.ACTIVE

        live = []
        for _ in range(subscription.pending()):
            event = subscription.get_nowait()
            if event.message is not None:
                live.append(event.message.seq)
        assert live == [3, 4, 5]
        actor.leave(subscription)
        assert actor.sink.subscriber_count == 0

    @pytest.mark.unit
    async def test_snapshot_includes_thinking(self, make_actor, wait_until):
        provider = ScriptedProvider(gate=asyncio.Event())
        actor = make_actor(provider)
        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: provider.started.is_set())

        assert actor.snapshot().thinking == ["Alpha"]


class TestPersistence:
    """Committed changes are written through the store."""

    @pytest.mark.unit
    async def test_messages_and_status_written_in_order(self, make_actor, wait_until):
        store = AsyncMock()
        writer = PersistenceWriter("conv-1", store)
        actor = make_actor(ScriptedProvider(), writer=writer)

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: len(actor.sink) == 3 and not actor.is_busy)
        await actor.pause()
        await writer.flush()

        seqs = [call.args[0].seq for call in store.append_message.await_args_list]
        assert seqs == [0, 1, 2]
        store.update_status.assert_awaited_once_with("conv-1", ConversationStatus.PAUSED)
        assert store.save_schedule.await_count == 2

    @pytest.mark.unit
    async def test_store_failures_do_not_stop_conversation(self, make_actor, wait_until):
        store = AsyncMock()
        store.append_message.side_effect = PersistenceError("database is down")
        writer = PersistenceWriter("conv-1", store)
        actor = make_actor(ScriptedProvider(), writer=writer)

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: len(actor.sink) == 3 and not actor.is_busy)
        await writer.flush()

        assert writer.failures == 3
        assert actor.status == ConversationStatus.ACTIVE


class TestLifecycle:
    """Tests for idle tracking and closing."""

    @pytest.mark.unit
    async def test_close_cancels_in_flight_turn(self, make_actor, wait_until):
        provider = ScriptedProvider(gate=asyncio.Event())
        actor = make_actor(provider)
        subscription = actor.join()
        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: provider.started.is_set())

        await actor.close()

        assert provider.in_flight == 0
        assert subscription.closed
        assert not actor.is_running
        with pytest.raises(RuntimeError):
            await actor.send_user_message("Tester", "too late")

    @pytest.mark.unit
    async def test_evictable_only_when_idle_and_unwatched(self, make_actor, wait_until):
        provider = ScriptedProvider(gate=asyncio.Event())
        actor = make_actor(provider)

        assert actor.is_evictable(0)

        subscription = actor.join()
        assert not actor.is_evictable(0)
        actor.leave(subscription)

        await actor.send_user_message("Tester", "go")
        await wait_until(lambda: provider.started.is_set())
        assert not actor.is_evictable(0)
        assert not actor.is_evictable(3600)
