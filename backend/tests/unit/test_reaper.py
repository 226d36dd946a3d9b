"""
Unit tests for ConversationReaper.

Tests the APScheduler job that evicts idle conversations.
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from orchestration.reaper import ConversationReaper


class TestConversationReaperInit:
    """Tests for ConversationReaper initialization."""

    @pytest.mark.unit
    def test_init(self):
        """Test initialization."""
        mock_orchestrator = Mock()

        reaper = ConversationReaper(mock_orchestrator)

        assert reaper.orchestrator == mock_orchestrator
        assert reaper.interval_seconds == 60
        assert reaper.idle_minutes == 30
        assert reaper.is_running is False
        assert reaper.scheduler is not None


class TestConversationReaperStart:
    """Tests for start method."""

    @pytest.mark.unit
    def test_start_reaper(self):
        """Test starting the reaper registers one interval job."""
        reaper = ConversationReaper(Mock(), interval_seconds=15)

        with (
            patch.object(reaper.scheduler, "start") as mock_start,
            patch.object(reaper.scheduler, "add_job") as mock_add_job,
        ):
            reaper.start()

            mock_add_job.assert_called_once()
            args, kwargs = mock_add_job.call_args
            assert args[1] == "interval"
            assert kwargs["seconds"] == 15
            assert kwargs["id"] == "evict_idle_conversations"
            assert kwargs["max_instances"] == 1
            mock_start.assert_called_once()

            assert reaper.is_running is True

    @pytest.mark.unit
    def test_start_reaper_already_running(self):
        """Test that starting an already-running reaper is idempotent."""
        reaper = ConversationReaper(Mock())
        reaper.is_running = True

        with (
            patch.object(reaper.scheduler, "start") as mock_start,
            patch.object(reaper.scheduler, "add_job") as mock_add_job,
        ):
            reaper.start()

            mock_add_job.assert_not_called()
            mock_start.assert_not_called()


class TestConversationReaperStop:
    """Tests for stop method."""

    @pytest.mark.unit
    def test_stop_reaper(self):
        reaper = ConversationReaper(Mock())
        reaper.is_running = True

        with patch.object(reaper.scheduler, "shutdown") as mock_shutdown:
            reaper.stop()

            mock_shutdown.assert_called_once()
            assert reaper.is_running is False

    @pytest.mark.unit
    def test_stop_reaper_not_running(self):
        reaper = ConversationReaper(Mock())

        with patch.object(reaper.scheduler, "shutdown") as mock_shutdown:
            reaper.stop()

            mock_shutdown.assert_not_called()


class TestEvictIdleConversations:
    """Tests for the eviction job."""

    @pytest.mark.unit
    async def test_evicts_with_idle_threshold_in_seconds(self):
        mock_orchestrator = Mock()
        mock_orchestrator.evict_idle = AsyncMock(return_value=["c1"])
        reaper = ConversationReaper(mock_orchestrator, idle_minutes=5)

        await reaper._evict_idle_conversations()

        mock_orchestrator.evict_idle.assert_awaited_once_with(300)

    @pytest.mark.unit
    async def test_errors_are_logged_not_raised(self):
        mock_orchestrator = Mock()
        mock_orchestrator.evict_idle = AsyncMock(side_effect=RuntimeError("boom"))
        reaper = ConversationReaper(mock_orchestrator)

        with patch("orchestration.reaper.logger") as mock_logger:
            await reaper._evict_idle_conversations()

            mock_logger.error.assert_called_once()

    @pytest.mark.unit
    async def test_start_and_stop_on_running_loop(self):
        """The real AsyncIOScheduler starts on the test loop and shuts down cleanly."""
        reaper = ConversationReaper(Mock(), interval_seconds=3600)

        reaper.start()
        assert reaper.scheduler.get_job("evict_idle_conversations") is not None
        reaper.stop()

        assert reaper.is_running is False
