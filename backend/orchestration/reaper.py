"""
Background eviction of idle conversations.

Actors are loaded lazily on first use; this job closes the ones nobody is
watching so memory stays bounded by the number of live conversations.
"""

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler

if TYPE_CHECKING:
    from .orchestrator import ConversationOrchestrator

logger = logging.getLogger("ConversationReaper")

# Suppress noisy APScheduler "max instances reached" warnings
logging.getLogger("apscheduler.scheduler").setLevel(logging.ERROR)


class ConversationReaper:
    """Runs ``ConversationOrchestrator.evict_idle`` on an interval."""

    def __init__(
        self,
        orchestrator: "ConversationOrchestrator",
        interval_seconds: int = 60,
        idle_minutes: int = 30,
    ):
        self.scheduler = AsyncIOScheduler()
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.idle_minutes = idle_minutes
        self.is_running = False

    def start(self):
        """Start the reaper."""
        if not self.is_running:
            self.scheduler.add_job(
                self._evict_idle_conversations,
                "interval",
                seconds=self.interval_seconds,
                id="evict_idle_conversations",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            self.scheduler.start()
            self.is_running = True
            logger.info(
                f"🚀 Conversation reaper started - checking every {self.interval_seconds}s, "
                f"evicting after {self.idle_minutes} idle minute(s)"
            )

    def stop(self):
        """Stop the reaper."""
        if self.is_running:
            self.scheduler.shutdown()
            self.is_running = False
            logger.info("🛑 Conversation reaper stopped")

    async def _evict_idle_conversations(self):
        try:
            await self.orchestrator.evict_idle(self.idle_minutes * 60)
        except Exception as e:
            logger.error(f"💥 Error evicting idle conversations: {e}")
