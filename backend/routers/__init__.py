"""FastAPI routers for modular endpoint organization."""

from . import conversations, events, health, participants

__all__ = [
    "conversations",
    "events",
    "health",
    "participants",
]
