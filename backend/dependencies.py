"""Shared dependencies for FastAPI endpoints."""

from core import Settings
from fastapi import Request
from orchestration import ConversationOrchestrator, ParticipantRegistry


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    """
    Dependency to get the conversation orchestrator instance from app state.

    The instance is created during application startup in the lifespan context.
    """
    return request.app.state.orchestrator


def get_registry(request: Request) -> ParticipantRegistry:
    """Dependency to get the participant registry from app state."""
    return request.app.state.registry


def get_app_settings(request: Request) -> Settings:
    """Settings the app was built with (may differ from the global singleton in tests)."""
    return request.app.state.settings
