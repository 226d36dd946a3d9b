"""Health check route."""

from dependencies import get_orchestrator
from fastapi import APIRouter, Depends
from orchestration import ConversationOrchestrator

router = APIRouter()


@router.get("/health")
async def health_check(orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    """Report liveness and the number of conversations held in memory."""
    return {"status": "ok", "active_conversations": len(orchestrator.active_conversation_ids())}
