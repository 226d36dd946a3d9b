"""Participant catalogue routes."""

from typing import List

import schemas
from dependencies import get_registry
from fastapi import APIRouter, Depends
from orchestration import ParticipantRegistry

router = APIRouter()


@router.get("", response_model=List[schemas.Participant])
async def list_participants(registry: ParticipantRegistry = Depends(get_registry)):
    """List the built-in participants a conversation can be started with."""
    return [schemas.Participant.from_domain(p) for p in registry.known()]
