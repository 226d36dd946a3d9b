"""
WebSocket event stream for a conversation.

Connecting joins the conversation: the first frame is a snapshot, followed by
``thinking``, ``message`` and ``status_changed`` frames in emission order.
Clients send ``{"type": "message", "text": ...}``, ``{"type": "pause"}``,
``{"type": "resume"}`` or ``{"type": "stop"}``. Disconnecting leaves.
"""

import asyncio
import logging

from exceptions import ConversationNotFoundError
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from orchestration import ConversationOrchestrator, Subscription

router = APIRouter()
logger = logging.getLogger("EventsRouter")

CLOSE_NOT_FOUND = 4404
CLOSE_INTERNAL_ERROR = 1011


@router.websocket("/{conversation_id}/events")
async def conversation_events(websocket: WebSocket, conversation_id: str, after_seq: int = Query(-1)):
    orchestrator: ConversationOrchestrator = websocket.app.state.orchestrator
    await websocket.accept()

    try:
        subscription = await orchestrator.join(conversation_id, after_seq=after_seq)
    except ConversationNotFoundError:
        await websocket.close(code=CLOSE_NOT_FOUND, reason="Conversation not found")
        return

    sender = None
    try:
        await websocket.send_json(subscription.snapshot.to_dict())
        sender = asyncio.create_task(_forward_events(websocket, subscription))
        await _receive_commands(websocket, orchestrator, conversation_id)
    except WebSocketDisconnect:
        logger.debug(f"WebSocket disconnected | Conversation: {conversation_id}")
    except Exception as e:
        logger.exception(f"Error in WebSocket handler | Conversation: {conversation_id} | {e}")
        await websocket.close(code=CLOSE_INTERNAL_ERROR)
    finally:
        orchestrator.leave(conversation_id, subscription)
        if sender is not None:
            sender.cancel()
            try:
                await sender
            except (asyncio.CancelledError, WebSocketDisconnect):
                pass


async def _forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription:
        await websocket.send_json(event.to_dict())


async def _receive_commands(websocket: WebSocket, orchestrator: ConversationOrchestrator, conversation_id: str) -> None:
    while True:
        data = await websocket.receive_json()
        command = data.get("type") if isinstance(data, dict) else None

        if command == "message":
            text = (data.get("text") or "").strip()
            if not text:
                await websocket.send_json({"type": "error", "detail": "Message text must not be empty"})
                continue
            committed = await orchestrator.send_user_message(conversation_id, text, sender=data.get("sender"))
            if committed is None:
                await websocket.send_json({"type": "error", "detail": "Conversation is stopped"})
        elif command == "pause":
            await orchestrator.pause(conversation_id)
        elif command == "resume":
            await orchestrator.resume(conversation_id)
        elif command == "stop":
            await orchestrator.stop(conversation_id)
        else:
            await websocket.send_json({"type": "error", "detail": f"Unknown command: {command}"})
