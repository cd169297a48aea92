"""WebSocket router for live workflow run status.

Clients subscribe to one workflow's channel and receive node-status,
edge-active and workflow-complete events as runs progress. A ``ping``
text message is answered with ``pong``; anything else is ignored.
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from core.container import container
from core.logging import get_logger
from services.status_broadcaster import user_channel, workflow_channel

logger = get_logger(__name__)

router = APIRouter(tags=["websocket"])


async def _serve(websocket: WebSocket, channel: str) -> None:
    broadcaster = container.broadcaster()
    await broadcaster.subscribe(channel, websocket)
    try:
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        await broadcaster.unsubscribe(channel, websocket)


@router.websocket("/ws/workflows/{workflow_id}")
async def workflow_status(websocket: WebSocket, workflow_id: str):
    """Subscribe to a workflow's run status channel."""
    await _serve(websocket, workflow_channel(workflow_id))


@router.websocket("/ws/users/{user_id}")
async def user_notifications(websocket: WebSocket, user_id: str):
    """Subscribe to a user's notification channel."""
    await _serve(websocket, user_channel(user_id))
