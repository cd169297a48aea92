"""WebSocket Status Broadcaster Service.

Publishes run status events to WebSocket subscribers grouped by channel.
Each workflow has a ``workflow-<id>`` channel carrying node-status,
edge-active and workflow-complete events; ``user-<id>`` channels carry
user notifications. Publishing is best-effort and never raises.
"""

import asyncio
import time
import orjson
from collections import defaultdict
from typing import Set, Dict, Any, Optional
from fastapi import WebSocket

from constants import EVENT_NODE_STATUS, EVENT_WORKFLOW_COMPLETE
from core.logging import get_logger

logger = get_logger(__name__)


def workflow_channel(workflow_id: str) -> str:
    return f"workflow-{workflow_id}"


def user_channel(user_id: str) -> str:
    return f"user-{user_id}"


class StatusBroadcaster:
    """Manages WebSocket subscriptions and broadcasts status events."""

    def __init__(self):
        self._channels: Dict[str, Set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

        # Latest node status per workflow, replayed to new subscribers
        self._node_status: Dict[str, Dict[str, Any]] = defaultdict(dict)
        # Latest run-complete payload per workflow
        self._last_run: Dict[str, Dict[str, Any]] = {}

    async def subscribe(self, channel: str, websocket: WebSocket, accept: bool = True):
        """Accept a WebSocket and attach it to a channel."""
        if accept:
            await websocket.accept()
        async with self._lock:
            self._channels[channel].add(websocket)
        logger.info("Subscriber connected", channel=channel,
                   subscribers=len(self._channels[channel]))

        try:
            await websocket.send_text(orjson.dumps({
                "channel": channel,
                "event": "initial_status",
                "data": self.get_channel_status(channel),
            }).decode())
        except Exception as e:
            logger.warning("Failed to send initial status", channel=channel, error=str(e))

    async def unsubscribe(self, channel: str, websocket: WebSocket):
        """Detach a WebSocket from a channel."""
        async with self._lock:
            subscribers = self._channels.get(channel)
            if subscribers is not None:
                subscribers.discard(websocket)
                if not subscribers:
                    del self._channels[channel]
        logger.info("Subscriber disconnected", channel=channel)

    async def broadcast(self, channel: str, message: Dict[str, Any]) -> int:
        """Send a message to every subscriber of a channel.

        Returns the number of subscribers that received it. Failed sockets
        are dropped from the channel.
        """
        async with self._lock:
            connections = list(self._channels.get(channel, ()))

        if not connections:
            return 0

        try:
            message_text = orjson.dumps(message, default=str).decode()
        except TypeError as e:
            logger.warning("Unserializable status message dropped", channel=channel, error=str(e))
            return 0

        disconnected: Set[WebSocket] = set()

        async def send_to_client(connection: WebSocket):
            try:
                await connection.send_text(message_text)
            except Exception as e:
                logger.warning("Send failed", channel=channel, error=str(e))
                disconnected.add(connection)

        try:
            async with asyncio.TaskGroup() as tg:
                for conn in connections:
                    tg.create_task(send_to_client(conn))
        except* Exception as eg:
            for exc in eg.exceptions:
                logger.warning("Broadcast task failed", channel=channel, error=str(exc))

        if disconnected:
            async with self._lock:
                subscribers = self._channels.get(channel)
                if subscribers is not None:
                    subscribers -= disconnected

        return len(connections) - len(disconnected)

    # =========================================================================
    # Run status
    # =========================================================================

    async def publish(self, workflow_id: str, event: str, payload: Dict[str, Any]) -> None:
        """Publish a run status event on the workflow's channel."""
        try:
            self._remember(workflow_id, event, payload)
            await self.broadcast(workflow_channel(workflow_id), {
                "channel": workflow_channel(workflow_id),
                "event": event,
                "data": payload,
            })
        except Exception as e:
            logger.warning("Status publish failed", workflow_id=workflow_id,
                          status_event=event, error=str(e))

    def _remember(self, workflow_id: str, event: str, payload: Dict[str, Any]) -> None:
        if event == EVENT_NODE_STATUS and payload.get("nodeId"):
            self._node_status[workflow_id][payload["nodeId"]] = {
                "status": payload.get("status"),
                "runId": payload.get("runId"),
                "timestamp": time.time(),
            }
        elif event == EVENT_WORKFLOW_COMPLETE:
            self._last_run[workflow_id] = dict(payload)

    # =========================================================================
    # User notifications
    # =========================================================================

    async def notify_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> int:
        """Send an event to a user's channel; returns delivered count."""
        try:
            return await self.broadcast(user_channel(user_id), {
                "channel": user_channel(user_id),
                "event": event,
                "data": payload,
            })
        except Exception as e:
            logger.warning("User notification failed", user_id=user_id, error=str(e))
            return 0

    # =========================================================================
    # Getters
    # =========================================================================

    def get_channel_status(self, channel: str) -> Dict[str, Any]:
        """Snapshot replayed to new subscribers of a channel."""
        prefix = "workflow-"
        if not channel.startswith(prefix):
            return {}
        workflow_id = channel[len(prefix):]
        return {
            "nodes": dict(self._node_status.get(workflow_id, {})),
            "lastRun": self._last_run.get(workflow_id),
        }

    def get_node_status(self, workflow_id: str, node_id: str) -> Optional[Dict[str, Any]]:
        return self._node_status.get(workflow_id, {}).get(node_id)

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))
