"""In-app notification handler."""

import uuid
from typing import Any, Dict, Optional, TYPE_CHECKING

from core.logging import get_logger
from services.execution.models import ActionResult, ExecutionContext, utcnow

if TYPE_CHECKING:
    from services.status_broadcaster import StatusBroadcaster

logger = get_logger(__name__)


async def handle_notification_push(
    config: Dict[str, Any],
    context: ExecutionContext,
    broadcaster: Optional["StatusBroadcaster"] = None,
) -> ActionResult:
    """Push a notification to a user's live channel (``user-<id>``)."""
    user_id = config.get("userId")
    title = config.get("title")

    if not user_id:
        return ActionResult.fail("User ID is required for push notification")
    if not title:
        return ActionResult.fail("Notification title is required")

    notification = {
        "id": uuid.uuid4().hex,
        "type": config.get("type") or "workflow",
        "title": title,
        "body": config.get("body"),
        "link": config.get("link"),
        "createdAt": utcnow().isoformat(),
        "metadata": {
            "source": "workflow",
            "workflowId": context.workflow_id,
            "workflowRunId": context.run_id,
        },
    }

    delivered = 0
    if broadcaster is not None:
        delivered = await broadcaster.notify_user(str(user_id), "notification", notification)

    logger.info("Notification pushed", run_id=context.run_id, user_id=user_id, delivered=delivered)
    return ActionResult.ok({
        "notificationId": notification["id"],
        "userId": user_id,
        "title": title,
        "delivered": delivered,
    })
