"""Action handlers package.

Every handler has the uniform signature ``(resolved_config, context) ->
ActionResult`` and is registered against a catalog action type:
- http.py: webhook.send, http.request
- messaging.py: slack.send_message, discord.send_message
- notification.py: notification.push

Catalog actions without a handler succeed as ``not_implemented`` no-ops.
"""

from functools import partial
from typing import Optional, TYPE_CHECKING

from core.config import Settings
from services.execution.dispatcher import ActionRegistry

from .http import (
    handle_webhook_send,
    handle_http_request,
    is_url_allowed,
)
from .messaging import (
    handle_slack_send_message,
    handle_discord_send_message,
    mask_webhook_url,
)
from .notification import (
    handle_notification_push,
)

if TYPE_CHECKING:
    from services.status_broadcaster import StatusBroadcaster


def build_default_registry(settings: Settings,
                           broadcaster: Optional["StatusBroadcaster"] = None) -> ActionRegistry:
    """Build the action table used by the dispatcher."""
    allow_private = settings.allow_private_urls
    registry = ActionRegistry()

    registry.register("webhook.send", partial(handle_webhook_send, allow_private=allow_private))
    registry.register("http.request", partial(handle_http_request, allow_private=allow_private))
    registry.register("slack.send_message",
                      partial(handle_slack_send_message, allow_private=allow_private))
    registry.register("discord.send_message",
                      partial(handle_discord_send_message, allow_private=allow_private))
    registry.register("notification.push", partial(handle_notification_push, broadcaster=broadcaster))

    return registry


__all__ = [
    'build_default_registry',
    'handle_webhook_send',
    'handle_http_request',
    'handle_slack_send_message',
    'handle_discord_send_message',
    'handle_notification_push',
    'is_url_allowed',
    'mask_webhook_url',
]
