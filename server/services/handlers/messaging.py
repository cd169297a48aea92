"""Messaging action handlers - Slack and Discord incoming webhooks."""

import re
from typing import Any, Dict

import httpx

from core.logging import get_logger
from services.execution.models import ActionResult, ExecutionContext
from .http import http_client, is_url_allowed

logger = get_logger(__name__)

_WEBHOOK_TOKEN = re.compile(r'/[^/]+/[^/]+$')


def mask_webhook_url(url: str) -> str:
    """Hide the id/token tail of a webhook URL."""
    return _WEBHOOK_TOKEN.sub("/****/****", url)


async def handle_slack_send_message(
    config: Dict[str, Any],
    context: ExecutionContext,
    allow_private: bool = False,
) -> ActionResult:
    """Send a message through a Slack incoming webhook.

    Slack answers a successful post with the literal body ``ok``.
    """
    webhook_url = config.get("webhookUrl")
    message = config.get("message")

    if not webhook_url:
        return ActionResult.fail("Slack webhook URL is required")
    if not is_url_allowed(webhook_url, allow_private):
        return ActionResult.fail("Slack webhook URL is not allowed: must be a public HTTP/HTTPS URL")
    if not message:
        return ActionResult.fail("Message is required")

    payload: Dict[str, Any] = {"text": message}
    if config.get("channel"):
        payload["channel"] = config["channel"]
    if config.get("username"):
        payload["username"] = config["username"]
    if config.get("iconEmoji"):
        payload["icon_emoji"] = config["iconEmoji"]

    try:
        async with http_client(context) as client:
            response = await client.post(webhook_url, json=payload)
    except httpx.HTTPError as e:
        logger.error("Slack webhook failed", run_id=context.run_id, error=str(e))
        return ActionResult.fail(str(e) or "Failed to send Slack message")

    if response.is_success and response.text == "ok":
        return ActionResult.ok({
            "channel": config.get("channel") or "default",
            "message": message,
        })

    return ActionResult.fail(
        f"Slack webhook failed: {response.text}",
        output={"statusCode": response.status_code, "response": response.text},
    )


async def handle_discord_send_message(
    config: Dict[str, Any],
    context: ExecutionContext,
    allow_private: bool = False,
) -> ActionResult:
    """Send a message (content and/or embeds) through a Discord webhook."""
    webhook_url = config.get("webhookUrl")
    content = config.get("content") or ""
    embeds = config.get("embeds") if isinstance(config.get("embeds"), list) else []

    if not webhook_url:
        return ActionResult.fail("Discord webhook URL is required")
    if not is_url_allowed(webhook_url, allow_private):
        return ActionResult.fail("Discord webhook URL is not allowed: must be a public HTTP/HTTPS URL")
    if not content and not embeds:
        return ActionResult.fail("Content or embeds required")

    payload: Dict[str, Any] = {}
    if content:
        payload["content"] = content
    if embeds:
        payload["embeds"] = embeds
    if config.get("username"):
        payload["username"] = config["username"]
    if config.get("avatarUrl"):
        payload["avatar_url"] = config["avatarUrl"]

    try:
        async with http_client(context) as client:
            response = await client.post(webhook_url, json=payload)
    except httpx.HTTPError as e:
        logger.error("Discord webhook failed", run_id=context.run_id, error=str(e))
        return ActionResult.fail(str(e) or "Discord message failed")

    if response.is_error:
        return ActionResult.fail(
            f"Discord webhook failed: {response.status_code} - {response.text[:100]}"
        )

    preview = content[:50] + ("..." if len(content) > 50 else "")
    return ActionResult.ok({
        "platform": "discord",
        "contentPreview": preview,
        "embedCount": len(embeds),
        "webhookUrl": mask_webhook_url(webhook_url),
    })
