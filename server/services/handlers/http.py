"""HTTP action handlers - Webhook Send and HTTP Request."""

import ipaddress
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import urlsplit

import httpx
import orjson

from core.logging import get_logger
from services.execution.clients import USER_AGENT
from services.execution.models import ActionResult, ExecutionContext

logger = get_logger(__name__)

BLOCKED_HOSTS = frozenset(["localhost", "0.0.0.0", "::1", "169.254.169.254"])
BLOCKED_SUFFIXES = (".local", ".internal", ".localhost")
BODYLESS_METHODS = frozenset(["GET", "DELETE", "HEAD", "OPTIONS"])


def is_url_allowed(url: str, allow_private: bool = False) -> bool:
    """Outbound URL guard: public http(s) hosts only unless allow_private."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return False
    if allow_private:
        return True

    host = parts.hostname.lower()
    if host in BLOCKED_HOSTS or host.endswith(BLOCKED_SUFFIXES):
        return False
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return True
    return not (ip.is_private or ip.is_loopback or ip.is_link_local
                or ip.is_unspecified or ip.is_reserved or ip.is_multicast)


@asynccontextmanager
async def http_client(context: ExecutionContext) -> AsyncIterator[httpx.AsyncClient]:
    """The workspace's pooled client, or a one-off client outside the engine."""
    if context.clients is not None:
        yield await context.clients.http(context.workspace_id)
        return
    async with httpx.AsyncClient(headers={"User-Agent": USER_AGENT}) as client:
        yield client


def parse_response(response: httpx.Response) -> Any:
    """JSON body when it parses, otherwise the raw text."""
    try:
        return orjson.loads(response.content)
    except orjson.JSONDecodeError:
        return response.text


def _parse_headers(value: Any) -> Dict[str, str]:
    if isinstance(value, dict):
        return {str(k): str(v) for k, v in value.items()}
    if isinstance(value, str) and value.strip():
        try:
            parsed = orjson.loads(value)
        except orjson.JSONDecodeError:
            return {}
        if isinstance(parsed, dict):
            return {str(k): str(v) for k, v in parsed.items()}
    return {}


async def handle_webhook_send(
    config: Dict[str, Any],
    context: ExecutionContext,
    allow_private: bool = False,
) -> ActionResult:
    """Send a webhook to an external URL.

    Non-GET/DELETE requests carry the config body plus a ``_workflow`` block
    identifying the run; X-Workflow-ID / X-Workflow-Run-ID headers are set
    on every request.
    """
    url = config.get("url")
    method = str(config.get("method") or "POST").upper()

    if not url:
        return ActionResult.fail("Webhook URL is required")
    if not is_url_allowed(url, allow_private):
        return ActionResult.fail("Webhook URL is not allowed: must be a public HTTP/HTTPS URL")

    headers = {
        "Content-Type": "application/json",
        "X-Workflow-ID": context.workflow_id,
        "X-Workflow-Run-ID": context.run_id,
        **_parse_headers(config.get("headers")),
    }

    content: Optional[bytes] = None
    if method not in BODYLESS_METHODS:
        body = config.get("body")
        content = orjson.dumps({
            **(body if isinstance(body, dict) else {}),
            "_workflow": {
                "id": context.workflow_id,
                "runId": context.run_id,
                "trigger": context.trigger,
            },
        }, default=str)

    start_time = time.time()
    try:
        async with http_client(context) as client:
            response = await client.request(method, url, headers=headers, content=content)
    except httpx.TimeoutException:
        logger.error("Webhook timed out", run_id=context.run_id, url=url)
        return ActionResult.fail("Webhook request timed out")
    except httpx.HTTPError as e:
        logger.error("Webhook failed", run_id=context.run_id, url=url, error=str(e))
        return ActionResult.fail(str(e) or "Failed to send webhook")

    output = {
        "url": url,
        "method": method,
        "statusCode": response.status_code,
        "duration": int((time.time() - start_time) * 1000),
        "response": parse_response(response),
    }
    if response.is_error:
        return ActionResult.fail(
            f"Webhook returned {response.status_code}: {response.text[:200]}", output=output
        )

    logger.info("Webhook sent", run_id=context.run_id, url=url, status_code=response.status_code)
    return ActionResult.ok(output)


async def handle_http_request(
    config: Dict[str, Any],
    context: ExecutionContext,
    allow_private: bool = False,
) -> ActionResult:
    """Make an HTTP request to an external API.

    Config: url, method (GET), headers (dict or JSON string), query, body,
    timeout seconds. A dict/list body is sent as JSON, a string body as-is.
    """
    url = config.get("url")
    method = str(config.get("method") or "GET").upper()

    if not url:
        return ActionResult.fail("URL is required")
    if not is_url_allowed(url, allow_private):
        return ActionResult.fail("URL is not allowed: must be a public HTTP/HTTPS URL")

    try:
        timeout = float(config.get("timeout") or 30)
    except (TypeError, ValueError):
        timeout = 30.0

    kwargs: Dict[str, Any] = {
        "headers": _parse_headers(config.get("headers")),
        "timeout": timeout,
    }
    if isinstance(config.get("query"), dict):
        kwargs["params"] = config["query"]

    body = config.get("body")
    if method not in BODYLESS_METHODS and body not in (None, ""):
        if isinstance(body, (dict, list)):
            kwargs["content"] = orjson.dumps(body, default=str)
            kwargs["headers"].setdefault("Content-Type", "application/json")
        else:
            kwargs["content"] = str(body).encode()

    logger.info("HTTP request", run_id=context.run_id, method=method, url=url)
    start_time = time.time()
    try:
        async with http_client(context) as client:
            response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException:
        logger.error("HTTP request timed out", run_id=context.run_id, url=url)
        return ActionResult.fail(f"Request timed out after {timeout:g} seconds")
    except httpx.HTTPError as e:
        logger.error("HTTP request failed", run_id=context.run_id, url=url, error=str(e))
        return ActionResult.fail(str(e) or "HTTP request failed")

    output = {
        "url": str(response.url),
        "method": method,
        "statusCode": response.status_code,
        "duration": int((time.time() - start_time) * 1000),
        "headers": dict(response.headers),
        "response": parse_response(response),
    }
    if response.is_error:
        return ActionResult.fail(f"HTTP request returned {response.status_code}", output=output)
    return ActionResult.ok(output)
