"""Per-workspace integration client handles.

Action handlers reach external services through ``context.clients`` rather
than module-level singletons. Each workspace gets its own httpx client,
recreated after ``ttl`` seconds or on explicit ``invalidate()`` (for example
after the workspace rotates integration credentials).
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import httpx

from core.logging import get_logger

logger = get_logger(__name__)

USER_AGENT = "Storeflow-Workflow/1.0"


@dataclass
class _Entry:
    client: httpx.AsyncClient
    created_at: float


class IntegrationClients:
    """TTL-bounded pool of httpx clients keyed by workspace id."""

    def __init__(self, ttl: float = 900.0, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.timeout = timeout
        self._transport = transport
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = asyncio.Lock()

    async def http(self, workspace_id: str) -> httpx.AsyncClient:
        """Get the workspace's HTTP client, creating or refreshing it as needed."""
        async with self._lock:
            entry = self._entries.get(workspace_id)
            now = self._clock()
            if entry is not None and now - entry.created_at < self.ttl and not entry.client.is_closed:
                return entry.client

            if entry is not None:
                logger.debug("Integration client expired", workspace_id=workspace_id)
                await entry.client.aclose()

            client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={"User-Agent": USER_AGENT},
            )
            self._entries[workspace_id] = _Entry(client=client, created_at=now)
            return client

    async def invalidate(self, workspace_id: str) -> bool:
        """Drop the workspace's client so the next call builds a fresh one."""
        async with self._lock:
            entry = self._entries.pop(workspace_id, None)
        if entry is None:
            return False
        await entry.client.aclose()
        logger.info("Integration client invalidated", workspace_id=workspace_id)
        return True

    async def aclose(self) -> None:
        """Close every pooled client."""
        async with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            await entry.client.aclose()

    def __len__(self) -> int:
        return len(self._entries)
