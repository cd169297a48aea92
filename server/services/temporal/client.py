"""Temporal client wrapper.

Manages the Temporal client connection lifecycle.
"""

import asyncio
from typing import Optional
from temporalio.client import Client
from temporalio.runtime import Runtime, TelemetryConfig

from core.logging import get_logger

logger = get_logger(__name__)


class TemporalClientWrapper:
    """Lazily connected Temporal client."""

    def __init__(self, server_address: str, namespace: str = "default"):
        self.server_address = server_address
        self.namespace = namespace
        self._client: Optional[Client] = None
        self._runtime: Optional[Runtime] = None
        self._lock = asyncio.Lock()

    @property
    def client(self) -> Optional[Client]:
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> Client:
        """Connect once and return the shared client."""
        async with self._lock:
            if self._client is not None:
                return self._client

            logger.info(
                "Connecting to Temporal server",
                server_address=self.server_address,
                namespace=self.namespace,
            )

            # Worker heartbeating disabled for older servers
            self._runtime = Runtime(
                telemetry=TelemetryConfig(),
                worker_heartbeat_interval=None,
            )

            self._client = await Client.connect(
                self.server_address,
                namespace=self.namespace,
                runtime=self._runtime,
            )

            logger.info("Connected to Temporal server")
            return self._client

    async def disconnect(self) -> None:
        """Drop the client reference (the SDK has no explicit close)."""
        if self._client is not None:
            self._client = None
            logger.info("Disconnected from Temporal server")
