"""Temporal worker for durable automation runs.

Uses class-based activities with shared resources (database, broadcaster,
dispatcher, integration clients) injected once at worker start.

The worker polls the task queue and executes:
- AutomationRunWorkflow: runs the graph executor with durable timers
- AutomationActivities: persistence, status and action handler calls

References:
- https://docs.temporal.io/develop/python/python-sdk-sync-vs-async
- https://docs.temporal.io/develop/worker-performance
"""

import asyncio
from typing import Optional

from temporalio.client import Client
from temporalio.worker import Worker

from core.logging import get_logger
from .activities import AutomationActivities
from .workflow import AutomationRunWorkflow

logger = get_logger(__name__)


def create_worker(
    client: Client,
    activities: AutomationActivities,
    task_queue: str = "automation-runs",
    pool_size: int = 100,
) -> Worker:
    """Create a worker instance (not started)."""
    return Worker(
        client,
        task_queue=task_queue,
        workflows=[AutomationRunWorkflow],
        activities=activities.all(),
        max_concurrent_activities=pool_size,
        max_concurrent_workflow_tasks=10,
    )


class TemporalWorkerManager:
    """Manages the Temporal worker lifecycle inside the API process."""

    def __init__(
        self,
        client: Client,
        activities: AutomationActivities,
        task_queue: str = "automation-runs",
        pool_size: int = 100,
    ):
        """Initialize the worker manager.

        Args:
            client: Connected Temporal client
            activities: Activity instance with shared resources
            task_queue: Task queue name to poll
            pool_size: Maximum concurrent activity executions
        """
        self.client = client
        self.activities = activities
        self.task_queue = task_queue
        self.pool_size = pool_size
        self._worker: Optional[Worker] = None
        self._worker_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        """Check if the worker is running."""
        return self._worker_task is not None and not self._worker_task.done()

    async def start(self) -> None:
        """Start the Temporal worker in the background."""
        if self.is_running:
            logger.warning("Temporal worker already running")
            return

        self._worker = create_worker(self.client, self.activities, self.task_queue, self.pool_size)

        logger.info(
            "Starting Temporal worker",
            task_queue=self.task_queue,
            pool_size=self.pool_size,
        )

        self._worker_task = asyncio.create_task(
            self._run_worker(),
            name="temporal-worker",
        )

    async def _run_worker(self) -> None:
        """Run the worker (background task)."""
        try:
            await self._worker.run()
        except asyncio.CancelledError:
            logger.info("Temporal worker cancelled")
            raise
        except Exception as e:
            logger.error("Temporal worker error", error=str(e))
            raise

    async def stop(self) -> None:
        """Stop the Temporal worker."""
        if not self.is_running:
            return

        logger.info("Stopping Temporal worker")

        if self._worker_task:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None

        self._worker = None
        logger.info("Temporal worker stopped")
