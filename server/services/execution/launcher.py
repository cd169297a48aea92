"""Run launching with per-workspace concurrency limits.

The trigger router hands matched workflows to a launcher and returns
immediately. ``LocalRunLauncher`` runs the graph executor in background
tasks of this process; at most ``limit`` runs per workspace are in flight
and the rest wait for a free slot.
"""

import asyncio
from collections import defaultdict, deque
from contextlib import asynccontextmanager
from typing import Any, Deque, Dict, Optional, Protocol, Set

from core.logging import get_logger
from models.nodes import WorkflowDefinition
from .executor import GraphExecutor
from .models import RunResult

logger = get_logger(__name__)


class RunLauncher(Protocol):
    """Starts a run without waiting for it to finish."""

    async def launch(self, workflow: WorkflowDefinition, event_data: Dict[str, Any]) -> None: ...


class WorkspaceLimiter:
    """Per-workspace semaphores; excess acquirers queue."""

    def __init__(self, limit: int = 5):
        if limit < 1:
            raise ValueError("Workspace concurrency limit must be at least 1")
        self.limit = limit
        self._semaphores: Dict[str, asyncio.Semaphore] = {}
        self._in_flight: Dict[str, int] = defaultdict(int)

    def _semaphore(self, workspace_id: str) -> asyncio.Semaphore:
        semaphore = self._semaphores.get(workspace_id)
        if semaphore is None:
            semaphore = asyncio.Semaphore(self.limit)
            self._semaphores[workspace_id] = semaphore
        return semaphore

    @asynccontextmanager
    async def slot(self, workspace_id: str):
        """Hold one of the workspace's run slots for the duration of the block."""
        semaphore = self._semaphore(workspace_id)
        if semaphore.locked():
            logger.info("Workspace at concurrency limit, run queued",
                       workspace_id=workspace_id, limit=self.limit)
        async with semaphore:
            self._in_flight[workspace_id] += 1
            try:
                yield
            finally:
                self._in_flight[workspace_id] -= 1

    def in_flight(self, workspace_id: str) -> int:
        return self._in_flight.get(workspace_id, 0)


class BackgroundLauncher:
    """Tracks launched runs as background tasks holding a workspace slot."""

    def __init__(self, limiter: WorkspaceLimiter):
        self.limiter = limiter
        self._tasks: Set[asyncio.Task] = set()
        self.recent_results: Deque[RunResult] = deque(maxlen=200)

    async def launch(self, workflow: WorkflowDefinition, event_data: Dict[str, Any]) -> None:
        task = asyncio.create_task(
            self._run(workflow, event_data),
            name=f"workflow-run-{workflow.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, workflow: WorkflowDefinition, event_data: Dict[str, Any]) -> Optional[RunResult]:
        async with self.limiter.slot(workflow.workspace_id):
            try:
                result = await self._execute(workflow, event_data)
            except Exception as e:
                logger.error("Workflow run crashed", workflow_id=workflow.id, error=str(e))
                return None
        self.recent_results.append(result)
        return result

    async def _execute(self, workflow: WorkflowDefinition, event_data: Dict[str, Any]) -> RunResult:
        raise NotImplementedError

    @property
    def active_runs(self) -> int:
        return len(self._tasks)

    def recent_summary(self) -> Dict[str, Any]:
        """Status counts and the latest error over the most recently finished runs."""
        counts: Dict[str, int] = defaultdict(int)
        last_error: Optional[str] = None
        for result in self.recent_results:
            counts[result.status] += 1
            if result.error:
                last_error = result.error
        return {
            "window": len(self.recent_results),
            "by_status": dict(counts),
            "last_error": last_error,
        }

    async def wait_idle(self) -> None:
        """Wait until every launched run (including queued ones) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight runs."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Run launcher stopped", cancelled=len(tasks))


class LocalRunLauncher(BackgroundLauncher):
    """Runs the graph executor in background asyncio tasks of this process."""

    def __init__(self, executor: GraphExecutor, limiter: WorkspaceLimiter):
        super().__init__(limiter)
        self.executor = executor

    async def _execute(self, workflow: WorkflowDefinition, event_data: Dict[str, Any]) -> RunResult:
        return await self.executor.execute(workflow, event_data)
