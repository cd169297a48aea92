"""Run launcher that starts each run as a Temporal workflow.

The per-workspace slot is held until the Temporal run finishes, so the
concurrency limit covers runs suspended on durable timers as well.
"""

import uuid
from typing import Any, Dict

from core.logging import get_logger
from models.nodes import WorkflowDefinition
from services.execution.launcher import BackgroundLauncher, WorkspaceLimiter
from services.execution.models import RunResult
from .client import TemporalClientWrapper
from .workflow import AutomationRunWorkflow

logger = get_logger(__name__)


class TemporalRunLauncher(BackgroundLauncher):
    """Starts AutomationRunWorkflow executions and waits for their results."""

    def __init__(self, client: TemporalClientWrapper, limiter: WorkspaceLimiter,
                 task_queue: str = "automation-runs", max_node_visits: int = 500):
        super().__init__(limiter)
        self.client = client
        self.task_queue = task_queue
        self.max_node_visits = max_node_visits

    async def _execute(self, workflow: WorkflowDefinition, event_data: Dict[str, Any]) -> RunResult:
        client = await self.client.connect()
        execution_id = f"automation-{workflow.id}-{uuid.uuid4().hex[:12]}"

        handle = await client.start_workflow(
            AutomationRunWorkflow.run,
            {
                "workflow": workflow.model_dump(mode="json"),
                "event_data": event_data,
                "max_node_visits": self.max_node_visits,
            },
            id=execution_id,
            task_queue=self.task_queue,
        )
        logger.info("Temporal run started", workflow_id=workflow.id, execution_id=execution_id)

        result = await handle.result()
        return RunResult.from_dict(result)
