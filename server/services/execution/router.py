"""Trigger router: inbound business events -> workflow runs.

Matches an event against the active, published workflows of its workspace
and hands each match to the run launcher. Routing never waits for runs to
finish; a failure starting one workflow does not stop the others.
"""

from typing import Any, Dict, Optional, TYPE_CHECKING

from constants import MANUAL_TRIGGER, SCHEDULE_TRIGGERS
from core.logging import get_logger
from models.nodes import WorkflowDefinition
from .launcher import RunLauncher
from .models import (
    RunNotFoundError,
    WorkflowNotFoundError,
    WorkflowNotRunnableError,
    utcnow,
)

if TYPE_CHECKING:
    from core.database import Database

logger = get_logger(__name__)


class TriggerRouter:
    """Starts workflow runs for trigger events, manual triggers and cancels runs."""

    def __init__(self, database: "Database", launcher: RunLauncher):
        self.database = database
        self.launcher = launcher

    async def route(self, trigger: str, workspace_id: str,
                    event_payload: Optional[Dict[str, Any]] = None) -> int:
        """Start one run per matching workflow; returns the number matched."""
        payload = event_payload or {}
        workflows = await self.database.find_active_workflows(trigger, workspace_id)

        # A due schedule fires only its own workflow
        schedule_id = payload.get("scheduleId") if trigger in SCHEDULE_TRIGGERS else None
        if schedule_id:
            workflows = [w for w in workflows if w.id == schedule_id]

        if not workflows:
            logger.debug("No workflows matched", trigger=trigger, workspace_id=workspace_id)
            return 0

        for record in workflows:
            try:
                await self.launcher.launch(WorkflowDefinition.from_record(record), payload)
            except Exception as e:
                logger.error("Failed to start workflow run",
                            workflow_id=record.id,
                            trigger=trigger,
                            error=str(e))

        logger.info("Trigger routed",
                   trigger=trigger,
                   workspace_id=workspace_id,
                   matched=len(workflows))
        return len(workflows)

    async def trigger_manually(self, workflow_id: str, triggered_by: Optional[str] = None,
                               input_data: Optional[Dict[str, Any]] = None) -> None:
        """Start a manual-trigger workflow the same way an event would."""
        record = await self.database.get_workflow(workflow_id)
        if record is None:
            raise WorkflowNotFoundError(f"Workflow not found: {workflow_id}")
        if not record.is_active:
            raise WorkflowNotRunnableError(f"Workflow is not active: {workflow_id}")
        if record.is_draft:
            raise WorkflowNotRunnableError(f"Workflow is a draft: {workflow_id}")
        if record.trigger != MANUAL_TRIGGER:
            raise WorkflowNotRunnableError(
                f"Workflow is not a manual trigger workflow. Trigger: {record.trigger}"
            )

        event_data = {
            "workspaceId": record.workspace_id,
            "timestamp": utcnow().isoformat(),
            "triggeredBy": triggered_by,
            "inputData": input_data or {},
        }
        await self.launcher.launch(WorkflowDefinition.from_record(record), event_data)
        logger.info("Workflow triggered manually", workflow_id=workflow_id, triggered_by=triggered_by)

    async def cancel(self, run_id: str) -> bool:
        """Mark a run cancelled. Returns False when it had already finished."""
        cancelled = await self.database.cancel_run(run_id)
        if cancelled is None:
            raise RunNotFoundError(f"Run not found: {run_id}")
        logger.info("Run cancel requested", run_id=run_id, transitioned=cancelled)
        return cancelled
