"""Temporal workflow - durable automation run.

Runs the same GraphExecutor as the in-process launcher, with its ports
backed by activities and its sleeper backed by Temporal timers. Delay nodes
therefore survive worker restarts: on resume the workflow replays completed
activities from history and continues after the timer.

NO side effects in workflow code - database, broadcast and action handler
calls all happen in activities.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy

from models.nodes import WorkflowDefinition
from services.execution.delay import Duration, parse_duration
from services.execution.executor import GraphExecutor
from services.execution.models import ActionResult, ExecutionContext
from services.execution.resolver import resolve_deep

# Persistence and broadcast activities are idempotent enough to retry
STORE_RETRY_POLICY = RetryPolicy(
    initial_interval=timedelta(seconds=1),
    maximum_interval=timedelta(seconds=30),
    maximum_attempts=5,
)

# Action handlers report failures as results; only infrastructure errors retry
ACTION_RETRY_POLICY = RetryPolicy(
    initial_interval=timedelta(seconds=1),
    maximum_interval=timedelta(seconds=30),
    maximum_attempts=3,
)

STORE_TIMEOUT = timedelta(seconds=30)
ACTION_TIMEOUT = timedelta(minutes=10)


async def _store_activity(name: str, arg: Any) -> Any:
    return await workflow.execute_activity(
        name,
        arg,
        start_to_close_timeout=STORE_TIMEOUT,
        retry_policy=STORE_RETRY_POLICY,
    )


class ActivityRunStore:
    """RunStore port backed by persistence activities."""

    async def create_run(self, workflow_id: str, workspace_id: str, trigger_event: str,
                         trigger_data: Dict[str, Any], total_steps: int) -> str:
        return await _store_activity("automation.create_run", {
            "workflow_id": workflow_id,
            "workspace_id": workspace_id,
            "trigger_event": trigger_event,
            "trigger_data": trigger_data,
            "total_steps": total_steps,
        })

    async def update_run(self, run_id: str, **fields: Any) -> bool:
        return await _store_activity("automation.update_run", {"run_id": run_id, "fields": fields})

    async def get_run_status(self, run_id: str) -> Optional[str]:
        return await _store_activity("automation.get_run_status", run_id)

    async def create_step(self, run_id: str, node_id: str, action: str,
                          action_config: Dict[str, Any], input: Dict[str, Any]) -> str:
        return await _store_activity("automation.create_step", {
            "run_id": run_id,
            "node_id": node_id,
            "action": action,
            "action_config": action_config,
            "input": input,
        })

    async def update_step(self, step_id: str, **fields: Any) -> None:
        await _store_activity("automation.update_step", {"step_id": step_id, "fields": fields})

    async def increment_workflow_run_count(self, workflow_id: str,
                                           last_error: Optional[str] = None) -> None:
        await _store_activity("automation.increment_workflow_run_count", {
            "workflow_id": workflow_id,
            "last_error": last_error,
        })


class ActivityStatusPublisher:
    """StatusPublisher port; a single attempt, failures are dropped."""

    async def publish(self, workflow_id: str, event: str, payload: Dict[str, Any]) -> None:
        await workflow.execute_activity(
            "automation.publish_status",
            {"workflow_id": workflow_id, "event": event, "payload": payload},
            start_to_close_timeout=timedelta(seconds=10),
            retry_policy=RetryPolicy(maximum_attempts=1),
        )


class ActivityActionInvoker:
    """ActionInvoker port: config resolution in the workflow, handlers in an activity."""

    def prepare(self, config: Optional[Dict[str, Any]], context: ExecutionContext) -> Dict[str, Any]:
        return resolve_deep(config or {}, context)

    async def invoke(self, action: str, resolved_config: Dict[str, Any],
                     context: ExecutionContext) -> ActionResult:
        result = await workflow.execute_activity(
            "automation.invoke_action",
            {"action": action, "config": resolved_config, "context": context.to_dict()},
            start_to_close_timeout=ACTION_TIMEOUT,
            retry_policy=ACTION_RETRY_POLICY,
        )
        return ActionResult.from_dict(result)


class TemporalSleeper:
    """Durable sleeper: asyncio.sleep inside a workflow is a Temporal timer."""

    async def sleep(self, key: str, duration: Duration) -> None:
        seconds = parse_duration(duration).total_seconds()
        workflow.logger.info("Suspending run on durable timer: %s (%ss)", key, seconds)
        if seconds > 0:
            await asyncio.sleep(seconds)

    def now(self) -> datetime:
        return workflow.now()


@workflow.defn(sandboxed=False)
class AutomationRunWorkflow:
    """One workflow run for one trigger event."""

    @workflow.run
    async def run(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Execute the graph.

        Args:
            params: Dict containing:
                - workflow: WorkflowDefinition as JSON
                - event_data: trigger payload
                - max_node_visits: per-run visit budget

        Returns:
            RunResult.to_dict()
        """
        definition = WorkflowDefinition.model_validate(params["workflow"])
        executor = GraphExecutor(
            store=ActivityRunStore(),
            publisher=ActivityStatusPublisher(),
            dispatcher=ActivityActionInvoker(),
            sleeper=TemporalSleeper(),
            max_node_visits=params.get("max_node_visits", 500),
        )
        result = await executor.execute(definition, params.get("event_data") or {})
        return result.to_dict()
