"""Graph executor for automation workflows.

Walks a workflow graph depth-first from its trigger node:
- every visited non-trigger node gets a run step record
- condition nodes follow only the edges of the selected branch handle
- action, delay and trigger nodes follow all outgoing edges in list order
- siblings run one after another, never concurrently
- the first failing step aborts the traversal and fails the run

Persistence, status publishing, action invocation and sleeping are ports, so
the same traversal runs in-process or inside a Temporal workflow.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple

from constants import EVENT_EDGE_ACTIVE, EVENT_NODE_STATUS, EVENT_WORKFLOW_COMPLETE
from core.logging import get_logger
from models.nodes import (
    ActionNode,
    ConditionNode,
    DelayNode,
    GraphEdge,
    GraphNode,
    TriggerNode,
    WorkflowDefinition,
    WorkflowGraph,
)
from .conditions import evaluate
from .delay import DurableSleeper, handle_delay
from .models import (
    ActionResult,
    ConditionResult,
    ExecutionContext,
    NodeStatus,
    RunResult,
    RunStatus,
    StepStatus,
)

logger = get_logger(__name__)


# =============================================================================
# PORTS
# =============================================================================

class RunStore(Protocol):
    """Run/step persistence used by the executor."""

    async def create_run(self, workflow_id: str, workspace_id: str, trigger_event: str,
                         trigger_data: Dict[str, Any], total_steps: int) -> str: ...

    async def update_run(self, run_id: str, **fields: Any) -> bool: ...

    async def get_run_status(self, run_id: str) -> Optional[str]: ...

    async def create_step(self, run_id: str, node_id: str, action: str,
                          action_config: Dict[str, Any], input: Dict[str, Any]) -> str: ...

    async def update_step(self, step_id: str, **fields: Any) -> None: ...

    async def increment_workflow_run_count(self, workflow_id: str,
                                           last_error: Optional[str] = None) -> None: ...


class StatusPublisher(Protocol):
    """Fire-and-forget status channel."""

    async def publish(self, workflow_id: str, event: str, payload: Dict[str, Any]) -> None: ...


class ActionInvoker(Protocol):
    """Config resolution plus handler invocation (see ActionDispatcher)."""

    def prepare(self, config: Optional[Dict[str, Any]], context: ExecutionContext) -> Dict[str, Any]: ...

    async def invoke(self, action: str, resolved_config: Dict[str, Any],
                     context: ExecutionContext) -> ActionResult: ...


# =============================================================================
# RUN STATE
# =============================================================================

class StepFailed(Exception):
    """Raised to unwind the traversal when a step fails."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RunCancelled(Exception):
    """Raised to unwind the traversal when the run was cancelled out-of-band."""


@dataclass
class _RunState:
    workflow: WorkflowDefinition
    context: ExecutionContext
    total_steps: int
    graph: Optional[WorkflowGraph] = None
    visits: int = 0
    completed: Set[str] = field(default_factory=set)

    @property
    def run_id(self) -> str:
        return self.context.run_id


# Traversal stack instructions
_VISIT = "visit"
_RELEASE = "release"


class GraphExecutor:
    """Executes one workflow run per ``execute`` call."""

    def __init__(self, store: RunStore, publisher: StatusPublisher,
                 dispatcher: ActionInvoker, sleeper: DurableSleeper,
                 max_node_visits: int = 500, clients: Any = None):
        self.store = store
        self.publisher = publisher
        self.dispatcher = dispatcher
        self.sleeper = sleeper
        self.max_node_visits = max_node_visits
        self.clients = clients

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    async def execute(self, workflow: WorkflowDefinition,
                      trigger_data: Optional[Dict[str, Any]] = None) -> RunResult:
        """Run the workflow graph once for one trigger payload."""
        trigger_data = trigger_data or {}
        total_steps = workflow.total_steps

        try:
            run_id = await self.store.create_run(
                workflow_id=workflow.id,
                workspace_id=workflow.workspace_id,
                trigger_event=workflow.trigger,
                trigger_data=trigger_data,
                total_steps=total_steps,
            )
        except Exception as e:
            logger.error("Failed to create workflow run", workflow_id=workflow.id, error=str(e))
            return RunResult(success=False, run_id=None, steps_completed=0,
                             total_steps=total_steps, status=RunStatus.FAILED.value,
                             error=f"Failed to create run: {e}")

        context = ExecutionContext.build(
            workflow_id=workflow.id,
            run_id=run_id,
            workspace_id=workflow.workspace_id,
            trigger=workflow.trigger,
            trigger_data=trigger_data,
            clients=self.clients,
        )
        state = _RunState(workflow=workflow, context=context, total_steps=total_steps)

        logger.info("Workflow run started",
                   workflow_id=workflow.id,
                   run_id=run_id,
                   trigger=workflow.trigger,
                   total_steps=total_steps)

        error: Optional[str] = None
        cancelled = False
        try:
            state.graph = workflow.load_graph()
            trigger = state.graph.trigger_node()
            if trigger is None:
                raise StepFailed("No trigger node found in workflow")
            await self._traverse(state, trigger)
        except RunCancelled:
            cancelled = True
        except StepFailed as e:
            error = e.message
        except Exception as e:
            logger.error("Unhandled error during traversal", run_id=run_id, error=str(e))
            error = str(e) or type(e).__name__

        if cancelled:
            return await self._finish_cancelled(state)
        if error is None:
            return await self._finish_completed(state)
        return await self._finish_failed(state, error)

    # =========================================================================
    # TRAVERSAL
    # =========================================================================

    async def _traverse(self, state: _RunState, trigger: TriggerNode) -> None:
        """Depth-first walk with an explicit stack.

        Each non-trigger edge is marked active before its target runs and
        released once the target's whole subtree has finished.
        """
        state.visits += 1
        await self._node_status(state, trigger.id, NodeStatus.EXECUTING)
        await self._node_status(state, trigger.id, NodeStatus.SUCCESS)

        stack: List[Tuple[str, GraphEdge, bool]] = [
            (_VISIT, edge, False) for edge in reversed(state.graph.outgoing(trigger.id))
        ]

        while stack:
            instruction, edge, release = stack.pop()

            if instruction == _RELEASE:
                await self._edge_active(state, edge, False)
                continue

            await self._edge_active(state, edge, True)
            node = state.graph.nodes.get(edge.target)
            if node is None or isinstance(node, TriggerNode):
                logger.warning("Edge target is not an executable node",
                              run_id=state.run_id, edge_id=edge.id, target=edge.target)
                if release:
                    await self._edge_active(state, edge, False)
                continue

            result = await self._run_node(state, node)

            if release:
                stack.append((_RELEASE, edge, False))
            for child in reversed(self._next_edges(state, node, result)):
                stack.append((_VISIT, child, True))

    def _next_edges(self, state: _RunState, node: GraphNode, result: ActionResult) -> List[GraphEdge]:
        edges = state.graph.outgoing(node.id)
        if isinstance(result, ConditionResult):
            branch = result.branch
            return [e for e in edges if e.source_handle in (branch, f"{branch}-handle")]
        return edges

    async def _run_node(self, state: _RunState, node: GraphNode) -> ActionResult:
        """Execute one node as a run step; raises StepFailed on failure."""
        state.visits += 1
        if state.visits > self.max_node_visits:
            raise StepFailed("Maximum node visits exceeded (possible cycle in workflow graph)")

        context = state.context
        await self._node_status(state, node.id, NodeStatus.EXECUTING)

        step_id: Optional[str] = None
        try:
            action, action_config = self._step_config(node, context)
            step_id = await self.store.create_step(
                run_id=state.run_id,
                node_id=node.id,
                action=action,
                action_config=action_config,
                input={"nodeType": node.declared_type or node.type, "nodeLabel": node.label},
            )

            result = await self._dispatch(state, node, action_config)
            context.record(node.id, result)

            await self.store.update_step(
                step_id,
                status=(StepStatus.COMPLETED if result.success else StepStatus.FAILED).value,
                output=self._step_output(result),
                error=result.error,
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error("Step raised", run_id=state.run_id, node_id=node.id, error=message)
            await self._node_status(state, node.id, NodeStatus.ERROR, error=message)
            if step_id is not None:
                try:
                    await self.store.update_step(step_id, status=StepStatus.FAILED.value, error=message)
                except Exception as update_error:
                    logger.warning("Failed to mark step failed", step_id=step_id, error=str(update_error))
            raise StepFailed(message) from e

        if not result.success:
            await self._node_status(state, node.id, NodeStatus.ERROR, error=result.error)
            raise StepFailed(result.error or f"Step {node.id} failed")

        state.completed.add(node.id)
        await self._node_status(state, node.id, NodeStatus.SUCCESS, output=result.output)

        if isinstance(node, DelayNode):
            await self._check_cancelled(state)

        return result

    def _step_config(self, node: GraphNode, context: ExecutionContext) -> Tuple[str, Dict[str, Any]]:
        if isinstance(node, ActionNode):
            return node.action or "", self.dispatcher.prepare(node.config, context)
        return node.action, dict(node.config)

    async def _dispatch(self, state: _RunState, node: GraphNode,
                        action_config: Dict[str, Any]) -> ActionResult:
        context = state.context

        if isinstance(node, ConditionNode):
            if node.config_error:
                return ConditionResult(success=False, branch="no", error=node.config_error)
            return evaluate(node.rule_set, context)

        if node.config_error:
            return ActionResult.fail(node.config_error)

        if isinstance(node, DelayNode):
            return await handle_delay(node.id, node.delay, context, self.sleeper)

        return await self.dispatcher.invoke(node.action, action_config, context)

    @staticmethod
    def _step_output(result: ActionResult) -> Optional[Dict[str, Any]]:
        output = dict(result.output) if result.output is not None else None
        if isinstance(result, ConditionResult):
            output = {**(output or {}), "branch": result.branch}
        if result.skipped:
            output = {**(output or {}), "skipped": True, "skipReason": result.skip_reason}
        return output

    async def _check_cancelled(self, state: _RunState) -> None:
        status = await self.store.get_run_status(state.run_id)
        if status == RunStatus.CANCELLED.value:
            logger.info("Run cancelled while suspended, stopping traversal", run_id=state.run_id)
            raise RunCancelled()

    # =========================================================================
    # COMPLETION
    # =========================================================================

    async def _finish_completed(self, state: _RunState) -> RunResult:
        steps_completed = len(state.completed)
        output = state.context.step_outputs
        try:
            updated = await self.store.update_run(
                state.run_id,
                status=RunStatus.COMPLETED.value,
                steps_completed=steps_completed,
                output=output,
            )
        except Exception as e:
            logger.error("Failed to mark run completed", run_id=state.run_id, error=str(e))
            return await self._finish_failed(state, f"Failed to record run completion: {e}")

        if not updated:
            return await self._finish_cancelled(state)

        await self._increment(state, None)
        await self._publish(state, EVENT_WORKFLOW_COMPLETE, {
            "runId": state.run_id,
            "status": RunStatus.COMPLETED.value,
            "stepsCompleted": steps_completed,
            "totalSteps": state.total_steps,
        })
        logger.info("Workflow run completed",
                   workflow_id=state.workflow.id,
                   run_id=state.run_id,
                   steps_completed=steps_completed,
                   total_steps=state.total_steps)
        return RunResult(success=True, run_id=state.run_id, steps_completed=steps_completed,
                         total_steps=state.total_steps, status=RunStatus.COMPLETED.value,
                         output=output)

    async def _finish_failed(self, state: _RunState, error: str) -> RunResult:
        steps_completed = len(state.completed)
        try:
            updated = await self.store.update_run(
                state.run_id,
                status=RunStatus.FAILED.value,
                steps_completed=steps_completed,
                error=error,
                output=state.context.step_outputs,
            )
        except Exception as e:
            logger.error("Failed to mark run failed", run_id=state.run_id, error=str(e))
            updated = True

        if not updated:
            return await self._finish_cancelled(state)

        await self._increment(state, error)
        await self._publish(state, EVENT_WORKFLOW_COMPLETE, {
            "runId": state.run_id,
            "status": RunStatus.FAILED.value,
            "stepsCompleted": steps_completed,
            "totalSteps": state.total_steps,
            "error": error,
        })
        logger.warning("Workflow run failed",
                      workflow_id=state.workflow.id,
                      run_id=state.run_id,
                      steps_completed=steps_completed,
                      error=error)
        return RunResult(success=False, run_id=state.run_id, steps_completed=steps_completed,
                         total_steps=state.total_steps, status=RunStatus.FAILED.value,
                         error=error)

    async def _finish_cancelled(self, state: _RunState) -> RunResult:
        steps_completed = len(state.completed)
        await self._increment(state, None)
        await self._publish(state, EVENT_WORKFLOW_COMPLETE, {
            "runId": state.run_id,
            "status": RunStatus.CANCELLED.value,
            "stepsCompleted": steps_completed,
            "totalSteps": state.total_steps,
        })
        logger.info("Workflow run cancelled", workflow_id=state.workflow.id, run_id=state.run_id)
        return RunResult(success=False, run_id=state.run_id, steps_completed=steps_completed,
                         total_steps=state.total_steps, status=RunStatus.CANCELLED.value,
                         error="Run was cancelled")

    async def _increment(self, state: _RunState, error: Optional[str]) -> None:
        try:
            await self.store.increment_workflow_run_count(state.workflow.id, error)
        except Exception as e:
            logger.error("Failed to update workflow run counters",
                        workflow_id=state.workflow.id, error=str(e))

    # =========================================================================
    # STATUS
    # =========================================================================

    async def _node_status(self, state: _RunState, node_id: str, status: NodeStatus,
                           output: Any = None, error: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {"nodeId": node_id, "status": status.value, "runId": state.run_id}
        if output is not None:
            payload["output"] = output
        if error is not None:
            payload["error"] = error
        await self._publish(state, EVENT_NODE_STATUS, payload)

    async def _edge_active(self, state: _RunState, edge: GraphEdge, active: bool) -> None:
        await self._publish(state, EVENT_EDGE_ACTIVE, {
            "edgeId": edge.id,
            "active": active,
            "runId": state.run_id,
        })

    async def _publish(self, state: _RunState, event: str, payload: Dict[str, Any]) -> None:
        """Publish a status event; failures are logged and never propagate."""
        try:
            await self.publisher.publish(state.workflow.id, event, payload)
        except Exception as e:
            logger.warning("Status publish failed",
                          run_id=state.run_id, status_event=event, error=str(e))
