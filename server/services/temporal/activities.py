"""Temporal activities backing the graph executor's ports.

Everything with side effects (database writes, status broadcasts, action
handlers) runs as an activity, so a run suspended on a delay timer resumes
on any worker without repeating completed work.

Uses class-based activities: the worker creates one ``AutomationActivities``
instance holding the shared database, broadcaster, dispatcher and client
pool, and registers its bound methods.
"""

from typing import Any, Dict, List, Optional, TYPE_CHECKING

from temporalio import activity

from core.logging import get_logger
from services.execution.dispatcher import ActionDispatcher
from services.execution.models import ExecutionContext

if TYPE_CHECKING:
    from core.database import Database
    from services.execution.clients import IntegrationClients
    from services.status_broadcaster import StatusBroadcaster

logger = get_logger(__name__)


class AutomationActivities:
    """Activity implementations with shared, injected resources."""

    def __init__(self, database: "Database", broadcaster: "StatusBroadcaster",
                 dispatcher: ActionDispatcher, clients: Optional["IntegrationClients"] = None):
        self.database = database
        self.broadcaster = broadcaster
        self.dispatcher = dispatcher
        self.clients = clients

    def all(self) -> List[Any]:
        """Bound activity methods for Worker registration."""
        return [
            self.create_run,
            self.update_run,
            self.get_run_status,
            self.create_step,
            self.update_step,
            self.increment_workflow_run_count,
            self.publish_status,
            self.invoke_action,
        ]

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    @activity.defn(name="automation.create_run")
    async def create_run(self, params: Dict[str, Any]) -> str:
        return await self.database.create_run(
            workflow_id=params["workflow_id"],
            workspace_id=params["workspace_id"],
            trigger_event=params["trigger_event"],
            trigger_data=params.get("trigger_data") or {},
            total_steps=params.get("total_steps", 0),
        )

    @activity.defn(name="automation.update_run")
    async def update_run(self, params: Dict[str, Any]) -> bool:
        fields = dict(params.get("fields") or {})
        return await self.database.update_run(params["run_id"], **fields)

    @activity.defn(name="automation.get_run_status")
    async def get_run_status(self, run_id: str) -> Optional[str]:
        return await self.database.get_run_status(run_id)

    @activity.defn(name="automation.create_step")
    async def create_step(self, params: Dict[str, Any]) -> str:
        return await self.database.create_step(
            run_id=params["run_id"],
            node_id=params["node_id"],
            action=params["action"],
            action_config=params.get("action_config") or {},
            input=params.get("input") or {},
        )

    @activity.defn(name="automation.update_step")
    async def update_step(self, params: Dict[str, Any]) -> None:
        fields = dict(params.get("fields") or {})
        await self.database.update_step(params["step_id"], **fields)

    @activity.defn(name="automation.increment_workflow_run_count")
    async def increment_workflow_run_count(self, params: Dict[str, Any]) -> None:
        await self.database.increment_workflow_run_count(
            params["workflow_id"], params.get("last_error")
        )

    # =========================================================================
    # STATUS
    # =========================================================================

    @activity.defn(name="automation.publish_status")
    async def publish_status(self, params: Dict[str, Any]) -> None:
        """Broadcast a status event; never fails the workflow."""
        try:
            await self.broadcaster.publish(params["workflow_id"], params["event"], params.get("payload") or {})
        except Exception as e:
            logger.warning("Status publish activity failed", status_event=params.get("event"), error=str(e))

    # =========================================================================
    # ACTIONS
    # =========================================================================

    @activity.defn(name="automation.invoke_action")
    async def invoke_action(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Run an action handler against a context snapshot.

        Returns ``ActionResult.to_dict()``; handler errors come back as a
        failed result rather than an activity failure, so they are not
        retried.
        """
        context = ExecutionContext.from_dict(params["context"], clients=self.clients)
        info = activity.info()
        logger.info("Invoking action",
                   action=params["action"],
                   run_id=context.run_id,
                   attempt=info.attempt)
        result = await self.dispatcher.invoke(params["action"], params.get("config") or {}, context)
        return result.to_dict()
