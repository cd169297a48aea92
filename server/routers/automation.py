"""Automation engine routes: event intake, manual triggers, run inspection."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from constants import WORKFLOW_TRIGGERS
from core.container import container
from core.database import Database
from core.logging import get_logger
from models.database import WorkflowRun, WorkflowRunStep
from services.execution.models import (
    RunNotFoundError,
    WorkflowNotFoundError,
    WorkflowNotRunnableError,
)
from services.execution.router import TriggerRouter

logger = get_logger(__name__)
router = APIRouter(prefix="/api/automation", tags=["automation"])


class EventRequest(BaseModel):
    trigger: str
    workspace_id: str = Field(alias="workspaceId")
    data: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class ManualTriggerRequest(BaseModel):
    triggered_by: Optional[str] = Field(default=None, alias="triggeredBy")
    input_data: Dict[str, Any] = Field(default_factory=dict, alias="inputData")

    model_config = {"populate_by_name": True}


def _step_to_dict(step: WorkflowRunStep) -> Dict[str, Any]:
    return {
        "id": step.id,
        "nodeId": step.node_id,
        "action": step.action,
        "actionConfig": step.action_config,
        "status": step.status,
        "input": step.input,
        "output": step.output,
        "error": step.error,
        "startedAt": step.started_at,
        "completedAt": step.completed_at,
    }


def _run_to_dict(run: WorkflowRun, steps: Optional[List[WorkflowRunStep]] = None) -> Dict[str, Any]:
    data = {
        "id": run.id,
        "workflowId": run.workflow_id,
        "workspaceId": run.workspace_id,
        "triggerEvent": run.trigger_event,
        "triggerData": run.trigger_data,
        "status": run.status,
        "stepsCompleted": run.steps_completed,
        "totalSteps": run.total_steps,
        "output": run.output,
        "error": run.error,
        "startedAt": run.started_at,
        "completedAt": run.completed_at,
    }
    if steps is not None:
        data["steps"] = [_step_to_dict(s) for s in steps]
    return data


@router.post("/events")
async def receive_event(
    request: EventRequest,
    trigger_router: TriggerRouter = Depends(lambda: container.router())
):
    """Route a business event to every matching active workflow."""
    if request.trigger not in WORKFLOW_TRIGGERS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail=f"Unknown trigger type: {request.trigger}")

    matched = await trigger_router.route(request.trigger, request.workspace_id, request.data)
    return {"success": True, "matched": matched}


@router.post("/workflows/{workflow_id}/trigger", status_code=status.HTTP_202_ACCEPTED)
async def trigger_workflow(
    workflow_id: str,
    request: ManualTriggerRequest,
    trigger_router: TriggerRouter = Depends(lambda: container.router())
):
    """Start a manual-trigger workflow."""
    try:
        await trigger_router.trigger_manually(workflow_id, request.triggered_by, request.input_data)
    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except WorkflowNotRunnableError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return {"success": True, "workflowId": workflow_id}


@router.post("/runs/{run_id}/cancel")
async def cancel_run(
    run_id: str,
    trigger_router: TriggerRouter = Depends(lambda: container.router())
):
    """Cancel a run; effective at the next delay boundary."""
    try:
        cancelled = await trigger_router.cancel(run_id)
    except RunNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return {"success": True, "cancelled": cancelled}


@router.get("/runs/{run_id}")
async def get_run(
    run_id: str,
    database: Database = Depends(lambda: container.database())
):
    """Run record with its steps in visit order."""
    run = await database.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Run not found: {run_id}")
    steps = await database.get_steps(run_id)
    return _run_to_dict(run, steps)


@router.get("/workflows/{workflow_id}/runs")
async def list_workflow_runs(
    workflow_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    database: Database = Depends(lambda: container.database())
):
    """Most recent runs of a workflow."""
    runs = await database.list_runs(workflow_id, limit=limit)
    return {"runs": [_run_to_dict(r) for r in runs]}
