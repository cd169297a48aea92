"""SQLModel database models and tables."""

import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from sqlmodel import SQLModel, Field, Column, DateTime, JSON
from sqlalchemy import func


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Workflow(SQLModel, table=True):
    """Automation workflow definitions.

    Created and edited by the workflow editor; the engine only touches the
    run counters (run_count, last_run_at, last_error).
    """

    __tablename__ = "workflows"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=255)
    workspace_id: str = Field(index=True, max_length=255)
    name: str = Field(max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    trigger: str = Field(index=True, max_length=100)
    trigger_config: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    nodes: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    edges: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    is_active: bool = Field(default=False)
    is_draft: bool = Field(default=True)
    run_count: int = Field(default=0)
    last_run_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    last_error: Optional[str] = Field(default=None, max_length=2000)
    created_by: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


class WorkflowRun(SQLModel, table=True):
    """One end-to-end execution of a workflow for one triggering event."""

    __tablename__ = "workflow_runs"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=255)
    workflow_id: str = Field(foreign_key="workflows.id", index=True, max_length=255)
    workspace_id: str = Field(index=True, max_length=255)
    trigger_event: str = Field(max_length=100)
    trigger_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    status: str = Field(default="running", max_length=50, index=True)
    output: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    error: Optional[str] = Field(default=None, max_length=2000)
    steps_completed: int = Field(default=0)
    total_steps: int = Field(default=0)
    started_at: Optional[datetime] = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True))
    )
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )


class WorkflowRunStep(SQLModel, table=True):
    """Execution record of one visited node within a run (append-only)."""

    __tablename__ = "workflow_run_steps"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=255)
    run_id: str = Field(foreign_key="workflow_runs.id", index=True, max_length=255)
    node_id: str = Field(max_length=255)
    action: str = Field(max_length=100)
    action_config: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    status: str = Field(default="running", max_length=50)
    input: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    output: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    error: Optional[str] = Field(default=None, max_length=2000)
    started_at: Optional[datetime] = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True))
    )
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))
