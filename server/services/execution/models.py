"""Execution engine state models.

Run/step lifecycles, the per-run execution context and the uniform result
shape returned by every node handler. All models are JSON-serializable so
they can cross the Temporal activity boundary unchanged.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional, TYPE_CHECKING

from constants import TYPED_VIEW_ROOTS

if TYPE_CHECKING:
    from .clients import IntegrationClients


class RunStatus(str, Enum):
    """Workflow run states.

    State transitions (forward only):
        RUNNING -> COMPLETED
                -> FAILED
                -> CANCELLED
    """
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class StepStatus(str, Enum):
    """Run step states."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class NodeStatus(str, Enum):
    """Node states published on the node-status channel."""
    EXECUTING = "executing"
    SUCCESS = "success"
    ERROR = "error"


# =============================================================================
# ERRORS
# =============================================================================

class AutomationError(Exception):
    """Base class for errors raised by engine entry points."""


class WorkflowNotFoundError(AutomationError):
    """Referenced workflow does not exist."""


class WorkflowNotRunnableError(AutomationError):
    """Workflow exists but cannot be started (inactive, draft, wrong trigger)."""


class RunNotFoundError(AutomationError):
    """Referenced run does not exist."""


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class ActionResult:
    """Uniform result of a node handler."""
    success: bool
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    skipped: bool = False
    skip_reason: Optional[str] = None

    @classmethod
    def ok(cls, output: Optional[Dict[str, Any]] = None) -> "ActionResult":
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, error: str, output: Optional[Dict[str, Any]] = None) -> "ActionResult":
        return cls(success=False, error=error, output=output)

    @classmethod
    def skip(cls, reason: str) -> "ActionResult":
        return cls(success=True, skipped=True, skip_reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the dict shape stored in stepOutputs."""
        data: Dict[str, Any] = {"success": self.success}
        if self.output is not None:
            data["output"] = self.output
        if self.error is not None:
            data["error"] = self.error
        if self.skipped:
            data["skipped"] = True
            data["skipReason"] = self.skip_reason
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionResult":
        """Create from dict."""
        if "branch" in data:
            return ConditionResult.from_dict(data)
        return cls(
            success=bool(data.get("success")),
            output=data.get("output"),
            error=data.get("error"),
            skipped=bool(data.get("skipped", False)),
            skip_reason=data.get("skipReason"),
        )


@dataclass
class ConditionResult(ActionResult):
    """Result of a condition node; carries the selected branch."""
    branch: str = "no"

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["branch"] = self.branch
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConditionResult":
        return cls(
            success=bool(data.get("success")),
            output=data.get("output"),
            error=data.get("error"),
            branch=data.get("branch", "no"),
        )


@dataclass
class RunResult:
    """Outcome of one Graph Executor run."""
    success: bool
    run_id: Optional[str]
    steps_completed: int
    total_steps: int
    status: str
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "runId": self.run_id,
            "stepsCompleted": self.steps_completed,
            "totalSteps": self.total_steps,
            "status": self.status,
            "output": self.output,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunResult":
        return cls(
            success=bool(data.get("success")),
            run_id=data.get("runId"),
            steps_completed=data.get("stepsCompleted", 0),
            total_steps=data.get("totalSteps", 0),
            status=data.get("status", RunStatus.FAILED.value),
            output=data.get("output"),
            error=data.get("error"),
        )


# =============================================================================
# EXECUTION CONTEXT
# =============================================================================

@dataclass
class ExecutionContext:
    """Per-run bag of trigger data, typed views and prior step outputs.

    Typed views (order, customer, ...) are derived from the trigger prefix:
    an ``order.*`` trigger exposes its payload as ``order``. ``clients`` is
    the handle pool for integration calls; it never leaves the process.
    """
    workflow_id: str
    run_id: str
    workspace_id: str
    trigger: str
    trigger_data: Dict[str, Any] = field(default_factory=dict)
    step_outputs: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    views: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    clients: Optional["IntegrationClients"] = field(default=None, repr=False, compare=False)

    @classmethod
    def build(cls, workflow_id: str, run_id: str, workspace_id: str,
              trigger: str, trigger_data: Optional[Dict[str, Any]] = None,
              clients: Optional["IntegrationClients"] = None) -> "ExecutionContext":
        """Create a fresh context for a run, mapping the trigger to its typed view."""
        data = trigger_data or {}
        views: Dict[str, Dict[str, Any]] = {}
        root = trigger.split(".", 1)[0]
        if root in TYPED_VIEW_ROOTS and "." in trigger:
            views[root] = data
        return cls(
            workflow_id=workflow_id,
            run_id=run_id,
            workspace_id=workspace_id,
            trigger=trigger,
            trigger_data=data,
            views=views,
            clients=clients,
        )

    def view(self, root: str) -> Optional[Dict[str, Any]]:
        """Typed view for a domain root, or None when the trigger has none."""
        return self.views.get(root)

    def record(self, node_id: str, result: ActionResult) -> None:
        self.step_outputs[node_id] = result.to_dict()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict (without client handles)."""
        return {
            "workflow_id": self.workflow_id,
            "run_id": self.run_id,
            "workspace_id": self.workspace_id,
            "trigger": self.trigger,
            "trigger_data": self.trigger_data,
            "step_outputs": self.step_outputs,
            "views": self.views,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any],
                  clients: Optional["IntegrationClients"] = None) -> "ExecutionContext":
        """Create from dict."""
        return cls(
            workflow_id=data["workflow_id"],
            run_id=data["run_id"],
            workspace_id=data["workspace_id"],
            trigger=data["trigger"],
            trigger_data=data.get("trigger_data") or {},
            step_outputs=data.get("step_outputs") or {},
            views=data.get("views") or {},
            clients=clients,
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
