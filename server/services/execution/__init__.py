"""Execution engine package.

Event-triggered workflow execution with:
- Trigger routing with per-workspace concurrency limits
- Depth-first graph traversal with conditional branching
- Durable delays (in-process or Temporal timers)
- Template variable resolution over a typed event context
- Per-run and per-step state tracking with live status events
"""

from .models import (
    RunStatus,
    StepStatus,
    NodeStatus,
    ActionResult,
    ConditionResult,
    RunResult,
    ExecutionContext,
    AutomationError,
    WorkflowNotFoundError,
    WorkflowNotRunnableError,
    RunNotFoundError,
)
from .resolver import (
    resolve,
    resolve_deep,
    get_value_from_path,
    has_variables,
    extract_variables,
    validate_variables,
)
from .conditions import (
    evaluate,
    evaluate_rule,
    compare_values,
    describe_condition,
    get_available_operators,
)
from .delay import AsyncioSleeper, DurableSleeper, handle_delay, parse_duration
from .clients import IntegrationClients
from .dispatcher import ActionDispatcher, ActionHandler, ActionRegistry
from .executor import GraphExecutor, RunStore, StatusPublisher, ActionInvoker
from .launcher import BackgroundLauncher, LocalRunLauncher, RunLauncher, WorkspaceLimiter
from .router import TriggerRouter
from .poller import SchedulePoller

__all__ = [
    # Models
    "RunStatus",
    "StepStatus",
    "NodeStatus",
    "ActionResult",
    "ConditionResult",
    "RunResult",
    "ExecutionContext",
    # Errors
    "AutomationError",
    "WorkflowNotFoundError",
    "WorkflowNotRunnableError",
    "RunNotFoundError",
    # Resolver
    "resolve",
    "resolve_deep",
    "get_value_from_path",
    "has_variables",
    "extract_variables",
    "validate_variables",
    # Conditions
    "evaluate",
    "evaluate_rule",
    "compare_values",
    "describe_condition",
    "get_available_operators",
    # Delay
    "AsyncioSleeper",
    "DurableSleeper",
    "handle_delay",
    "parse_duration",
    # Dispatch
    "IntegrationClients",
    "ActionDispatcher",
    "ActionHandler",
    "ActionRegistry",
    # Executor
    "GraphExecutor",
    "RunStore",
    "StatusPublisher",
    "ActionInvoker",
    # Launching
    "BackgroundLauncher",
    "LocalRunLauncher",
    "RunLauncher",
    "WorkspaceLimiter",
    "TriggerRouter",
    "SchedulePoller",
]
