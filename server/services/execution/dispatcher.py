"""Action dispatch for action nodes.

The registry is a typed table built once at startup; only actions from the
catalog in ``constants.WORKFLOW_ACTIONS`` may be registered. Dispatch rules:
- condition.if / delay.wait / delay.wait_until are executed by the graph
  executor and skip here with a "handled separately" marker
- catalog actions without a handler succeed as a ``not_implemented`` no-op
- actions outside the catalog fail the step
- handler exceptions become ``ActionResult(success=False)``
"""

import time
from typing import Any, Awaitable, Dict, List, Optional, Protocol

from constants import CONDITION_ACTION, SEPARATELY_HANDLED_ACTIONS, WORKFLOW_ACTIONS
from core.logging import get_logger, log_execution_time
from .models import ActionResult, ExecutionContext
from .resolver import resolve_deep

logger = get_logger(__name__)


class ActionHandler(Protocol):
    """Uniform handler signature: (resolved config, context) -> ActionResult."""

    def __call__(self, config: Dict[str, Any], context: ExecutionContext) -> Awaitable[ActionResult]:
        ...


class ActionRegistry:
    """Action type -> handler table."""

    def __init__(self):
        self._handlers: Dict[str, ActionHandler] = {}

    def register(self, action: str, handler: ActionHandler) -> None:
        if action not in WORKFLOW_ACTIONS:
            raise ValueError(f"Cannot register handler for unknown action: {action}")
        if action in SEPARATELY_HANDLED_ACTIONS:
            raise ValueError(f"Action is executed by the graph executor: {action}")
        if action in self._handlers:
            raise ValueError(f"Handler already registered for action: {action}")
        self._handlers[action] = handler

    def get(self, action: str) -> Optional[ActionHandler]:
        return self._handlers.get(action)

    def has_handler(self, action: str) -> bool:
        return action in self._handlers

    def supported_actions(self) -> List[str]:
        return sorted(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)


class ActionDispatcher:
    """Resolves an action type to its handler and invokes it."""

    def __init__(self, registry: ActionRegistry):
        self.registry = registry

    def prepare(self, config: Optional[Dict[str, Any]], context: ExecutionContext) -> Dict[str, Any]:
        """Resolve template variables throughout an action config."""
        return resolve_deep(config or {}, context)

    async def dispatch(self, action: str, config: Optional[Dict[str, Any]],
                       context: ExecutionContext) -> ActionResult:
        """Resolve config variables and run the action."""
        return await self.invoke(action, self.prepare(config, context), context)

    async def invoke(self, action: str, resolved_config: Dict[str, Any],
                     context: ExecutionContext) -> ActionResult:
        """Run an action with an already-resolved config."""
        if not action:
            return ActionResult.fail("Action type is required")

        if action in SEPARATELY_HANDLED_ACTIONS:
            label = "Condition" if action == CONDITION_ACTION else "Delay"
            return ActionResult.skip(f"{label} handled separately")

        handler = self.registry.get(action)
        if handler is None:
            if action not in WORKFLOW_ACTIONS:
                return ActionResult.fail(f"Unknown action type: {action}")

            logger.info("Action has no handler, skipping", action=action, run_id=context.run_id)
            return ActionResult.ok({
                "action": action,
                "status": "not_implemented",
                "note": f'Action "{action}" is not yet implemented. '
                        f'Configure the integration in workspace settings.',
            })

        start_time = time.time()
        try:
            result = await handler(resolved_config, context)
        except Exception as e:
            logger.error("Action handler raised",
                        action=action,
                        run_id=context.run_id,
                        error=str(e))
            return ActionResult.fail(str(e) or f"Action {action} failed")

        log_execution_time(logger, action, start_time, time.time(),
                           run_id=context.run_id, success=result.success)
        return result
