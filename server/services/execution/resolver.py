"""Variable Resolver - template variable resolution.

Resolves {{path.to.value}} expressions against a run's execution context.

Path roots:
- order, customer, product, subscription, review, auction: typed view of the
  trigger payload, falling back to the raw payload when the run has no view
- triggerData: raw trigger payload
- stepOutputs: prior node results keyed by node id
- workflow: {id, runId}
- workspace: {id}
Any other root is looked up against the raw trigger payload as a whole path.
Unresolvable paths render as an empty string.
"""

import re
from typing import Any, Dict, Iterable, List, Optional

import orjson

from constants import TYPED_VIEW_ROOTS
from core.logging import get_logger
from .models import ExecutionContext

logger = get_logger(__name__)

# Compiled regex for template matching
TEMPLATE_PATTERN = re.compile(r'\{\{([^}]+)\}\}')

# One level of array indexing per segment: items[0]
ARRAY_SEGMENT = re.compile(r'^(\w+)\[(\d+)\]$')

CONTEXT_ROOTS = frozenset(TYPED_VIEW_ROOTS) | {"triggerData", "stepOutputs", "workflow", "workspace"}

_MISSING = object()


def resolve(template: str, context: ExecutionContext) -> str:
    """Replace every {{path}} in a string with its resolved value."""
    if not isinstance(template, str) or '{{' not in template:
        return template

    def replace(match: re.Match) -> str:
        value = get_value_from_path(match.group(1).strip(), context)
        return stringify(value)

    return TEMPLATE_PATTERN.sub(replace, template)


def resolve_deep(value: Any, context: ExecutionContext) -> Any:
    """Resolve templates recursively through dicts, lists and strings."""
    if isinstance(value, str):
        return resolve(value, context)
    if isinstance(value, dict):
        return {k: resolve_deep(v, context) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_deep(item, context) for item in value]
    return value


def get_value_from_path(path: str, context: ExecutionContext) -> Any:
    """Look up a dotted path in the context, returning None when unresolved."""
    parts = [p for p in path.split('.') if p]
    if not parts:
        return None

    root, rest = parts[0], parts[1:]

    if root in TYPED_VIEW_ROOTS:
        base = _typed_view(root, context)
    elif root == "triggerData":
        base = context.trigger_data
    elif root == "stepOutputs":
        base = context.step_outputs
    elif root == "workflow":
        base = {"id": context.workflow_id, "runId": context.run_id}
    elif root == "workspace":
        base = {"id": context.workspace_id}
    else:
        base, rest = context.trigger_data, parts

    value = _navigate(base, rest)
    return None if value is _MISSING else value


def _typed_view(root: str, context: ExecutionContext) -> Any:
    view = context.view(root)
    if view is not None:
        return view
    # customer data usually rides along nested in other payloads
    if root == "customer":
        nested = context.trigger_data.get("customer")
        if isinstance(nested, dict):
            return nested
    return context.trigger_data


def _navigate(current: Any, parts: List[str]) -> Any:
    for part in parts:
        if current is None:
            return _MISSING

        match = ARRAY_SEGMENT.match(part)
        if match:
            current = _step(current, match.group(1))
            if not isinstance(current, list):
                return _MISSING
            index = int(match.group(2))
            if index >= len(current):
                return _MISSING
            current = current[index]
            continue

        current = _step(current, part)
        if current is _MISSING:
            return _MISSING
    return current


def _step(current: Any, key: str) -> Any:
    if isinstance(current, dict):
        return current.get(key, _MISSING)
    if isinstance(current, list) and key.isdigit():
        index = int(key)
        return current[index] if index < len(current) else _MISSING
    return _MISSING


def stringify(value: Any) -> str:
    """Render a resolved value the way templates expect to see it."""
    if value is None or value is _MISSING:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return orjson.dumps(value, default=str).decode()
    return str(value)


# =============================================================================
# INSPECTION HELPERS
# =============================================================================

def has_variables(value: Any) -> bool:
    """True when a string (or any string nested in value) contains a template."""
    if isinstance(value, str):
        return bool(TEMPLATE_PATTERN.search(value))
    if isinstance(value, dict):
        return any(has_variables(v) for v in value.values())
    if isinstance(value, list):
        return any(has_variables(v) for v in value)
    return False


def extract_variables(value: Any) -> List[str]:
    """List the distinct template paths referenced in value, in order of appearance."""
    found: List[str] = []

    def collect(item: Any) -> None:
        if isinstance(item, str):
            for match in TEMPLATE_PATTERN.finditer(item):
                path = match.group(1).strip()
                if path not in found:
                    found.append(path)
        elif isinstance(item, dict):
            for v in item.values():
                collect(v)
        elif isinstance(item, list):
            for v in item:
                collect(v)

    collect(value)
    return found


def validate_variables(value: Any, available_roots: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """Check template paths against the roots a workflow can provide.

    Returns {"valid": bool, "invalid": [paths with an unknown root]}.
    """
    roots = set(available_roots) if available_roots is not None else set(CONTEXT_ROOTS)
    invalid = [path for path in extract_variables(value) if path.split('.', 1)[0] not in roots]
    if invalid:
        logger.debug("Template references unknown roots", invalid=invalid)
    return {"valid": not invalid, "invalid": invalid}
