"""Pydantic models for workflow graphs with discriminated unions.

Raw editor nodes ({id, type, data}) are decoded once, when a run loads its
workflow, into one of four typed variants:
- TriggerNode: traversal root, no handler logic
- ActionNode: action type string plus config dispatched to a handler
- ConditionNode: rule-set selecting the "yes" or "no" edge handle
- DelayNode: fixed duration or wait-until-a-date specification

A node whose config fails validation still decodes; it carries the
validation message in ``config_error`` and fails as a step when visited.
"""

from datetime import datetime
from typing import Literal, Union, Annotated, Optional, Dict, Any, List
from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from constants import (
    ACTION_NODE,
    CONDITION_NODE,
    DELAY_NODE,
    TRIGGER_NODE,
    CONDITION_ACTION,
    DELAY_ACTION,
    DELAY_UNTIL_ACTION,
)

DelayUnit = Literal["seconds", "minutes", "hours", "days"]


# =============================================================================
# NODE CONFIG MODELS
# =============================================================================

class ConditionRule(BaseModel):
    """Single comparison: resolved {{field}} <operator> resolved value."""
    model_config = {"extra": "allow"}

    field: str = Field(min_length=1)
    operator: str
    value: Any = ""


class RuleSet(BaseModel):
    """AND/OR combination of condition rules."""
    model_config = {"extra": "allow"}

    rules: List[ConditionRule] = Field(default_factory=list)
    logic: Literal["and", "or"] = "and"

    @field_validator("logic", mode="before")
    @classmethod
    def normalize_logic(cls, v):
        if v is None:
            return "and"
        return str(v).strip().lower()


class FixedDelay(BaseModel):
    """Suspend for a fixed duration."""
    model_config = {"extra": "allow"}

    duration: float = Field(ge=0)
    unit: DelayUnit = "minutes"

    @field_validator("unit", mode="before")
    @classmethod
    def pluralize_unit(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            if v in ("second", "minute", "hour", "day"):
                return v + "s"
        return v


class WaitUntilDelay(BaseModel):
    """Suspend until a date taken from the trigger payload, plus an offset in minutes."""
    model_config = {"extra": "allow", "populate_by_name": True}

    date_field: str = Field(alias="dateField", min_length=1)
    offset: float = 0


DelaySpec = Union[WaitUntilDelay, FixedDelay]


# =============================================================================
# GRAPH NODES
# =============================================================================

class BaseGraphNode(BaseModel):
    """Fields shared by every node variant."""
    id: str
    label: Optional[str] = None
    declared_type: str = ""
    config_error: Optional[str] = None


class TriggerNode(BaseGraphNode):
    type: Literal["trigger"] = "trigger"
    trigger: Optional[str] = None


class ActionNode(BaseGraphNode):
    type: Literal["action"] = "action"
    action: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)


class ConditionNode(BaseGraphNode):
    type: Literal["condition"] = "condition"
    rule_set: Optional[RuleSet] = None
    config: Dict[str, Any] = Field(default_factory=dict)

    @property
    def action(self) -> str:
        return CONDITION_ACTION


class DelayNode(BaseGraphNode):
    type: Literal["delay"] = "delay"
    delay: Optional[DelaySpec] = None
    config: Dict[str, Any] = Field(default_factory=dict)

    @property
    def action(self) -> str:
        if isinstance(self.delay, WaitUntilDelay):
            return DELAY_UNTIL_ACTION
        return DELAY_ACTION


GraphNode = Annotated[
    Union[TriggerNode, ActionNode, ConditionNode, DelayNode],
    Field(discriminator="type")
]

# Created once at module level
_graph_node_adapter = TypeAdapter(GraphNode)


class GraphEdge(BaseModel):
    """Directed connection; source_handle selects a condition branch."""
    model_config = {"populate_by_name": True}

    id: str
    source: str
    target: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")


# =============================================================================
# DECODING
# =============================================================================

def _node_config(data: Dict[str, Any]) -> Dict[str, Any]:
    """Editor nodes keep settings under data.config; older ones inline them in data."""
    config = data.get("config")
    if isinstance(config, dict):
        return config
    return {k: v for k, v in data.items() if k not in ("label", "action", "category", "trigger")}


def _format_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
    return "; ".join(parts)


def _decode_delay(config: Dict[str, Any]) -> tuple:
    if config.get("dateField"):
        try:
            return WaitUntilDelay.model_validate(config), None
        except ValidationError as e:
            return None, f"Invalid delay configuration: {_format_error(e)}"
    if "duration" in config:
        try:
            return FixedDelay.model_validate(config), None
        except ValidationError as e:
            return None, f"Invalid delay configuration: {_format_error(e)}"
    return None, "Invalid delay configuration"


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def decode_node(raw: Dict[str, Any]) -> GraphNode:
    """Decode a raw editor node into its typed variant.

    Unknown node types are treated as action nodes. A node that cannot be
    decoded at all becomes an action node carrying ``config_error``, so the
    run fails at that node instead of before it starts.
    """
    if not isinstance(raw, dict):
        raw = {}
    node_id = str(raw.get("id", ""))
    declared = str(raw.get("type") or ACTION_NODE)
    data = raw.get("data")
    if not isinstance(data, dict):
        data = {}
    config = _node_config(data)
    label = _optional_str(data.get("label"))
    base = {"id": node_id, "label": label, "declared_type": declared}

    if declared == TRIGGER_NODE:
        payload = {**base, "type": TRIGGER_NODE, "trigger": _optional_str(data.get("trigger"))}
    elif declared == CONDITION_NODE:
        payload = {**base, "type": CONDITION_NODE, "config": config}
        try:
            payload["rule_set"] = RuleSet.model_validate(config)
        except ValidationError as e:
            payload["config_error"] = f"Invalid condition configuration: {_format_error(e)}"
    elif declared == DELAY_NODE:
        delay, error = _decode_delay(config)
        payload = {**base, "type": DELAY_NODE, "config": config, "delay": delay, "config_error": error}
    else:
        action = _optional_str(data.get("action"))
        payload = {**base, "type": ACTION_NODE, "action": action, "config": config}
        if not action:
            payload["config_error"] = "Action type is required"

    try:
        return _graph_node_adapter.validate_python(payload)
    except ValidationError as e:
        return ActionNode(
            id=node_id,
            label=label,
            declared_type=declared,
            config_error=f"Invalid node configuration: {_format_error(e)}",
        )


def decode_edge(raw: Dict[str, Any]) -> GraphEdge:
    source = str(raw.get("source", ""))
    target = str(raw.get("target", ""))
    return GraphEdge(
        id=str(raw.get("id") or f"{source}-{target}"),
        source=source,
        target=target,
        source_handle=raw.get("sourceHandle"),
    )


class WorkflowGraph:
    """Decoded node/edge graph of one workflow."""

    def __init__(self, nodes: Dict[str, GraphNode], edges: List[GraphEdge]):
        self.nodes = nodes
        self.edges = edges

    @classmethod
    def load(cls, nodes: List[Dict[str, Any]], edges: List[Dict[str, Any]]) -> "WorkflowGraph":
        decoded: Dict[str, GraphNode] = {}
        for raw in nodes or []:
            node = decode_node(raw)
            decoded[node.id] = node
        return cls(decoded, [decode_edge(e) for e in edges or [] if isinstance(e, dict)])

    def trigger_node(self) -> Optional[TriggerNode]:
        for node in self.nodes.values():
            if isinstance(node, TriggerNode):
                return node
        return None

    def outgoing(self, node_id: str) -> List[GraphEdge]:
        """Outgoing edges in edge-list order."""
        return [e for e in self.edges if e.source == node_id]


# =============================================================================
# WORKFLOW SNAPSHOT
# =============================================================================

class WorkflowDefinition(BaseModel):
    """Engine-side snapshot of a workflow row, safe to pass between processes."""
    id: str
    workspace_id: str
    name: str = ""
    trigger: str
    trigger_config: Dict[str, Any] = Field(default_factory=dict)
    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    edges: List[Dict[str, Any]] = Field(default_factory=list)
    is_active: bool = False
    is_draft: bool = True
    last_run_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Any) -> "WorkflowDefinition":
        """Build from a workflows table row."""
        return cls(
            id=record.id,
            workspace_id=record.workspace_id,
            name=record.name,
            trigger=record.trigger,
            trigger_config=record.trigger_config or {},
            nodes=record.nodes or [],
            edges=record.edges or [],
            is_active=record.is_active,
            is_draft=record.is_draft,
            last_run_at=record.last_run_at,
        )

    @property
    def total_steps(self) -> int:
        """Non-trigger nodes, counted from the raw node list."""
        return sum(1 for n in self.nodes if n.get("type") != TRIGGER_NODE)

    def load_graph(self) -> WorkflowGraph:
        return WorkflowGraph.load(self.nodes, self.edges)
