"""Shared fixtures for engine tests.

Provides:
- Settings pointing at a throwaway SQLite file per test
- A started Database
- Recording fakes for the status publisher and durable sleeper
- Builders for editor-shaped nodes, edges and workflow rows
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from core.config import Settings
from core.database import Database
from models.database import Workflow
from models.nodes import WorkflowDefinition
from services.execution.delay import Duration, parse_duration
from services.execution.dispatcher import ActionDispatcher, ActionRegistry
from services.execution.executor import GraphExecutor
from services.execution.models import ActionResult, ExecutionContext


FIXED_NOW = datetime(2025, 3, 10, 12, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class RecordingPublisher:
    """StatusPublisher that keeps every event."""

    def __init__(self, fail: bool = False):
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []
        self.fail = fail

    async def publish(self, workflow_id: str, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((workflow_id, event, payload))
        if self.fail:
            raise ConnectionError("broadcast transport down")

    def of(self, event: str) -> List[Dict[str, Any]]:
        return [payload for _, name, payload in self.events if name == event]


class FakeSleeper:
    """DurableSleeper that returns immediately and records each request."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.calls: List[Tuple[str, timedelta]] = []
        self._now = now
        self.on_sleep = None

    async def sleep(self, key: str, duration: Duration) -> None:
        self.calls.append((key, parse_duration(duration)))
        if self.on_sleep is not None:
            await self.on_sleep(key)

    def now(self) -> datetime:
        return self._now


class RecordingHandler:
    """Action handler that records the resolved config it was called with."""

    def __init__(self, result: Optional[ActionResult] = None):
        self.calls: List[Tuple[Dict[str, Any], ExecutionContext]] = []
        self.result = result or ActionResult.ok({"sent": True})

    async def __call__(self, config: Dict[str, Any], context: ExecutionContext) -> ActionResult:
        self.calls.append((config, context))
        return self.result


# ---------------------------------------------------------------------------
# Graph builders
# ---------------------------------------------------------------------------

def trigger_node(node_id: str = "trigger", trigger: str = "order.created") -> Dict[str, Any]:
    return {"id": node_id, "type": "trigger", "data": {"label": "Trigger", "trigger": trigger}}


def action_node(node_id: str, action: Optional[str], config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {"label": node_id, "config": config or {}}
    if action is not None:
        data["action"] = action
    return {"id": node_id, "type": "action", "data": data}


def condition_node(node_id: str, rules: List[Dict[str, Any]], logic: str = "and") -> Dict[str, Any]:
    return {
        "id": node_id,
        "type": "condition",
        "data": {"label": node_id, "config": {"rules": rules, "logic": logic}},
    }


def delay_node(node_id: str, **config: Any) -> Dict[str, Any]:
    return {"id": node_id, "type": "delay", "data": {"label": node_id, "config": config}}


def edge(source: str, target: str, handle: Optional[str] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {"id": f"{source}->{target}", "source": source, "target": target}
    if handle is not None:
        data["sourceHandle"] = handle
    return data


def make_workflow(nodes: List[Dict[str, Any]], edges: List[Dict[str, Any]],
                  trigger: str = "order.created", workspace_id: str = "ws-1",
                  **fields: Any) -> Workflow:
    values: Dict[str, Any] = {
        "workspace_id": workspace_id,
        "name": fields.pop("name", "Test workflow"),
        "trigger": trigger,
        "nodes": nodes,
        "edges": edges,
        "is_active": True,
        "is_draft": False,
    }
    values.update(fields)
    return Workflow(**values)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'automation.db'}",
        schedule_enabled=False,
        temporal_enabled=False,
        allow_private_urls=False,
        log_level="WARNING",
        _env_file=None,
    )


@pytest.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def sleeper() -> FakeSleeper:
    return FakeSleeper()


@pytest.fixture
def registry() -> ActionRegistry:
    return ActionRegistry()


@pytest.fixture
def executor(database, publisher, sleeper, registry) -> GraphExecutor:
    return GraphExecutor(
        store=database,
        publisher=publisher,
        dispatcher=ActionDispatcher(registry),
        sleeper=sleeper,
        max_node_visits=50,
    )


@pytest.fixture
def context() -> ExecutionContext:
    return ExecutionContext.build(
        workflow_id="wf-1",
        run_id="run-1",
        workspace_id="ws-1",
        trigger="order.created",
        trigger_data={
            "id": "O1",
            "email": "a@b.com",
            "total": "150",
            "paid": True,
            "items": [{"sku": "SKU-1", "qty": 2}, {"sku": "SKU-2", "qty": 1}],
            "customer": {"id": "C1", "name": "Ada", "tags": ["vip"]},
            "shippedAt": "2025-03-12T09:00:00Z",
        },
    )


async def save_definition(database: Database, nodes: List[Dict[str, Any]],
                          edges: List[Dict[str, Any]], **fields: Any) -> WorkflowDefinition:
    """Persist a workflow row and return its engine snapshot."""
    row = await database.save_workflow(make_workflow(nodes, edges, **fields))
    return WorkflowDefinition.from_record(row)
