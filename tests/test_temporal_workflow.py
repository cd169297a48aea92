"""Durable runs through AutomationRunWorkflow on a time-skipping Temporal server.

Tests cover:
- A run suspended on a delay node stays running until its timer fires
- TemporalRunLauncher starting a workflow and recording its result
"""

import asyncio
import uuid

import pytest
from temporalio.testing import WorkflowEnvironment

from services.execution.dispatcher import ActionDispatcher
from services.execution.launcher import WorkspaceLimiter
from services.execution.models import RunResult
from services.status_broadcaster import StatusBroadcaster
from services.temporal.activities import AutomationActivities
from services.temporal.client import TemporalClientWrapper
from services.temporal.launcher import TemporalRunLauncher
from services.temporal.worker import create_worker
from services.temporal.workflow import AutomationRunWorkflow

from conftest import RecordingHandler, action_node, delay_node, edge, save_definition, trigger_node

TASK_QUEUE = "automation-runs-test"


class EnvironmentClient(TemporalClientWrapper):
    """Client wrapper handing out the test environment's client."""

    def __init__(self, env: WorkflowEnvironment):
        super().__init__("test-environment")
        self.env = env

    async def connect(self):
        return self.env.client


@pytest.fixture
async def env():
    try:
        environment = await WorkflowEnvironment.start_time_skipping()
    except (OSError, RuntimeError) as e:
        pytest.skip(f"Temporal test server unavailable: {e}")
    yield environment
    await environment.shutdown()


@pytest.fixture
def activities(database, registry):
    return AutomationActivities(database, StatusBroadcaster(), ActionDispatcher(registry))


async def wait_for_step(database, workflow_id: str, node_id: str, timeout: float = 10.0):
    """Poll until the latest run of the workflow has a step for ``node_id``."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        runs = await database.list_runs(workflow_id)
        if runs:
            steps = await database.get_steps(runs[0].id)
            if any(s.node_id == node_id for s in steps):
                return runs[0]
        await asyncio.sleep(0.05)
    raise AssertionError(f"No step recorded for node {node_id}")


async def delayed_mail_workflow(database):
    return await save_definition(database, [
        trigger_node(),
        delay_node("wait", duration=1, unit="hours"),
        action_node("mail", "email.send", {"to": "{{order.email}}"}),
    ], [edge("trigger", "wait"), edge("wait", "mail")])


class TestAutomationRunWorkflow:
    """Graph execution inside a Temporal workflow."""

    async def test_run_stays_running_until_timer_fires(self, env, database, registry, activities):
        mail = RecordingHandler()
        registry.register("email.send", mail)
        workflow = await delayed_mail_workflow(database)

        async with create_worker(env.client, activities, task_queue=TASK_QUEUE):
            handle = await env.client.start_workflow(
                AutomationRunWorkflow.run,
                {
                    "workflow": workflow.model_dump(mode="json"),
                    "event_data": {"id": "O1", "email": "a@b.com"},
                    "max_node_visits": 50,
                },
                id=f"automation-test-{uuid.uuid4().hex[:12]}",
                task_queue=TASK_QUEUE,
            )

            suspended = await wait_for_step(database, workflow.id, "wait")
            assert suspended.status == "running"
            assert mail.calls == []

            result = RunResult.from_dict(await handle.result())

        assert result.status == "completed"
        assert result.steps_completed == 2
        config, ctx = mail.calls[0]
        assert config == {"to": "a@b.com"}
        assert ctx.run_id == result.run_id

        run = await database.get_run(result.run_id)
        assert run.status == "completed"
        assert run.completed_at is not None
        steps = await database.get_steps(result.run_id)
        assert [(s.node_id, s.status) for s in steps] == [("wait", "completed"), ("mail", "completed")]


class TestTemporalRunLauncher:
    """Launching runs as Temporal workflows."""

    async def test_launch_records_result(self, env, database, registry, activities):
        registry.register("email.send", RecordingHandler())
        workflow = await delayed_mail_workflow(database)
        launcher = TemporalRunLauncher(EnvironmentClient(env), WorkspaceLimiter(1),
                                       task_queue=TASK_QUEUE, max_node_visits=50)

        async with create_worker(env.client, activities, task_queue=TASK_QUEUE):
            await launcher.launch(workflow, {"id": "O2", "email": "b@c.com"})
            await launcher.wait_idle()

        result = launcher.recent_results[-1]
        assert result.status == "completed"
        assert (await database.get_run(result.run_id)).trigger_data == {"id": "O2", "email": "b@c.com"}
        assert (await database.get_workflow(workflow.id)).run_count == 1
