"""Tests for the Temporal activities backing the durable executor."""

import pytest
from temporalio.testing import ActivityEnvironment

from services.execution.dispatcher import ActionDispatcher
from services.execution.models import ActionResult, ExecutionContext
from services.status_broadcaster import StatusBroadcaster
from services.temporal.activities import AutomationActivities

from conftest import RecordingHandler


@pytest.fixture
def activities(database, registry):
    return AutomationActivities(database, StatusBroadcaster(), ActionDispatcher(registry))


class TestPersistenceActivities:
    """Run/step rows written from activities."""

    async def test_run_and_step_roundtrip(self, activities, database):
        env = ActivityEnvironment()

        run_id = await env.run(activities.create_run, {
            "workflow_id": "wf-1",
            "workspace_id": "ws-1",
            "trigger_event": "order.created",
            "trigger_data": {"id": "O1"},
            "total_steps": 2,
        })
        step_id = await env.run(activities.create_step, {
            "run_id": run_id,
            "node_id": "mail",
            "action": "email.send",
            "action_config": {"to": "a@b.com"},
            "input": {"nodeType": "action", "nodeLabel": "mail"},
        })
        await env.run(activities.update_step, {"step_id": step_id, "fields": {"status": "completed"}})
        updated = await env.run(activities.update_run, {
            "run_id": run_id,
            "fields": {"status": "completed", "steps_completed": 1},
        })

        assert updated is True
        assert await env.run(activities.get_run_status, run_id) == "completed"
        steps = await database.get_steps(run_id)
        assert steps[0].status == "completed"

    def test_all_lists_every_activity(self, activities):
        names = [fn.__name__ for fn in activities.all()]
        assert "invoke_action" in names
        assert len(names) == 8


class TestInvokeAction:
    """Action handlers behind an activity."""

    async def test_returns_result_dict(self, activities, registry):
        handler = RecordingHandler(ActionResult.ok({"messageId": "m1"}))
        registry.register("email.send", handler)
        context = ExecutionContext.build("wf-1", "run-1", "ws-1", "order.created", {"id": "O1"})

        result = await ActivityEnvironment().run(activities.invoke_action, {
            "action": "email.send",
            "config": {"to": "a@b.com"},
            "context": context.to_dict(),
        })

        assert ActionResult.from_dict(result) == ActionResult.ok({"messageId": "m1"})
        config, ctx = handler.calls[0]
        assert config == {"to": "a@b.com"}
        assert ctx.run_id == "run-1"

    async def test_handler_error_is_failed_result(self, activities, registry):
        async def broken(config, context):
            raise RuntimeError("provider down")

        registry.register("email.send", broken)
        context = ExecutionContext.build("wf-1", "run-1", "ws-1", "order.created", {})

        result = await ActivityEnvironment().run(activities.invoke_action, {
            "action": "email.send",
            "config": {},
            "context": context.to_dict(),
        })

        assert result["success"] is False
        assert result["error"] == "provider down"
