"""Tests for graph traversal, step tracking and run completion.

Tests cover:
- Template resolution into stored step configs
- Condition branching on yes/no handles
- Delay suspension and cancellation at delay boundaries
- Not-implemented actions and failing steps
- Cycle guard and diamond-shaped graphs
- edge-active / node-status / workflow-complete events
"""

from datetime import timedelta

from services.execution.dispatcher import ActionDispatcher
from services.execution.executor import GraphExecutor
from services.execution.models import ActionResult

from conftest import (
    FakeSleeper,
    RecordingHandler,
    RecordingPublisher,
    action_node,
    condition_node,
    delay_node,
    edge,
    save_definition,
    trigger_node,
)


class TestLinearRuns:
    """Straight-line graphs."""

    async def test_action_with_resolved_config(self, database, executor):
        workflow = await save_definition(database, [
            trigger_node(),
            action_node("mail", "email.send", {"to": "{{order.email}}", "subject": "Order {{order.id}}"}),
        ], [edge("trigger", "mail")])

        result = await executor.execute(workflow, {"id": "O1", "email": "a@b.com"})

        assert result.success is True
        assert result.status == "completed"
        assert result.steps_completed == 1
        assert result.total_steps == 1

        run = await database.get_run(result.run_id)
        assert run.status == "completed"
        assert run.completed_at is not None
        assert run.steps_completed == 1

        steps = await database.get_steps(result.run_id)
        assert len(steps) == 1
        assert steps[0].action == "email.send"
        assert steps[0].action_config == {"to": "a@b.com", "subject": "Order O1"}
        assert steps[0].status == "completed"
        assert steps[0].input == {"nodeType": "action", "nodeLabel": "mail"}

        row = await database.get_workflow(workflow.id)
        assert row.run_count == 1
        assert row.last_run_at is not None
        assert row.last_error is None

    async def test_not_implemented_action_continues(self, database, executor, registry):
        follow_up = RecordingHandler()
        registry.register("email.send", follow_up)
        workflow = await save_definition(database, [
            trigger_node(),
            action_node("shopify", "shopify.create_order", {}),
            action_node("mail", "email.send", {}),
        ], [edge("trigger", "shopify"), edge("shopify", "mail")])

        result = await executor.execute(workflow, {})

        assert result.status == "completed"
        assert result.steps_completed == 2
        assert result.output["shopify"]["output"]["status"] == "not_implemented"
        assert len(follow_up.calls) == 1

    async def test_missing_trigger_node_fails(self, database, executor):
        workflow = await save_definition(database, [action_node("mail", "email.send", {})], [])
        result = await executor.execute(workflow, {})

        assert result.status == "failed"
        assert result.error == "No trigger node found in workflow"
        assert (await database.get_workflow(workflow.id)).last_error == "No trigger node found in workflow"

    async def test_step_outputs_feed_later_steps(self, database, executor, registry):
        registry.register("ai.generate_text", RecordingHandler(ActionResult.ok({"text": "Thanks!"})))
        mail = RecordingHandler()
        registry.register("email.send", mail)
        workflow = await save_definition(database, [
            trigger_node(),
            action_node("write", "ai.generate_text", {}),
            action_node("mail", "email.send", {"body": "{{stepOutputs.write.output.text}}"}),
        ], [edge("trigger", "write"), edge("write", "mail")])

        await executor.execute(workflow, {})

        assert mail.calls[0][0] == {"body": "Thanks!"}


class TestBranching:
    """Condition nodes select one edge handle."""

    def graph(self):
        nodes = [
            trigger_node(),
            condition_node("check", [{"field": "order.total", "operator": "greater_than", "value": "100"}]),
            action_node("tag", "customer.add_tag", {"tag": "big-spender"}),
            action_node("mail", "email.send", {}),
        ]
        edges = [
            edge("trigger", "check"),
            edge("check", "tag", "yes"),
            edge("check", "mail", "no-handle"),
        ]
        return nodes, edges

    async def test_yes_branch(self, database, executor, registry):
        tag, mail = RecordingHandler(), RecordingHandler()
        registry.register("customer.add_tag", tag)
        registry.register("email.send", mail)
        workflow = await save_definition(database, *self.graph())

        result = await executor.execute(workflow, {"total": "150"})

        assert result.status == "completed"
        assert result.steps_completed == 2
        assert result.total_steps == 3
        assert len(tag.calls) == 1
        assert mail.calls == []
        steps = await database.get_steps(result.run_id)
        assert [s.node_id for s in steps] == ["check", "tag"]
        assert steps[0].action == "condition.if"
        assert steps[0].output["branch"] == "yes"

    async def test_no_branch_with_handle_suffix(self, database, executor, registry):
        tag, mail = RecordingHandler(), RecordingHandler()
        registry.register("customer.add_tag", tag)
        registry.register("email.send", mail)
        workflow = await save_definition(database, *self.graph())

        result = await executor.execute(workflow, {"total": "50"})

        assert result.status == "completed"
        assert tag.calls == []
        assert len(mail.calls) == 1

    async def test_invalid_condition_fails_run(self, database, executor):
        workflow = await save_definition(database, [
            trigger_node(),
            condition_node("check", [{"field": "", "operator": "equals"}]),
        ], [edge("trigger", "check")])

        result = await executor.execute(workflow, {})

        assert result.status == "failed"
        assert result.error.startswith("Invalid condition configuration")


class TestDelays:
    """Delay nodes suspend through the sleeper."""

    async def test_fixed_delay_suspends_while_run_is_running(self, database, executor, sleeper):
        observed = []

        async def check_status(key):
            runs = await database.list_runs(workflow.id)
            observed.append(runs[0].status)

        sleeper.on_sleep = check_status
        workflow = await save_definition(database, [
            trigger_node(),
            delay_node("wait", duration=5, unit="minutes"),
            action_node("mail", "email.send", {}),
        ], [edge("trigger", "wait"), edge("wait", "mail")])

        result = await executor.execute(workflow, {})

        assert sleeper.calls == [("delay-wait", timedelta(minutes=5))]
        assert observed == ["running"]
        assert result.status == "completed"
        steps = await database.get_steps(result.run_id)
        assert steps[0].action == "delay.wait"

    async def test_unresolvable_wait_until_fails_run(self, database, executor, registry):
        after = RecordingHandler()
        registry.register("customer.add_tag", after)
        workflow = await save_definition(database, [
            trigger_node(),
            action_node("mail", "email.send", {}),
            delay_node("wait", dateField="email", offset=0),
            action_node("tag", "customer.add_tag", {}),
        ], [edge("trigger", "mail"), edge("mail", "wait"), edge("wait", "tag")])

        result = await executor.execute(workflow, {"email": "a@b.com"})

        assert result.status == "failed"
        assert result.steps_completed == 1
        assert result.error == "Could not resolve date field: email"
        assert after.calls == []

        run = await database.get_run(result.run_id)
        assert run.status == "failed"
        assert run.error == "Could not resolve date field: email"
        steps = await database.get_steps(result.run_id)
        assert [s.status for s in steps] == ["completed", "failed"]
        assert steps[1].action == "delay.wait_until"

    async def test_cancel_during_delay_stops_traversal(self, database, executor, sleeper, registry):
        after = RecordingHandler()
        registry.register("email.send", after)

        async def cancel_run(key):
            runs = await database.list_runs(workflow.id)
            assert await database.cancel_run(runs[0].id) is True

        sleeper.on_sleep = cancel_run
        workflow = await save_definition(database, [
            trigger_node(),
            delay_node("wait", duration=1, unit="days"),
            action_node("mail", "email.send", {}),
        ], [edge("trigger", "wait"), edge("wait", "mail")])

        result = await executor.execute(workflow, {})

        assert result.status == "cancelled"
        assert after.calls == []
        run = await database.get_run(result.run_id)
        assert run.status == "cancelled"
        assert run.completed_at is not None
        assert (await database.get_workflow(workflow.id)).run_count == 1


class TestFailures:
    """Failing steps abort the traversal."""

    async def test_handler_failure_fails_run(self, database, executor, registry):
        registry.register("email.send", RecordingHandler(ActionResult.fail("Mailbox full")))
        after = RecordingHandler()
        registry.register("customer.add_tag", after)
        workflow = await save_definition(database, [
            trigger_node(),
            action_node("mail", "email.send", {}),
            action_node("tag", "customer.add_tag", {}),
        ], [edge("trigger", "mail"), edge("mail", "tag")])

        result = await executor.execute(workflow, {})

        assert result.status == "failed"
        assert result.error == "Mailbox full"
        assert result.steps_completed == 0
        assert after.calls == []

    async def test_action_node_without_action(self, database, executor):
        workflow = await save_definition(database, [trigger_node(), action_node("blank", None)],
                                         [edge("trigger", "blank")])
        result = await executor.execute(workflow, {})
        assert result.error == "Action type is required"

    async def test_cycle_hits_visit_budget(self, database, executor):
        workflow = await save_definition(database, [
            trigger_node(),
            action_node("a", "email.send", {}),
            action_node("b", "email.send", {}),
        ], [edge("trigger", "a"), edge("a", "b"), edge("b", "a")])

        result = await executor.execute(workflow, {})

        assert result.status == "failed"
        assert result.error == "Maximum node visits exceeded (possible cycle in workflow graph)"
        assert result.steps_completed <= result.total_steps

    async def test_diamond_counts_distinct_nodes(self, database, executor):
        workflow = await save_definition(database, [
            trigger_node(),
            action_node("a", "email.send", {}),
            action_node("b", "email.send", {}),
            action_node("join", "email.send", {}),
        ], [edge("trigger", "a"), edge("trigger", "b"), edge("a", "join"), edge("b", "join")])

        result = await executor.execute(workflow, {})

        assert result.status == "completed"
        assert result.steps_completed == 3
        steps = await database.get_steps(result.run_id)
        assert [s.node_id for s in steps] == ["a", "join", "b", "join"]

    async def test_non_string_label_still_runs(self, database, executor):
        node = action_node("mail", "email.send", {})
        node["data"]["label"] = 42
        workflow = await save_definition(database, [trigger_node(), node], [edge("trigger", "mail")])

        result = await executor.execute(workflow, {})

        assert result.status == "completed"
        steps = await database.get_steps(result.run_id)
        assert steps[0].input["nodeLabel"] == "42"

    async def test_malformed_node_data_fails_the_run(self, database, executor, publisher):
        workflow = await save_definition(database, [
            trigger_node(),
            {"id": "broken", "type": "action", "data": ["oops"]},
        ], [edge("trigger", "broken")])

        result = await executor.execute(workflow, {})

        assert result.status == "failed"
        assert result.run_id is not None
        assert result.total_steps == 1
        assert result.error == "Action type is required"
        run = await database.get_run(result.run_id)
        assert run.status == "failed"
        assert (await database.get_workflow(workflow.id)).last_error == "Action type is required"
        assert publisher.of("workflow-complete")[0]["status"] == "failed"

    async def test_failure_after_cancel_keeps_cancelled(self, database, executor, publisher, registry):
        async def cancel_then_fail(config, context):
            assert await database.cancel_run(context.run_id) is True
            return ActionResult.fail("Provider rejected the request")

        registry.register("email.send", cancel_then_fail)
        workflow = await save_definition(database, [trigger_node(), action_node("mail", "email.send", {})],
                                         [edge("trigger", "mail")])

        result = await executor.execute(workflow, {})

        assert result.status == "cancelled"
        run = await database.get_run(result.run_id)
        assert run.status == "cancelled"
        assert run.error is None
        assert (await database.get_workflow(workflow.id)).last_error is None
        assert publisher.of("workflow-complete")[0]["status"] == "cancelled"


class TestStatusEvents:
    """Live status emitted during a run."""

    async def test_event_sequence(self, database, executor, publisher):
        workflow = await save_definition(database, [
            trigger_node(),
            action_node("a", "email.send", {}),
            action_node("b", "email.send", {}),
        ], [edge("trigger", "a"), edge("a", "b")])

        result = await executor.execute(workflow, {})

        edges = [(e["edgeId"], e["active"]) for e in publisher.of("edge-active")]
        assert edges == [("trigger->a", True), ("a->b", True), ("a->b", False)]

        statuses = [(e["nodeId"], e["status"]) for e in publisher.of("node-status")]
        assert statuses == [
            ("trigger", "executing"), ("trigger", "success"),
            ("a", "executing"), ("a", "success"),
            ("b", "executing"), ("b", "success"),
        ]

        complete = publisher.of("workflow-complete")
        assert complete == [{
            "runId": result.run_id,
            "status": "completed",
            "stepsCompleted": 2,
            "totalSteps": 2,
        }]
        assert all(wf_id == workflow.id for wf_id, _, _ in publisher.events)

    async def test_error_status_on_failure(self, database, executor, publisher, registry):
        registry.register("email.send", RecordingHandler(ActionResult.fail("bounced")))
        workflow = await save_definition(database, [trigger_node(), action_node("a", "email.send", {})],
                                         [edge("trigger", "a")])

        await executor.execute(workflow, {})

        last = publisher.of("node-status")[-1]
        assert (last["nodeId"], last["status"], last["error"]) == ("a", "error", "bounced")
        assert publisher.of("workflow-complete")[0]["status"] == "failed"

    async def test_publish_failures_do_not_affect_run(self, database, registry):
        executor = GraphExecutor(
            store=database,
            publisher=RecordingPublisher(fail=True),
            dispatcher=ActionDispatcher(registry),
            sleeper=FakeSleeper(),
        )
        workflow = await save_definition(database, [trigger_node(), action_node("a", "email.send", {})],
                                         [edge("trigger", "a")])

        result = await executor.execute(workflow, {})

        assert result.status == "completed"
