"""Tests for template variable resolution."""

from services.execution.models import ActionResult, ExecutionContext
from services.execution.resolver import (
    extract_variables,
    get_value_from_path,
    has_variables,
    resolve,
    resolve_deep,
    stringify,
    validate_variables,
)


class TestResolve:
    """String template resolution."""

    def test_typed_view_for_order_trigger(self, context):
        assert resolve("Order {{order.id}} for {{order.email}}", context) == "Order O1 for a@b.com"

    def test_trigger_data_root(self, context):
        assert resolve("{{triggerData.id}}", context) == "O1"

    def test_unknown_root_reads_raw_payload(self, context):
        assert resolve("{{email}}", context) == "a@b.com"

    def test_missing_path_renders_empty(self, context):
        assert resolve("[{{order.nope.deeper}}]", context) == "[]"

    def test_array_index(self, context):
        assert resolve("{{order.items[1].sku}}", context) == "SKU-2"
        assert resolve("{{order.items.0.qty}}", context) == "2"

    def test_array_index_out_of_range(self, context):
        assert resolve("{{order.items[5].sku}}", context) == ""

    def test_whitespace_inside_braces(self, context):
        assert resolve("{{  order.id  }}", context) == "O1"

    def test_customer_falls_back_to_nested_payload(self, context):
        assert resolve("{{customer.name}}", context) == "Ada"

    def test_customer_view_on_customer_trigger(self):
        ctx = ExecutionContext.build("wf", "run", "ws", "customer.tag_added", {"name": "Grace", "tag": "vip"})
        assert resolve("{{customer.name}} tagged {{customer.tag}}", ctx) == "Grace tagged vip"

    def test_workflow_and_workspace_roots(self, context):
        assert resolve("{{workflow.id}}/{{workflow.runId}}/{{workspace.id}}", context) == "wf-1/run-1/ws-1"

    def test_step_outputs(self, context):
        context.record("send", ActionResult.ok({"messageId": "m-42"}))
        assert resolve("{{stepOutputs.send.output.messageId}}", context) == "m-42"
        assert resolve("{{stepOutputs.send.success}}", context) == "true"

    def test_non_template_string_untouched(self, context):
        assert resolve("plain text", context) == "plain text"

    def test_object_values_render_as_json(self, context):
        assert resolve("{{order.customer.tags}}", context) == '["vip"]'


class TestResolveDeep:
    """Recursive resolution through config structures."""

    def test_nested_structures(self, context):
        config = {
            "to": "{{order.email}}",
            "meta": {"ids": ["{{order.id}}", "static"]},
            "count": 3,
            "flag": None,
        }
        assert resolve_deep(config, context) == {
            "to": "a@b.com",
            "meta": {"ids": ["O1", "static"]},
            "count": 3,
            "flag": None,
        }

    def test_resolving_twice_changes_nothing(self, context):
        config = {
            "subject": "Order {{order.id}}",
            "lines": [{"sku": "{{order.items[0].sku}}"}, "{{order.missing}}"],
            "total": "{{order.total}}",
        }
        once = resolve_deep(config, context)
        assert resolve_deep(once, context) == once


class TestHelpers:
    """Value lookup and inspection helpers."""

    def test_get_value_keeps_native_types(self, context):
        assert get_value_from_path("order.items", context)[0] == {"sku": "SKU-1", "qty": 2}
        assert get_value_from_path("order.paid", context) is True
        assert get_value_from_path("order.missing", context) is None

    def test_stringify(self):
        assert stringify(None) == ""
        assert stringify(False) == "false"
        assert stringify(150.0) == "150"
        assert stringify(1.5) == "1.5"
        assert stringify({"a": 1}) == '{"a":1}'

    def test_has_and_extract_variables(self):
        config = {"a": "Hi {{customer.name}}", "b": ["{{order.id}}", "{{customer.name}}"], "c": 1}
        assert has_variables(config) is True
        assert has_variables({"a": "none", "b": [1, 2]}) is False
        assert extract_variables(config) == ["customer.name", "order.id"]

    def test_validate_variables(self):
        result = validate_variables("{{order.id}} {{secrets.key}}")
        assert result == {"valid": False, "invalid": ["secrets.key"]}

        assert validate_variables("{{order.id}}", available_roots=["order"])["valid"] is True
