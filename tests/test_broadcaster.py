"""Tests for the WebSocket status broadcaster."""

import orjson

from services.status_broadcaster import StatusBroadcaster, user_channel, workflow_channel


class FakeWebSocket:
    """Minimal stand-in for fastapi.WebSocket."""

    def __init__(self, fail: bool = False):
        self.accepted = False
        self.sent = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_text(self, text: str):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(orjson.loads(text))


class TestSubscriptions:
    """Channel membership."""

    async def test_subscribe_sends_initial_status(self):
        broadcaster = StatusBroadcaster()
        await broadcaster.publish("wf-1", "node-status", {"nodeId": "a", "status": "success", "runId": "r1"})
        socket = FakeWebSocket()

        await broadcaster.subscribe(workflow_channel("wf-1"), socket)

        assert socket.accepted is True
        initial = socket.sent[0]
        assert initial["event"] == "initial_status"
        assert initial["data"]["nodes"]["a"]["status"] == "success"
        assert initial["data"]["lastRun"] is None
        assert broadcaster.subscriber_count("workflow-wf-1") == 1

    async def test_unsubscribe(self):
        broadcaster = StatusBroadcaster()
        socket = FakeWebSocket()
        await broadcaster.subscribe("workflow-wf-1", socket)
        await broadcaster.unsubscribe("workflow-wf-1", socket)
        assert broadcaster.subscriber_count("workflow-wf-1") == 0

    def test_channel_names(self):
        assert workflow_channel("abc") == "workflow-abc"
        assert user_channel("u1") == "user-u1"


class TestPublish:
    """Run status fan-out."""

    async def test_publish_reaches_workflow_subscribers_only(self):
        broadcaster = StatusBroadcaster()
        mine, other = FakeWebSocket(), FakeWebSocket()
        await broadcaster.subscribe("workflow-wf-1", mine)
        await broadcaster.subscribe("workflow-wf-2", other)

        await broadcaster.publish("wf-1", "edge-active", {"edgeId": "e1", "active": True, "runId": "r1"})

        assert mine.sent[-1] == {
            "channel": "workflow-wf-1",
            "event": "edge-active",
            "data": {"edgeId": "e1", "active": True, "runId": "r1"},
        }
        assert len(other.sent) == 1

    async def test_dead_socket_is_dropped(self):
        broadcaster = StatusBroadcaster()
        good = FakeWebSocket()
        await broadcaster.subscribe("workflow-wf-1", good)
        dead = FakeWebSocket()
        await broadcaster.subscribe("workflow-wf-1", dead)
        dead.fail = True

        delivered = await broadcaster.broadcast("workflow-wf-1", {"event": "ping"})

        assert delivered == 1
        assert broadcaster.subscriber_count("workflow-wf-1") == 1

    async def test_publish_without_subscribers_is_noop(self):
        broadcaster = StatusBroadcaster()
        await broadcaster.publish("wf-1", "workflow-complete", {"runId": "r1", "status": "completed"})
        assert broadcaster.get_channel_status("workflow-wf-1")["lastRun"]["status"] == "completed"

    async def test_node_status_is_remembered(self):
        broadcaster = StatusBroadcaster()
        await broadcaster.publish("wf-1", "node-status", {"nodeId": "a", "status": "executing", "runId": "r1"})
        await broadcaster.publish("wf-1", "node-status", {"nodeId": "a", "status": "error", "runId": "r1"})
        assert broadcaster.get_node_status("wf-1", "a")["status"] == "error"

    async def test_notify_user(self):
        broadcaster = StatusBroadcaster()
        socket = FakeWebSocket()
        await broadcaster.subscribe("user-u1", socket)

        assert await broadcaster.notify_user("u1", "notification", {"title": "Hi"}) == 1
        assert socket.sent[0]["data"] == {}
        assert socket.sent[1]["event"] == "notification"
