"""
Subscribe connector tests.
"""

import asyncio

from google.api_core.exceptions import Conflict, NotFound

from conftest import PROJECT_ID, FakeReceivedMessage, settle
from nimbus_pubsub import (
    ConfigurationError,
    NodeStatus,
    SubscriptionDeleteError,
    SubscriptionError,
    TopicResolutionError,
    UnsupportedConfigurationError,
)
from nimbus_runtime import FlowConfig

IN_NODE = {
    "id": "in",
    "type": "google-cloud-pubsub in",
    "topic": "commands",
    "subscription": "commands-node",
    "account": "gcp",
}

SUBSCRIPTION_PATH = f"projects/{PROJECT_ID}/subscriptions/commands-node"


async def start_in_node(runtime, extra_nodes=(), **overrides):
    config = dict(IN_NODE, **overrides)
    await runtime.start(FlowConfig.from_dict({"nodes": [config, *extra_nodes]}))
    await settle()
    return runtime.nodes[config["id"]]


def test_connects_and_creates_missing_subscription(runtime, recorder, pubsub_service):
    async def scenario():
        node = await start_in_node(runtime, ackDeadlineSeconds=60)

        assert recorder.status_texts("in") == ["connecting", "connected"]
        assert node.auto_created
        assert node.subscription.path == SUBSCRIPTION_PATH
        assert node.subscription.topic == f"projects/{PROJECT_ID}/topics/commands"

        call = pubsub_service.subscription_calls[0]
        assert call['name'] == "commands-node"
        assert call['options'].ack_deadline_seconds == 60
        assert pubsub_service.listener.active

    asyncio.run(scenario())


def test_received_message_is_forwarded_and_acked(runtime, recorder, pubsub_service):
    async def scenario():
        node = await start_in_node(runtime)
        received = FakeReceivedMessage(data=b"hello", attributes={"origin": "line-1"}, message_id="42")

        pubsub_service.on_message(received)

        assert received.acked
        assert node.received == 1
        (node_id, message), = recorder.outputs
        assert node_id == "in"
        assert message == {
            'payload': b"hello",
            'attributes': {"origin": "line-1"},
            'time': 1546300800000,
            'project': PROJECT_ID,
            'topic': "commands",
            'subscription': "commands-node",
            'resource': SUBSCRIPTION_PATH,
            'messageId': "42",
        }

    asyncio.run(scenario())


def test_encoding_option_decodes_payload(runtime, recorder, pubsub_service):
    async def scenario():
        await start_in_node(runtime, encoding="utf-8")
        pubsub_service.on_message(FakeReceivedMessage(data="grüß".encode("utf-8")))
        assert recorder.outputs[0][1]['payload'] == "grüß"

    asyncio.run(scenario())


def test_base64_encoding(runtime, recorder, pubsub_service):
    async def scenario():
        await start_in_node(runtime, encoding="base64")
        pubsub_service.on_message(FakeReceivedMessage(data=b"hi"))
        assert recorder.outputs[0][1]['payload'] == "aGk="

    asyncio.run(scenario())


def test_undecodable_message_is_nacked(runtime, recorder, pubsub_service):
    async def scenario():
        node = await start_in_node(runtime, encoding="ascii")
        received = FakeReceivedMessage(data=b"\xff\xfe")

        pubsub_service.on_message(received)

        assert received.nacked
        assert not received.acked
        assert recorder.outputs == []
        assert node.received == 0
        assert recorder.error_types("in") == [SubscriptionError]

    asyncio.run(scenario())


def test_messages_follow_wires(runtime, recorder, pubsub_service):
    """A subscribed message published again through a wired out node."""

    async def scenario():
        out_node = {"id": "out", "type": "google-cloud-pubsub out", "topic": "archive", "account": "gcp"}
        await start_in_node(runtime, extra_nodes=[out_node], wires=["out"])

        pubsub_service.on_message(FakeReceivedMessage(data=b"payload", attributes={"k": "v"}))

        call = pubsub_service.topic("archive").calls[0]
        assert call.data == b"payload"
        assert call.attributes == {"k": "v", "timestamp": "2019-01-01T00:00:00.000Z"}

    asyncio.run(scenario())


def test_missing_subscription_name_is_unsupported(runtime, recorder, pubsub_service):
    async def scenario():
        node = await start_in_node(runtime, subscription=None)

        assert recorder.status_texts("in") == ["connecting", "disconnected"]
        assert recorder.error_types("in") == [UnsupportedConfigurationError]
        assert pubsub_service.subscription_calls == []

        await asyncio.wait_for(node.close(), timeout=1.0)
        assert pubsub_service.deleted == []

    asyncio.run(scenario())


def test_existing_subscription_is_kept_on_close(runtime, recorder, pubsub_service):
    async def scenario():
        pubsub_service.existing_subscriptions.append("commands-node")
        node = await start_in_node(runtime)
        assert not node.auto_created

        listener = pubsub_service.listener
        await asyncio.wait_for(node.close(), timeout=1.0)

        assert listener.cancelled
        assert pubsub_service.deleted == []
        assert node.state is NodeStatus.DISCONNECTED

    asyncio.run(scenario())


def test_auto_created_subscription_is_deleted_on_close(runtime, recorder, pubsub_service):
    async def scenario():
        node = await start_in_node(runtime)
        listener = pubsub_service.listener

        await asyncio.wait_for(node.close(), timeout=1.0)

        assert listener.cancelled
        assert pubsub_service.deleted == [SUBSCRIPTION_PATH]
        assert recorder.errors == []

    asyncio.run(scenario())


def test_delete_failure_is_reported_and_close_completes(runtime, recorder, pubsub_service):
    async def scenario():
        node = await start_in_node(runtime)
        pubsub_service.delete_error = NotFound("already gone")

        await asyncio.wait_for(node.close(), timeout=1.0)

        assert node.closed
        assert recorder.error_types("in") == [SubscriptionDeleteError]

    asyncio.run(scenario())


def test_topic_conflict_is_retried_once(runtime, recorder, pubsub_service):
    async def scenario():
        pubsub_service.topic_outcomes.append(Conflict("409"))
        node = await start_in_node(runtime)

        assert pubsub_service.topic_calls == ["commands", "commands"]
        assert node.state is NodeStatus.CONNECTED

    asyncio.run(scenario())


def test_topic_failure_disconnects(runtime, recorder, pubsub_service):
    async def scenario():
        pubsub_service.topic_outcomes.append(RuntimeError("unavailable"))
        await start_in_node(runtime)

        assert recorder.status_texts("in") == ["connecting", "disconnected"]
        assert recorder.error_types("in") == [TopicResolutionError]
        assert pubsub_service.subscription_calls == []

    asyncio.run(scenario())


def test_subscription_failure_disconnects(runtime, recorder, pubsub_service):
    async def scenario():
        pubsub_service.subscription_error = RuntimeError("permission denied")
        node = await start_in_node(runtime)

        assert recorder.status_texts("in") == ["connecting", "disconnected"]
        assert recorder.error_types("in") == [SubscriptionError]
        assert node.subscription is None
        assert pubsub_service.listener is None

    asyncio.run(scenario())


def test_listener_failure_disconnects(runtime, recorder, pubsub_service):
    async def scenario():
        node = await start_in_node(runtime)
        listener = pubsub_service.listener

        pubsub_service.on_error(RuntimeError("stream closed"))

        assert listener.cancelled
        assert node.state is NodeStatus.DISCONNECTED
        assert recorder.error_types("in") == [SubscriptionError]

    asyncio.run(scenario())


def test_timeout_option_reaches_service(runtime, factory_calls, pubsub_service):
    async def scenario():
        await start_in_node(runtime, timeout=30, interval=5)

        assert factory_calls[0]['timeout'] == 30.0
        assert pubsub_service.timeout == 30.0
        assert pubsub_service.subscription_calls[0]['options'].interval == 5.0

    asyncio.run(scenario())


def test_invalid_ack_deadline_is_a_configuration_error(runtime, recorder, pubsub_service):
    async def scenario():
        node = await start_in_node(runtime, ackDeadlineSeconds=5)

        assert recorder.error_types("in") == [ConfigurationError]
        assert recorder.status_texts("in") == []
        assert pubsub_service.topic_calls == []
        await asyncio.wait_for(node.close(), timeout=1.0)

    asyncio.run(scenario())


def test_unknown_encoding_is_a_configuration_error(runtime, recorder):
    async def scenario():
        await start_in_node(runtime, encoding="klingon")
        assert recorder.error_types("in") == [ConfigurationError]

    asyncio.run(scenario())
