"""
Shared test fixtures.

In-memory stand-ins for the Pub/Sub and Cloud IoT services so the connector
lifecycles can be driven step by step without network access. Publish futures
and topic lookups are left pending until a test resolves them.
"""

import asyncio
import functools
import json
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

import pytest

from nimbus_pubsub.gcp import SubscriptionHandle
from nimbus_pubsub.nodes import IotCommandOutNode, PubSubInNode, PubSubOutNode
from nimbus_pubsub.nodes import command, publish, subscribe
from nimbus_runtime import CredentialStore, FlowRuntime, NodeTypeRegistry

PROJECT_ID = "test-project"

SERVICE_ACCOUNT = {
    "type": "service_account",
    "project_id": PROJECT_ID,
    "client_email": "flows@test-project.iam.gserviceaccount.com",
}


async def settle(rounds: int = 10) -> None:
    """Let callbacks and spawned tasks scheduled on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---- Pub/Sub fakes ------------------------------------------------------

@dataclass
class PublishCall:
    data: bytes
    attributes: Dict[str, str]
    future: "asyncio.Future[str]"

    def succeed(self, message_id: str = "msg-1") -> None:
        self.future.set_result(message_id)

    def fail(self, error: BaseException) -> None:
        self.future.set_exception(error)


class FakeTopic:
    """TopicHandle double whose publish futures stay pending until resolved."""

    def __init__(self, path: str):
        self.path = path
        self.calls: List[PublishCall] = []
        self.raise_on_publish: Optional[BaseException] = None

    def publish(self, data: bytes, **attributes: str) -> "asyncio.Future[str]":
        if self.raise_on_publish is not None:
            raise self.raise_on_publish
        future = asyncio.get_running_loop().create_future()
        self.calls.append(PublishCall(data, attributes, future))
        return future

    @property
    def payloads(self) -> List[bytes]:
        return [call.data for call in self.calls]


class FakeListener:
    def __init__(self):
        self.cancelled = False

    @property
    def active(self) -> bool:
        return not self.cancelled

    def cancel(self) -> None:
        self.cancelled = True


class FakePubSubService:
    """
    PubSubService double.

    Attributes:
        topic_outcomes: Exceptions raised by successive get_topic calls
            (exhausted -> success)
        topic_gate: If set, get_topic waits on it before answering
        existing_subscriptions: Names that resolve without being created
    """

    def __init__(self, project_id: str = PROJECT_ID):
        self.project_id = project_id
        self.timeout: Optional[float] = None
        self.topics: Dict[str, FakeTopic] = {}
        self.topic_calls: List[str] = []
        self.topic_outcomes: Deque[BaseException] = deque()
        self.topic_gate: Optional["asyncio.Future[None]"] = None

        self.existing_subscriptions: List[str] = []
        self.subscription_error: Optional[BaseException] = None
        self.subscription_calls: List[Dict[str, Any]] = []
        self.delete_error: Optional[BaseException] = None
        self.deleted: List[str] = []

        self.listener: Optional[FakeListener] = None
        self.on_message: Optional[Callable[[Any], None]] = None
        self.on_error: Optional[Callable[[BaseException], None]] = None

    def hold_topic(self) -> "asyncio.Future[None]":
        """Keep get_topic pending until the returned future is resolved."""
        self.topic_gate = asyncio.get_running_loop().create_future()
        return self.topic_gate

    def topic(self, name: str) -> FakeTopic:
        path = f"projects/{self.project_id}/topics/{name}"
        if path not in self.topics:
            self.topics[path] = FakeTopic(path)
        return self.topics[path]

    async def get_topic(self, name: str, auto_create: bool = True) -> FakeTopic:
        self.topic_calls.append(name)
        if self.topic_gate is not None:
            await self.topic_gate
        if self.topic_outcomes:
            raise self.topic_outcomes.popleft()
        return self.topic(name)

    async def get_subscription(self, topic, name, options=None, auto_create=True) -> SubscriptionHandle:
        self.subscription_calls.append({'topic': topic.path, 'name': name, 'options': options})
        if self.subscription_error is not None:
            raise self.subscription_error
        path = f"projects/{self.project_id}/subscriptions/{name}"
        return SubscriptionHandle(
            path=path, topic=topic.path, created=name not in self.existing_subscriptions
        )

    def subscribe(self, subscription, on_message, on_error, options=None) -> FakeListener:
        self.on_message = on_message
        self.on_error = on_error
        self.listener = FakeListener()
        return self.listener

    async def delete_subscription(self, subscription: SubscriptionHandle) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(subscription.path)


@dataclass
class FakeReceivedMessage:
    """Shape of a message delivered by the streaming pull."""

    data: bytes
    attributes: Dict[str, str] = field(default_factory=dict)
    message_id: str = "1001"
    publish_time: datetime = field(
        default_factory=lambda: datetime(2019, 1, 1, tzinfo=timezone.utc)
    )
    acked: bool = False
    nacked: bool = False

    def ack(self) -> None:
        self.acked = True

    def nack(self) -> None:
        self.nacked = True


# ---- Cloud IoT fake -----------------------------------------------------

class FakeCommandService:
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.error: Optional[BaseException] = None

    async def send_command(self, target, data: bytes, subfolder: Optional[str] = None) -> Dict[str, Any]:
        if self.error is not None:
            raise self.error
        self.sent.append({'device': target.resource_name, 'data': data, 'subfolder': subfolder})
        return {}


# ---- runtime wiring -----------------------------------------------------

class RuntimeRecorder:
    """Collects status, error and output events reported by the runtime."""

    def __init__(self, runtime: FlowRuntime):
        self.statuses: List[tuple] = []
        self.errors: List[tuple] = []
        self.outputs: List[tuple] = []
        runtime.on_status(lambda node, display: self.statuses.append((node.id, display.text)))
        runtime.on_error(lambda node, error, msg: self.errors.append((node.id, error, msg)))
        runtime.on_output(lambda node, msg: self.outputs.append((node.id, msg)))

    def status_texts(self, node_id: str) -> List[str]:
        return [text for nid, text in self.statuses if nid == node_id]

    def error_types(self, node_id: str) -> List[type]:
        return [type(error) for nid, error, _ in self.errors if nid == node_id]


@pytest.fixture
def credentials() -> CredentialStore:
    return CredentialStore({"gcp": {"account": json.dumps(SERVICE_ACCOUNT)}})


@pytest.fixture
def pubsub_service() -> FakePubSubService:
    return FakePubSubService()


@pytest.fixture
def command_service() -> FakeCommandService:
    return FakeCommandService()


@pytest.fixture
def factory_calls() -> List[Dict[str, Any]]:
    return []


@pytest.fixture
def registry(pubsub_service, command_service, factory_calls) -> NodeTypeRegistry:
    """Connector node types wired to the fake services."""

    def pubsub_factory(identity, **kwargs):
        factory_calls.append({'identity': identity, **kwargs})
        pubsub_service.timeout = kwargs.get('timeout')
        return pubsub_service

    async def command_factory(identity):
        factory_calls.append({'identity': identity})
        return command_service

    registry = NodeTypeRegistry()
    registry.register(publish.TYPE_NAME, functools.partial(PubSubOutNode, service_factory=pubsub_factory))
    registry.register(subscribe.TYPE_NAME, functools.partial(PubSubInNode, service_factory=pubsub_factory))
    registry.register(command.TYPE_NAME, functools.partial(IotCommandOutNode, service_factory=command_factory))
    return registry


@pytest.fixture
def runtime(registry, credentials) -> FlowRuntime:
    return FlowRuntime(registry, credentials=credentials, close_timeout=1.0)


@pytest.fixture
def recorder(runtime) -> RuntimeRecorder:
    return RuntimeRecorder(runtime)
