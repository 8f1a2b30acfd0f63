"""
Pub/Sub service adapter tests.

Drives PubSubService against stub publisher/subscriber clients that record
the requests they receive, the way the Google clients would be called.
"""

import asyncio
from concurrent.futures import Future
from types import SimpleNamespace

import pytest
from google.api_core.exceptions import AlreadyExists, Conflict, NotFound

from conftest import PROJECT_ID, settle
from nimbus_pubsub import SubscriptionOptions
from nimbus_pubsub.gcp import PubSubService, SubscriptionHandle

TOPIC = f"projects/{PROJECT_ID}/topics/telemetry"
SUBSCRIPTION = f"projects/{PROJECT_ID}/subscriptions/telemetry-sub"


class StubPublisher:
    def __init__(self, existing=(), create_error=None):
        self.existing = set(existing)
        self.create_error = create_error
        self.calls = []
        self.published = []

    def topic_path(self, project, name):
        return f"projects/{project}/topics/{name}"

    def get_topic(self, request, **kwargs):
        self.calls.append(("get_topic", request, kwargs))
        if request["topic"] not in self.existing:
            raise NotFound(f"Resource not found (resource={request['topic']}).")
        return SimpleNamespace(name=request["topic"])

    def create_topic(self, request, **kwargs):
        self.calls.append(("create_topic", request, kwargs))
        if self.create_error is not None:
            raise self.create_error
        self.existing.add(request["name"])
        return SimpleNamespace(name=request["name"])

    def publish(self, topic, data, **attributes):
        self.published.append((topic, data, attributes))
        future = Future()
        future.set_result(f"msg-{len(self.published)}")
        return future


class StubSubscriber:
    def __init__(self, existing=None):
        # subscription path -> topic path
        self.existing = dict(existing or {})
        self.calls = []
        self.streams = []

    def subscription_path(self, project, name):
        return f"projects/{project}/subscriptions/{name}"

    def get_subscription(self, request, **kwargs):
        self.calls.append(("get_subscription", request, kwargs))
        path = request["subscription"]
        if path not in self.existing:
            raise NotFound(f"Resource not found (resource={path}).")
        return SimpleNamespace(name=path, topic=self.existing[path])

    def create_subscription(self, request, **kwargs):
        self.calls.append(("create_subscription", request, kwargs))
        self.existing[request["name"]] = request["topic"]
        return SimpleNamespace(name=request["name"], topic=request["topic"])

    def delete_subscription(self, request, **kwargs):
        self.calls.append(("delete_subscription", request, kwargs))
        self.existing.pop(request["subscription"], None)

    def subscribe(self, path, callback, flow_control):
        stream = SimpleNamespace(path=path, callback=callback, flow_control=flow_control, future=Future())
        self.streams.append(stream)
        return stream.future


def make_service(publisher=None, subscriber=None, **kwargs):
    kwargs.setdefault("project_id", PROJECT_ID)
    return PubSubService(publisher or StubPublisher(), subscriber or StubSubscriber(), **kwargs)


# ---- topics ---------------------------------------------------------

def test_existing_topic_is_fetched():
    publisher = StubPublisher(existing=[TOPIC])
    topic = asyncio.run(make_service(publisher).get_topic("telemetry"))

    assert topic.path == TOPIC
    assert [name for name, _, _ in publisher.calls] == ["get_topic"]


def test_missing_topic_is_created():
    publisher = StubPublisher()
    topic = asyncio.run(make_service(publisher).get_topic("telemetry"))

    assert topic.path == TOPIC
    assert publisher.calls == [
        ("get_topic", {"topic": TOPIC}, {}),
        ("create_topic", {"name": TOPIC}, {}),
    ]


def test_missing_topic_without_auto_create():
    publisher = StubPublisher()
    with pytest.raises(NotFound):
        asyncio.run(make_service(publisher).get_topic("telemetry", auto_create=False))
    assert [name for name, _, _ in publisher.calls] == ["get_topic"]


def test_create_race_surfaces_as_conflict():
    """The publish connector retries on Conflict; AlreadyExists must reach it."""
    publisher = StubPublisher(create_error=AlreadyExists("Topic already exists"))

    with pytest.raises(Conflict) as excinfo:
        asyncio.run(make_service(publisher).get_topic("telemetry"))
    assert isinstance(excinfo.value, AlreadyExists)


def test_full_topic_path_is_used_as_is():
    other = "projects/other-project/topics/alerts"
    publisher = StubPublisher(existing=[other])

    topic = asyncio.run(make_service(publisher, project_id=None).get_topic(other))
    assert topic.path == other


def test_short_name_requires_project():
    service = make_service(project_id=None)
    with pytest.raises(ValueError):
        service.topic_path("telemetry")
    with pytest.raises(ValueError):
        service.subscription_path("telemetry-sub")


def test_timeout_is_forwarded_to_admin_calls():
    publisher = StubPublisher()
    asyncio.run(make_service(publisher, timeout=5.0).get_topic("telemetry"))

    assert [kwargs for _, _, kwargs in publisher.calls] == [{"timeout": 5.0}, {"timeout": 5.0}]


def test_topic_handle_publish_resolves_on_loop():
    publisher = StubPublisher(existing=[TOPIC])

    async def scenario():
        topic = await make_service(publisher).get_topic("telemetry")
        return await topic.publish(b"hello", timestamp="2019-01-01T00:00:00.000Z")

    assert asyncio.run(scenario()) == "msg-1"
    assert publisher.published == [(TOPIC, b"hello", {"timestamp": "2019-01-01T00:00:00.000Z"})]


# ---- subscriptions --------------------------------------------------

def test_existing_subscription_is_not_marked_created():
    subscriber = StubSubscriber(existing={SUBSCRIPTION: TOPIC})
    service = make_service(StubPublisher(existing=[TOPIC]), subscriber)

    handle = asyncio.run(_resolve(service, "telemetry-sub"))

    assert handle == SubscriptionHandle(path=SUBSCRIPTION, topic=TOPIC, created=False)
    assert [name for name, _, _ in subscriber.calls] == ["get_subscription"]


def test_missing_subscription_is_created_with_ack_deadline():
    subscriber = StubSubscriber()
    service = make_service(StubPublisher(existing=[TOPIC]), subscriber)
    options = SubscriptionOptions(ack_deadline_seconds=30)

    handle = asyncio.run(_resolve(service, "telemetry-sub", options))

    assert handle == SubscriptionHandle(path=SUBSCRIPTION, topic=TOPIC, created=True)
    assert subscriber.calls[-1] == (
        "create_subscription",
        {"name": SUBSCRIPTION, "topic": TOPIC, "ack_deadline_seconds": 30},
        {},
    )


def test_missing_subscription_without_ack_deadline():
    subscriber = StubSubscriber()
    service = make_service(StubPublisher(existing=[TOPIC]), subscriber)

    asyncio.run(_resolve(service, "telemetry-sub"))
    assert subscriber.calls[-1][1] == {"name": SUBSCRIPTION, "topic": TOPIC}


def test_missing_subscription_without_auto_create():
    service = make_service(StubPublisher(existing=[TOPIC]), StubSubscriber())
    with pytest.raises(NotFound):
        asyncio.run(_resolve(service, "telemetry-sub", auto_create=False))


def test_delete_subscription():
    subscriber = StubSubscriber(existing={SUBSCRIPTION: TOPIC})
    service = make_service(subscriber=subscriber)

    asyncio.run(service.delete_subscription(SubscriptionHandle(SUBSCRIPTION, TOPIC, created=True)))

    assert subscriber.calls == [("delete_subscription", {"subscription": SUBSCRIPTION}, {})]
    assert subscriber.existing == {}


async def _resolve(service, name, options=None, auto_create=True):
    topic = await service.get_topic("telemetry")
    return await service.get_subscription(topic, name, options, auto_create=auto_create)


# ---- streaming pull -------------------------------------------------

def test_stream_callbacks_run_on_loop():
    subscriber = StubSubscriber()
    service = make_service(subscriber=subscriber)
    handle = SubscriptionHandle(SUBSCRIPTION, TOPIC)
    received, errors = [], []

    async def scenario():
        listener = service.subscribe(handle, received.append, errors.append)
        stream = subscriber.streams[0]
        assert stream.path == SUBSCRIPTION

        # 1. Message delivered on a client thread
        stream.callback("m1")
        assert received == []
        await settle()
        assert received == ["m1"]

        # 2. Stream fails: error handed to the loop
        failure = RuntimeError("stream reset")
        stream.future.set_exception(failure)
        assert errors == []
        await settle()
        assert errors == [failure]
        assert not listener.active

    asyncio.run(scenario())


def test_cancelled_stream_is_not_an_error():
    subscriber = StubSubscriber()
    service = make_service(subscriber=subscriber)
    errors = []

    async def scenario():
        listener = service.subscribe(SubscriptionHandle(SUBSCRIPTION, TOPIC), lambda m: None, errors.append)
        assert listener.active
        listener.cancel()
        await settle()
        assert not listener.active

    asyncio.run(scenario())
    assert errors == []


@pytest.mark.parametrize("interval, expected", [(1, 1), (10.0, 10), (1.5, 2)])
def test_interval_sets_lease_extension(interval, expected):
    subscriber = StubSubscriber()
    service = make_service(subscriber=subscriber)

    async def scenario():
        service.subscribe(
            SubscriptionHandle(SUBSCRIPTION, TOPIC),
            lambda m: None,
            lambda e: None,
            SubscriptionOptions(interval=interval),
        )

    asyncio.run(scenario())
    assert subscriber.streams[0].flow_control.max_duration_per_lease_extension == expected
