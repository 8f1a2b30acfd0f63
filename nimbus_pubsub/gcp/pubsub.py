"""
Cloud Pub/Sub Service Adapter
=============================

Bounded Context: Pub/Sub client infrastructure

Thin asyncio facade over google-cloud-pubsub used by the connector nodes.

Design:
- Admin RPCs (get/create/delete) are blocking in the Google client; they run
  in the loop's default executor
- Publish futures are wrapped with asyncio.wrap_future, so completion
  callbacks run on the loop
- Streaming-pull callbacks arrive on client threads and are handed to the
  loop with call_soon_threadsafe

Resolution semantics:
    get_topic(name, auto_create=True)
        exists       -> TopicHandle
        NotFound     -> create_topic -> TopicHandle
        create races -> google.api_core.exceptions.AlreadyExists (HTTP 409)
    The caller decides what to do with the conflict.
"""

import asyncio
import functools
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from google.api_core.exceptions import NotFound
from google.cloud import pubsub_v1

from ..config import SubscriptionOptions
from ..identity import ServiceIdentity

PUBSUB_SCOPES = ["https://www.googleapis.com/auth/pubsub"]


class TopicHandle:
    """
    Capability to publish to one topic.

    Attributes:
        path: projects/{project}/topics/{topic}
    """

    def __init__(self, publisher: pubsub_v1.PublisherClient, path: str):
        self._publisher = publisher
        self.path = path

    def __repr__(self) -> str:
        return f"<TopicHandle {self.path}>"

    def publish(self, data: bytes, **attributes: str) -> "asyncio.Future[str]":
        """
        Hand one message to the publisher.

        The message is enqueued synchronously, so successive calls keep their
        order; the returned future resolves to the server-assigned message id.
        """
        return asyncio.wrap_future(self._publisher.publish(self.path, data, **attributes))


@dataclass(frozen=True)
class SubscriptionHandle:
    """
    Resolved subscription.

    Attributes:
        path: projects/{project}/subscriptions/{name}
        topic: Path of the topic it is attached to
        created: True if the subscription was created by this connector
    """
    path: str
    topic: str
    created: bool = False


class SubscriptionListener:
    """Active streaming pull; `cancel()` detaches it."""

    def __init__(self, streaming_pull_future: Any):
        self._future = streaming_pull_future

    @property
    def active(self) -> bool:
        return not self._future.done()

    def cancel(self) -> None:
        if not self._future.done():
            self._future.cancel()


class PubSubService:
    """
    Pub/Sub client pair bound to one identity.

    Example:
        >>> service = PubSubService.from_identity(identity)
        >>> topic = await service.get_topic("telemetry", auto_create=True)
        >>> message_id = await topic.publish(b"hello", timestamp="2019-01-01T00:00:00.000Z")
    """

    def __init__(
        self,
        publisher: pubsub_v1.PublisherClient,
        subscriber: pubsub_v1.SubscriberClient,
        project_id: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.publisher = publisher
        self.subscriber = subscriber
        self.project_id = project_id
        self.timeout = timeout

    @classmethod
    def from_identity(cls, identity: ServiceIdentity, timeout: Optional[float] = None) -> "PubSubService":
        credentials = identity.credentials(scopes=PUBSUB_SCOPES)
        return cls(
            publisher=pubsub_v1.PublisherClient(credentials=credentials),
            subscriber=pubsub_v1.SubscriberClient(credentials=credentials),
            project_id=identity.project_id,
            timeout=timeout,
        )

    # ---- naming ---------------------------------------------------------
    def topic_path(self, name: str) -> str:
        if name.startswith("projects/"):
            return name
        if not self.project_id:
            raise ValueError(f"Cannot qualify topic '{name}': identity has no project_id")
        return self.publisher.topic_path(self.project_id, name)

    def subscription_path(self, name: str) -> str:
        if name.startswith("projects/"):
            return name
        if not self.project_id:
            raise ValueError(f"Cannot qualify subscription '{name}': identity has no project_id")
        return self.subscriber.subscription_path(self.project_id, name)

    async def _call(self, fn: Callable, **kwargs: Any) -> Any:
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, **kwargs))

    # ---- topics ---------------------------------------------------------
    async def get_topic(self, name: str, auto_create: bool = True) -> TopicHandle:
        """
        Fetch a topic, creating it if absent and `auto_create` is set.

        Raises:
            google.api_core.exceptions.AlreadyExists: creation raced (409)
            google.api_core.exceptions.NotFound: absent and not auto-created
        """
        path = self.topic_path(name)
        try:
            topic = await self._call(self.publisher.get_topic, request={"topic": path})
        except NotFound:
            if not auto_create:
                raise
            topic = await self._call(self.publisher.create_topic, request={"name": path})
        return TopicHandle(self.publisher, topic.name)

    # ---- subscriptions --------------------------------------------------
    async def get_subscription(
        self,
        topic: TopicHandle,
        name: str,
        options: Optional[SubscriptionOptions] = None,
        auto_create: bool = True
    ) -> SubscriptionHandle:
        """
        Fetch a subscription, creating it on `topic` if absent.
        """
        path = self.subscription_path(name)
        try:
            subscription = await self._call(
                self.subscriber.get_subscription, request={"subscription": path}
            )
            return SubscriptionHandle(path=subscription.name, topic=subscription.topic)
        except NotFound:
            if not auto_create:
                raise

        request: Dict[str, Any] = {"name": path, "topic": topic.path}
        if options is not None and options.ack_deadline_seconds is not None:
            request["ack_deadline_seconds"] = options.ack_deadline_seconds
        subscription = await self._call(self.subscriber.create_subscription, request=request)
        return SubscriptionHandle(path=subscription.name, topic=subscription.topic, created=True)

    def subscribe(
        self,
        subscription: SubscriptionHandle,
        on_message: Callable[[Any], None],
        on_error: Callable[[BaseException], None],
        options: Optional[SubscriptionOptions] = None
    ) -> SubscriptionListener:
        """
        Start a streaming pull; callbacks run on the current event loop.
        """
        loop = asyncio.get_running_loop()

        def _callback(message: Any) -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(on_message, message)

        def _done(future: Any) -> None:
            if future.cancelled() or loop.is_closed():
                return
            exc = future.exception()
            if exc is not None:
                loop.call_soon_threadsafe(on_error, exc)

        flow_control = pubsub_v1.types.FlowControl()
        if options is not None and options.interval is not None:
            flow_control = pubsub_v1.types.FlowControl(
                max_duration_per_lease_extension=math.ceil(options.interval)
            )

        streaming_pull = self.subscriber.subscribe(
            subscription.path, callback=_callback, flow_control=flow_control
        )
        streaming_pull.add_done_callback(_done)
        return SubscriptionListener(streaming_pull)

    async def delete_subscription(self, subscription: SubscriptionHandle) -> None:
        await self._call(
            self.subscriber.delete_subscription, request={"subscription": subscription.path}
        )
