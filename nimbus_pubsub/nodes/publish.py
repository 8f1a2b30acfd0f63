"""
Pub/Sub Publish Connector
=========================

Bounded Context: Flow -> Pub/Sub message production

Node type: "google-cloud-pubsub out"

Lifecycle:
    1. Validate configuration (topic, identity). Invalid -> error, nothing else.
    2. Status "connecting"; resolve the topic with auto-create in the
       background. An AlreadyExists/Conflict (409) answer is retried once.
    3. Resolved -> status "connected", queued messages flushed in arrival order.
       Failed -> status "disconnected", error reported, node stays idle.

Input:
    empty payload            -> ignored
    topic not resolved yet   -> queued
    otherwise                -> published; status "publishing" while any
                                publish is in flight

Close:
    Input handler detached, client and topic released. With publishes in
    flight the close completes once the last one finishes.

Example flow entry:
    - id: "telemetry-out"
      type: "google-cloud-pubsub out"
      topic: "telemetry"
      account: "gcp"
"""

import asyncio
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional

from google.api_core.exceptions import Conflict

from ..config import PubSubOutConfig
from ..errors import PublishError, TopicResolutionError, as_configuration_error
from ..gcp import PubSubService, TopicHandle
from ..identity import ServiceIdentity
from ..logging import LogEvent, StructuredLogger
from ..schemas import PubSubEnvelope, is_empty_payload
from ..status import NodeStatus
from .base import ConnectorNode

TYPE_NAME = "google-cloud-pubsub out"

ServiceFactory = Callable[[ServiceIdentity], PubSubService]


class PubSubOutNode(ConnectorNode):
    """
    Publishes flow messages to a Pub/Sub topic.

    Attributes:
        config: Validated PubSubOutConfig (None if configuration failed)
        pending: Number of publishes issued and not yet completed
        queued: Number of messages waiting for the topic

    Invariants:
        - Messages are only queued while the topic handle is absent
        - The queue is empty right after a successful resolution
        - "publishing" is shown from the 0 -> 1 transition of `pending`
          until it returns to 0
    """

    component = "pubsub-out"

    def __init__(
        self,
        runtime: Any,
        config: Dict[str, Any],
        service_factory: ServiceFactory = PubSubService.from_identity,
        logger: Optional[StructuredLogger] = None
    ):
        super().__init__(runtime, config, logger)
        self.config: Optional[PubSubOutConfig] = None

        self._service_factory = service_factory
        self._service: Optional[PubSubService] = None
        self._topic: Optional[TopicHandle] = None
        self._queue: Deque[Dict[str, Any]] = deque()
        self._pending = 0
        self._done: Optional[Callable[[], None]] = None
        self._resolving: Optional[asyncio.Task] = None

        try:
            self.config = PubSubOutConfig.from_dict(config)
            identity = self.resolve_identity(self.config.account, self.config.key_filename)
            self._service = service_factory(identity)
        except ValueError as e:
            self.report(LogEvent.CONFIG_ERROR, as_configuration_error(e))
            return

        self.on("input", self._on_input)
        self.on("close", self._on_close)
        self._activate()

    # ---- state ----------------------------------------------------------
    @property
    def pending(self) -> int:
        return self._pending

    @property
    def queued(self) -> int:
        return len(self._queue)

    @property
    def ready(self) -> bool:
        return self._topic is not None

    # ---- activation -----------------------------------------------------
    def _activate(self) -> None:
        self._topic = None
        self._queue.clear()
        self._pending = 0
        self._done = None

        self.set_status(NodeStatus.CONNECTING)
        self.logger.info(
            event=LogEvent.NODE_CONNECTING,
            message="Resolving topic",
            metadata={'topic': self.config.topic}
        )
        self._resolving = self.runtime.spawn(self._resolve_topic(), owner=self)

    async def _resolve_topic(self) -> None:
        service = self._service
        topic_name = self.config.topic
        try:
            try:
                topic = await service.get_topic(topic_name, auto_create=True)
            except Conflict as e:
                # another client created the topic between our get and create
                self.logger.warning(
                    event=LogEvent.TOPIC_CONFLICT_RETRY,
                    message="Topic creation conflict, retrying once",
                    metadata={'topic': topic_name, 'code': getattr(e, 'code', 409)}
                )
                topic = await service.get_topic(topic_name, auto_create=True)
        except Exception as e:
            self.set_status(NodeStatus.DISCONNECTED)
            self.report(
                LogEvent.TOPIC_RESOLUTION_ERROR,
                TopicResolutionError(f"Could not resolve topic '{topic_name}': {e}"),
                metadata={'topic': topic_name}
            )
            return

        self._on_topic(topic)

    def _on_topic(self, topic: TopicHandle) -> None:
        self._topic = topic
        self.set_status(NodeStatus.CONNECTED)
        self.logger.info(
            event=LogEvent.TOPIC_RESOLVED,
            message="Topic ready",
            metadata={'topic': topic.path, 'queued': len(self._queue)}
        )

        flushed = 0
        while self._queue:
            message = self._queue.popleft()
            try:
                future = self._issue(message)
            except Exception as e:
                self._report_publish_error(e, message)
                continue
            future.add_done_callback(self._on_flushed)
            flushed += 1

        if flushed:
            self.logger.info(
                event=LogEvent.QUEUE_FLUSHED,
                message=f"Flushed {flushed} queued message(s)",
                metadata={'topic': topic.path, 'count': flushed}
            )

    # ---- input ----------------------------------------------------------
    def _on_input(self, message: Optional[Dict[str, Any]]) -> None:
        if not message or is_empty_payload(message.get("payload")):
            return

        if self._topic is None:
            # topic still resolving; published once it is ready
            self._queue.append(message)
            self.logger.debug(
                event=LogEvent.MESSAGE_QUEUED,
                message="Topic not ready, message queued",
                metadata={'queued': len(self._queue)}
            )
            return

        try:
            envelope = PubSubEnvelope.from_flow_message(message)
        except (TypeError, ValueError) as e:
            self._report_publish_error(e, message)
            return

        if self._pending == 0:
            self.set_status(NodeStatus.PUBLISHING)
        self._pending += 1

        try:
            future = self._topic.publish(envelope.data, **envelope.attributes)
        except Exception as e:
            self._report_publish_error(e, message)
            self._release()
            return
        future.add_done_callback(self._on_published)

    def _issue(self, message: Dict[str, Any]) -> "asyncio.Future[str]":
        envelope = PubSubEnvelope.from_flow_message(message)
        return self._topic.publish(envelope.data, **envelope.attributes)

    def _on_published(self, future: "asyncio.Future[str]") -> None:
        self._log_outcome(future)
        self._release()

    def _on_flushed(self, future: "asyncio.Future[str]") -> None:
        self._log_outcome(future)

    def _log_outcome(self, future: "asyncio.Future[str]") -> None:
        if future.cancelled():
            self._report_publish_error(asyncio.CancelledError("publish cancelled"))
            return
        exc = future.exception()
        if exc is not None:
            self._report_publish_error(exc)
            return
        self.logger.debug(
            event=LogEvent.PUBLISH_SUCCESS,
            message="Published message",
            metadata={'message_id': future.result(), 'pending': self._pending}
        )

    def _release(self) -> None:
        self._pending -= 1
        if self._pending > 0:
            return

        self.set_status(NodeStatus.CONNECTED)
        if self._done is not None:
            done, self._done = self._done, None
            self.set_status(NodeStatus.DISCONNECTED)
            self.logger.info(event=LogEvent.NODE_CLOSED, message="In-flight publishes drained, node closed")
            done()

    def _report_publish_error(self, error: BaseException, message: Optional[Dict[str, Any]] = None) -> None:
        topic = self.config.topic if self.config else None
        self.report(
            LogEvent.PUBLISH_FAILED,
            PublishError(f"Could not publish to '{topic}': {error}"),
            message,
            metadata={'topic': topic}
        )

    # ---- close ----------------------------------------------------------
    def _on_close(self, done: Callable[[], None]) -> None:
        self.remove_listener("input", self._on_input)

        if self._resolving is not None and not self._resolving.done():
            self._resolving.cancel()
        self._resolving = None
        self._service = None
        self._topic = None

        if self._queue:
            self.logger.warning(
                event=LogEvent.QUEUE_DISCARDED,
                message=f"Discarding {len(self._queue)} queued message(s)",
                metadata={'count': len(self._queue)}
            )
            self._queue.clear()

        if self._pending == 0:
            self.set_status(NodeStatus.DISCONNECTED)
            self.logger.info(event=LogEvent.NODE_CLOSED, message="Node closed")
            done()
        else:
            self._done = done
            self.logger.info(
                event=LogEvent.NODE_CLOSE_DEFERRED,
                message="Waiting for in-flight publishes before closing",
                metadata={'pending': self._pending}
            )
