"""
Pub/Sub Subscribe Connector
===========================

Bounded Context: Pub/Sub -> Flow message consumption

Node type: "google-cloud-pubsub in"

Message Flow:
    Pub/Sub subscription -> streaming pull -> to_flow_message -> node.send -> ack

Resolution:
    1. Topic fetched with auto-create (409 conflict retried once)
    2. Named subscription fetched, or created on the topic if absent
       (remembered as auto-created)
    3. Listener attached, status "connected"

    Without a subscription name the node reports an
    UnsupportedConfigurationError; generated subscription names are not
    supported.

Close:
    Listener detached. An auto-created subscription is deleted and the close
    completes once the delete finishes (a failed delete is reported, the
    close still completes).
"""

import asyncio
from typing import Any, Callable, Dict, Optional

from google.api_core.exceptions import Conflict

from ..config import PubSubInConfig
from ..errors import (
    SubscriptionDeleteError,
    SubscriptionError,
    TopicResolutionError,
    UnsupportedConfigurationError,
    as_configuration_error,
)
from ..gcp import PubSubService, SubscriptionHandle, SubscriptionListener, TopicHandle
from ..logging import LogEvent, StructuredLogger
from ..schemas import to_flow_message
from ..status import NodeStatus
from .base import ConnectorNode

TYPE_NAME = "google-cloud-pubsub in"

ServiceFactory = Callable[..., PubSubService]


class PubSubInNode(ConnectorNode):
    """
    Forwards messages from a Pub/Sub subscription into the flow.

    Attributes:
        config: Validated PubSubInConfig (None if configuration failed)
        subscription: Resolved subscription (None until attached)
        received: Number of messages forwarded
    """

    component = "pubsub-in"

    def __init__(
        self,
        runtime: Any,
        config: Dict[str, Any],
        service_factory: ServiceFactory = PubSubService.from_identity,
        logger: Optional[StructuredLogger] = None
    ):
        super().__init__(runtime, config, logger)
        self.config: Optional[PubSubInConfig] = None
        self.subscription: Optional[SubscriptionHandle] = None
        self.received = 0

        self._service: Optional[PubSubService] = None
        self._topic: Optional[TopicHandle] = None
        self._listener: Optional[SubscriptionListener] = None
        self._connecting: Optional[asyncio.Task] = None

        try:
            self.config = PubSubInConfig.from_dict(config)
            identity = self.resolve_identity(self.config.account, self.config.key_filename)
            self._service = service_factory(identity, timeout=self.config.options.timeout)
        except ValueError as e:
            self.report(LogEvent.CONFIG_ERROR, as_configuration_error(e))
            return

        self.set_status(NodeStatus.CONNECTING)
        self.logger.info(
            event=LogEvent.NODE_CONNECTING,
            message="Resolving topic and subscription",
            metadata={'topic': self.config.topic, 'subscription': self.config.subscription}
        )
        self.on("close", self._on_close)
        self._connecting = self.runtime.spawn(self._connect(), owner=self)

    @property
    def auto_created(self) -> bool:
        return self.subscription is not None and self.subscription.created

    async def _get_topic(self) -> TopicHandle:
        topic_name = self.config.topic
        try:
            return await self._service.get_topic(topic_name, auto_create=True)
        except Conflict:
            self.logger.warning(
                event=LogEvent.TOPIC_CONFLICT_RETRY,
                message="Topic creation conflict, retrying once",
                metadata={'topic': topic_name}
            )
            return await self._service.get_topic(topic_name, auto_create=True)

    async def _connect(self) -> None:
        try:
            self._topic = await self._get_topic()
        except Exception as e:
            self.set_status(NodeStatus.DISCONNECTED)
            self.report(
                LogEvent.TOPIC_RESOLUTION_ERROR,
                TopicResolutionError(f"Could not resolve topic '{self.config.topic}': {e}"),
                metadata={'topic': self.config.topic}
            )
            return

        if not self.config.subscription:
            self.set_status(NodeStatus.DISCONNECTED)
            self.report(
                LogEvent.SUBSCRIPTION_ERROR,
                UnsupportedConfigurationError(
                    "Automatically generated subscriptions are not supported; "
                    "configure a subscription name"
                ),
                metadata={'topic': self.config.topic}
            )
            return

        try:
            subscription = await self._service.get_subscription(
                self._topic, self.config.subscription, self.config.options, auto_create=True
            )
        except Exception as e:
            self.set_status(NodeStatus.DISCONNECTED)
            self.report(
                LogEvent.SUBSCRIPTION_ERROR,
                SubscriptionError(f"Could not resolve subscription '{self.config.subscription}': {e}"),
                metadata={'subscription': self.config.subscription}
            )
            return

        self.subscription = subscription
        if subscription.created:
            self.logger.info(
                event=LogEvent.SUBSCRIPTION_CREATED,
                message="Subscription created",
                metadata={'subscription': subscription.path, 'topic': subscription.topic}
            )

        self._listener = self._service.subscribe(
            subscription, self._on_message, self._on_error, self.config.options
        )
        self.set_status(NodeStatus.CONNECTED)
        self.logger.info(
            event=LogEvent.SUBSCRIPTION_ATTACHED,
            message="Listening for messages",
            metadata={'subscription': subscription.path}
        )

    # ---- listener callbacks ---------------------------------------------
    def _on_message(self, received: Any) -> None:
        if received is None or self.subscription is None:
            return
        try:
            message = to_flow_message(
                received, self.subscription.path, self.config.topic, self.config.options.encoding
            )
        except ValueError as e:
            # payload does not decode with the configured encoding
            received.nack()
            self.report(
                LogEvent.SUBSCRIPTION_ERROR,
                SubscriptionError(f"Could not decode message: {e}"),
                metadata={'message_id': getattr(received, 'message_id', None)}
            )
            return
        self.send(message)
        received.ack()
        self.received += 1
        self.logger.debug(
            event=LogEvent.MESSAGE_RECEIVED,
            message="Forwarded message",
            metadata={'message_id': message['messageId']}
        )

    def _on_error(self, error: BaseException) -> None:
        if error is None:
            return
        self.set_status(NodeStatus.DISCONNECTED)
        self._detach()
        self.report(
            LogEvent.SUBSCRIPTION_ERROR,
            SubscriptionError(f"Subscription listener failed: {error}"),
            metadata={'subscription': self.subscription.path if self.subscription else None}
        )

    def _detach(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            self._listener = None

    # ---- close ----------------------------------------------------------
    def _on_close(self, done: Callable[[], None]) -> None:
        self.set_status(NodeStatus.DISCONNECTED)

        if self._connecting is not None and not self._connecting.done():
            self._connecting.cancel()
        self._connecting = None
        self._detach()

        service, subscription = self._service, self.subscription
        self._service = None
        self._topic = None
        self.subscription = None

        if subscription is not None and subscription.created:
            self.runtime.spawn(self._delete_subscription(service, subscription, done), owner=self)
            return

        self.logger.info(event=LogEvent.NODE_CLOSED, message="Node closed")
        done()

    async def _delete_subscription(
        self,
        service: PubSubService,
        subscription: SubscriptionHandle,
        done: Callable[[], None]
    ) -> None:
        try:
            await service.delete_subscription(subscription)
        except Exception as e:
            self.report(
                LogEvent.SUBSCRIPTION_DELETE_ERROR,
                SubscriptionDeleteError(f"Could not delete subscription '{subscription.path}': {e}"),
                metadata={'subscription': subscription.path}
            )
        else:
            self.logger.info(
                event=LogEvent.SUBSCRIPTION_DELETED,
                message="Auto-created subscription deleted",
                metadata={'subscription': subscription.path}
            )
        finally:
            self.logger.info(event=LogEvent.NODE_CLOSED, message="Node closed")
            done()
