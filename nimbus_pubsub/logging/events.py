"""
Structured Log Event Types
==========================

Bounded Context: Observability Event Taxonomy

This module defines typed event names for connector logging.

Event Naming Convention:
    <component>.<category>.<action>

    component: node, pubsub, iot, mqtt
    category: topic, publish, subscription, command, ...
    action: resolved, failed, deferred, ...

Example Log Query (CloudWatch Insights):
    fields @timestamp, event, message, metadata.topic
    | filter event = "pubsub.publish.failed"
    | stats count() by bin(5m)
"""

from enum import Enum


class LogEvent(str, Enum):
    """
    Typed log event names for structured logging.

    Categories:
    - node.*: Node lifecycle
    - pubsub.*: Pub/Sub topic, publish and subscription activity
    - iot.*: Device command delivery
    - mqtt.*: MQTT bridge
    - error.*: Error conditions
    """

    # ========== Node Lifecycle ==========
    NODE_CONNECTING = "node.connecting"
    """Node started resolving its remote resources."""

    NODE_CLOSED = "node.closed"
    """Node finished closing."""

    NODE_CLOSE_DEFERRED = "node.close.deferred"
    """Close waits for in-flight work to finish."""

    # ========== Pub/Sub Topic ==========
    TOPIC_RESOLVED = "pubsub.topic.resolved"
    """Topic handle acquired."""

    TOPIC_CONFLICT_RETRY = "pubsub.topic.conflict_retry"
    """Topic creation raced with another creator; retrying once."""

    # ========== Pub/Sub Publish ==========
    MESSAGE_QUEUED = "pubsub.message.queued"
    """Message buffered while the topic is not ready."""

    QUEUE_FLUSHED = "pubsub.queue.flushed"
    """Buffered messages handed to the publisher."""

    QUEUE_DISCARDED = "pubsub.queue.discarded"
    """Buffered messages dropped because the node closed first."""

    PUBLISH_SUCCESS = "pubsub.publish.success"
    """Message acknowledged by the service."""

    PUBLISH_FAILED = "pubsub.publish.failed"
    """Message publication failed."""

    # ========== Pub/Sub Subscription ==========
    SUBSCRIPTION_ATTACHED = "pubsub.subscription.attached"
    """Listener attached to a subscription."""

    SUBSCRIPTION_CREATED = "pubsub.subscription.created"
    """Subscription did not exist and was created."""

    SUBSCRIPTION_DELETED = "pubsub.subscription.deleted"
    """Auto-created subscription removed on close."""

    MESSAGE_RECEIVED = "pubsub.message.received"
    """Message delivered by a subscription and forwarded."""

    # ========== Device Commands ==========
    IOT_CLIENT_READY = "iot.client.ready"
    """Command API client discovered and authorised."""

    COMMAND_SENT = "iot.command.sent"
    """Command delivered to a device."""

    # ========== MQTT Bridge ==========
    MQTT_CONNECTED = "mqtt.connected"
    """MQTT broker connection established."""

    MQTT_DISCONNECTED = "mqtt.disconnected"
    """MQTT broker connection lost."""

    MQTT_MESSAGE_BRIDGED = "mqtt.message.bridged"
    """MQTT message injected into a flow node."""

    # ========== Error Events ==========
    CONFIG_ERROR = "error.config"
    """Node configuration invalid."""

    TOPIC_RESOLUTION_ERROR = "error.topic_resolution"
    """Topic could not be resolved."""

    SUBSCRIPTION_ERROR = "error.subscription"
    """Subscription could not be resolved, or its listener failed."""

    SUBSCRIPTION_DELETE_ERROR = "error.subscription_delete"
    """Auto-created subscription could not be deleted."""

    IOT_CLIENT_ERROR = "error.iot_client"
    """Command API discovery or authorisation failed."""

    COMMAND_ERROR = "error.command"
    """Device command failed."""

    MQTT_CONNECTION_ERROR = "error.mqtt_connection"
    """Failed to connect to MQTT broker."""


# Event categories for filtering
PUBSUB_EVENTS = {
    LogEvent.TOPIC_RESOLVED,
    LogEvent.TOPIC_CONFLICT_RETRY,
    LogEvent.MESSAGE_QUEUED,
    LogEvent.QUEUE_FLUSHED,
    LogEvent.QUEUE_DISCARDED,
    LogEvent.PUBLISH_SUCCESS,
    LogEvent.PUBLISH_FAILED,
    LogEvent.SUBSCRIPTION_ATTACHED,
    LogEvent.SUBSCRIPTION_CREATED,
    LogEvent.SUBSCRIPTION_DELETED,
    LogEvent.MESSAGE_RECEIVED,
}

ERROR_EVENTS = {
    LogEvent.CONFIG_ERROR,
    LogEvent.TOPIC_RESOLUTION_ERROR,
    LogEvent.SUBSCRIPTION_ERROR,
    LogEvent.SUBSCRIPTION_DELETE_ERROR,
    LogEvent.IOT_CLIENT_ERROR,
    LogEvent.COMMAND_ERROR,
    LogEvent.MQTT_CONNECTION_ERROR,
}
