"""
Nimbus Pub/Sub Connectors
=========================

Bounded Context: Flow connectors for Google Cloud Pub/Sub and Cloud IoT

Flow nodes that bridge the runtime's message format to Cloud Pub/Sub topics
and subscriptions, and to Cloud IoT device commands.

Architecture:
- nodes/: Connector nodes (PubSubOutNode, PubSubInNode, IotCommandOutNode)
- gcp/: asyncio facades over the Google clients
- schemas/: Flow <-> Pub/Sub message transforms, device addressing
- logging/: Structured JSON logging

Node types
----------
    google-cloud-pubsub out       PubSubOutNode
    google-cloud-pubsub in        PubSubInNode
    google-cloud-iot-command out  IotCommandOutNode

Example:
    >>> from nimbus_runtime import FlowConfig, FlowRuntime, NodeTypeRegistry
    >>> from nimbus_pubsub import register_nodes
    >>>
    >>> runtime = FlowRuntime(register_nodes(NodeTypeRegistry()))
    >>> await runtime.start(FlowConfig.from_yaml("flow.yaml"))
    >>> runtime.deliver("telemetry-out", {"payload": {"temperature": 21.5}})
    >>> await runtime.stop()
"""

__version__ = "1.0.0"

from .config import CommandOutConfig, PubSubInConfig, PubSubOutConfig, SubscriptionOptions
from .errors import (
    CommandError,
    ConfigurationError,
    ConnectorError,
    PublishError,
    SubscriptionDeleteError,
    SubscriptionError,
    TopicResolutionError,
    UnsupportedConfigurationError,
)
from .identity import ServiceIdentity, resolve_identity
from .logging import LogEvent, StructuredLogger, create_logger
from .nodes import IotCommandOutNode, PubSubInNode, PubSubOutNode, register_nodes
from .status import NodeStatus

__all__ = [
    '__version__',
    # Config
    'CommandOutConfig',
    'PubSubInConfig',
    'PubSubOutConfig',
    'SubscriptionOptions',
    # Errors
    'CommandError',
    'ConfigurationError',
    'ConnectorError',
    'PublishError',
    'SubscriptionDeleteError',
    'SubscriptionError',
    'TopicResolutionError',
    'UnsupportedConfigurationError',
    # Identity
    'ServiceIdentity',
    'resolve_identity',
    # Logging
    'LogEvent',
    'StructuredLogger',
    'create_logger',
    # Nodes
    'IotCommandOutNode',
    'PubSubInNode',
    'PubSubOutNode',
    'register_nodes',
    # Status
    'NodeStatus',
]
