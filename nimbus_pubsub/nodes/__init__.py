"""
Connector nodes and their registration.
"""

from nimbus_runtime import NodeTypeRegistry

from . import command, publish, subscribe
from .base import ConnectorNode
from .command import IotCommandOutNode
from .publish import PubSubOutNode
from .subscribe import PubSubInNode

NODE_TYPES = {
    publish.TYPE_NAME: (PubSubOutNode, "Publish flow messages to a Cloud Pub/Sub topic"),
    subscribe.TYPE_NAME: (PubSubInNode, "Forward messages from a Cloud Pub/Sub subscription"),
    command.TYPE_NAME: (IotCommandOutNode, "Send commands to Cloud IoT devices"),
}


def register_nodes(registry: NodeTypeRegistry) -> NodeTypeRegistry:
    """Register every connector node type with `registry`."""
    for type_name, (factory, description) in NODE_TYPES.items():
        registry.register(type_name, factory, description)
    return registry


__all__ = [
    'ConnectorNode',
    'PubSubOutNode',
    'PubSubInNode',
    'IotCommandOutNode',
    'NODE_TYPES',
    'register_nodes',
]
