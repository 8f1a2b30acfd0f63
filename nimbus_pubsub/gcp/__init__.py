"""
Google Cloud service adapters used by the connector nodes.
"""

from .iot import API_VERSION, DISCOVERY_API, DeviceCommandService
from .pubsub import PubSubService, SubscriptionHandle, SubscriptionListener, TopicHandle

__all__ = [
    'API_VERSION',
    'DISCOVERY_API',
    'DeviceCommandService',
    'PubSubService',
    'SubscriptionHandle',
    'SubscriptionListener',
    'TopicHandle',
]
