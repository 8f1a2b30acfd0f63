"""
Message schemas and transforms.

Public API
----------
    Timestamp, is_empty_payload, payload_to_bytes
    PubSubEnvelope, to_flow_message, decode_payload
    DeviceTarget
"""

from .command import DeviceTarget
from .common import Timestamp, is_empty_payload, payload_to_bytes
from .envelope import TIMESTAMP_ATTRIBUTE, PubSubEnvelope, decode_payload, to_flow_message

__all__ = [
    'Timestamp',
    'is_empty_payload',
    'payload_to_bytes',
    'TIMESTAMP_ATTRIBUTE',
    'PubSubEnvelope',
    'decode_payload',
    'to_flow_message',
    'DeviceTarget',
]
