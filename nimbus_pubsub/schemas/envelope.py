"""
Pub/Sub Message Envelopes
=========================

Bounded Context: Flow <-> Pub/Sub translation

Outbound:
    flow message {payload, time?, attributes?}
        -> PubSubEnvelope(data=bytes, attributes={..., "timestamp": ISO 8601})

Inbound:
    received Pub/Sub message
        -> flow message {payload, attributes, time, project, topic,
                         subscription, resource, messageId}
"""

import base64
import codecs
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from ..config import BASE64_ENCODING
from .common import Timestamp, payload_to_bytes

TIMESTAMP_ATTRIBUTE = "timestamp"

# Keyword arguments of PublisherClient.publish; not usable as attribute names
RESERVED_ATTRIBUTES = frozenset({"ordering_key", "retry", "timeout"})


@dataclass(frozen=True)
class PubSubEnvelope:
    """
    Data and attributes of one outbound Pub/Sub message.

    Attributes:
        data: Message body
        attributes: String-valued message attributes

    Example:
        >>> env = PubSubEnvelope.from_flow_message({"payload": "on", "time": 1546300800000})
        >>> env.data, env.attributes
        (b'on', {'timestamp': '2019-01-01T00:00:00.000Z'})
    """
    data: bytes
    attributes: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_flow_message(cls, message: Mapping[str, Any], now: Optional[Timestamp] = None) -> "PubSubEnvelope":
        """
        Build the envelope for a flow message.

        The `timestamp` attribute comes from the message `time` field when
        present, else from `now` (default: current time). String-valued
        entries of the message `attributes` mapping are carried over; names
        in RESERVED_ATTRIBUTES are refused.

        Raises:
            ValueError: If `time` is not a valid point in time, or an
                attribute name is reserved
            TypeError: If the payload cannot be serialised
        """
        time_value = message.get("time")
        if time_value is not None:
            timestamp = Timestamp.from_value(time_value)
        else:
            timestamp = now or Timestamp.now()

        attributes: Dict[str, str] = {}
        extra = message.get("attributes")
        if isinstance(extra, Mapping):
            reserved = sorted(RESERVED_ATTRIBUTES.intersection(str(k) for k in extra))
            if reserved:
                raise ValueError(f"Attribute name(s) reserved by the publisher: {', '.join(reserved)}")
            attributes.update({str(k): v for k, v in extra.items() if isinstance(v, str)})
        attributes[TIMESTAMP_ATTRIBUTE] = timestamp.to_iso()

        return cls(data=payload_to_bytes(message.get("payload")), attributes=attributes)


def _split_resource(path: str) -> Dict[str, Optional[str]]:
    # projects/{project}/subscriptions/{subscription}
    parts = path.split("/")
    return {
        'project': parts[-3] if len(parts) >= 3 else None,
        'subscription': parts[-1] if parts else None,
    }


def decode_payload(data: bytes, encoding: Optional[str]) -> Any:
    if not encoding:
        return data
    if encoding == BASE64_ENCODING:
        return base64.b64encode(data).decode("ascii")
    return codecs.decode(data, encoding)


def to_flow_message(
    received: Any,
    subscription_path: str,
    topic: str,
    encoding: Optional[str] = None
) -> Dict[str, Any]:
    """
    Translate a received Pub/Sub message into a flow message.

    Args:
        received: Message delivered by the subscriber (data, attributes,
            publish_time, message_id)
        subscription_path: projects/{project}/subscriptions/{name}
        topic: Topic name as configured on the node
        encoding: Optional payload decoding (see SubscriptionOptions)
    """
    resource = _split_resource(subscription_path)

    publish_time = getattr(received, "publish_time", None)
    time_ms = None
    if isinstance(publish_time, datetime):
        time_ms = Timestamp.from_value(publish_time).to_epoch_ms()

    return {
        'payload': decode_payload(bytes(received.data), encoding),
        'attributes': dict(getattr(received, "attributes", None) or {}),
        'time': time_ms,
        'project': resource['project'],
        'topic': topic,
        'subscription': resource['subscription'],
        'resource': subscription_path,
        'messageId': getattr(received, "message_id", None),
    }
