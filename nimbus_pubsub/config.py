"""
Configuration schema for the connector nodes.

Each node receives a plain mapping from the host (keys as written in the flow
file, e.g. `keyFilename`, `ackDeadlineSeconds`). The classes here turn that
mapping into an immutable, validated configuration.
"""

import codecs
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import ConfigurationError

# Pub/Sub accepts ack deadlines between 10 seconds and 10 minutes
MIN_ACK_DEADLINE_SECONDS = 10
MAX_ACK_DEADLINE_SECONDS = 600

BASE64_ENCODING = "base64"


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_number(data: Dict[str, Any], key: str, cast=float) -> Optional[Any]:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {value!r}")


@dataclass(frozen=True)
class SubscriptionOptions:
    """
    Optional per-node overrides for the subscribe connector.

    Attributes:
        ack_deadline_seconds: Ack deadline used when creating the subscription
        encoding: Decode payload bytes with this codec ("base64" yields base64 text)
        interval: Max lease-extension period of the streaming pull (seconds,
            at least 1; fractions round up)
        timeout: Per-RPC timeout for topic/subscription admin calls (seconds)
    """

    ack_deadline_seconds: Optional[int] = None
    encoding: Optional[str] = None
    interval: Optional[float] = None
    timeout: Optional[float] = None

    def __post_init__(self):
        """Validate options."""
        if self.ack_deadline_seconds is not None:
            if not MIN_ACK_DEADLINE_SECONDS <= self.ack_deadline_seconds <= MAX_ACK_DEADLINE_SECONDS:
                raise ConfigurationError(
                    f"ackDeadlineSeconds must be in [{MIN_ACK_DEADLINE_SECONDS}, "
                    f"{MAX_ACK_DEADLINE_SECONDS}], got {self.ack_deadline_seconds}"
                )

        if self.encoding is not None and self.encoding != BASE64_ENCODING:
            try:
                codecs.lookup(self.encoding)
            except LookupError:
                raise ConfigurationError(f"Unknown encoding: {self.encoding}")

        if self.interval is not None and self.interval < 1:
            raise ConfigurationError(f"interval must be >= 1 second, got {self.interval}")

        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(f"timeout must be > 0, got {self.timeout}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubscriptionOptions":
        return cls(
            ack_deadline_seconds=_optional_number(data, "ackDeadlineSeconds", int),
            encoding=_optional_str(data.get("encoding")),
            interval=_optional_number(data, "interval"),
            timeout=_optional_number(data, "timeout"),
        )


@dataclass(frozen=True)
class PubSubOutConfig:
    """Publish connector configuration."""

    topic: str
    account: Optional[str] = None
    key_filename: Optional[str] = None

    def __post_init__(self):
        if not self.topic:
            raise ConfigurationError("No topic supplied!")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PubSubOutConfig":
        return cls(
            topic=_optional_str(data.get("topic")) or "",
            account=_optional_str(data.get("account")),
            key_filename=_optional_str(data.get("keyFilename")),
        )


@dataclass(frozen=True)
class PubSubInConfig:
    """Subscribe connector configuration."""

    topic: str
    subscription: Optional[str] = None
    account: Optional[str] = None
    key_filename: Optional[str] = None
    options: SubscriptionOptions = field(default_factory=SubscriptionOptions)

    def __post_init__(self):
        if not self.topic:
            raise ConfigurationError("No topic supplied!")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PubSubInConfig":
        return cls(
            topic=_optional_str(data.get("topic")) or "",
            subscription=_optional_str(data.get("subscription")),
            account=_optional_str(data.get("account")),
            key_filename=_optional_str(data.get("keyFilename")),
            options=SubscriptionOptions.from_dict(data),
        )


@dataclass(frozen=True)
class CommandOutConfig:
    """
    Command connector configuration.

    The device coordinates are defaults; every one of them can be overridden
    by the incoming message.
    """

    account: Optional[str] = None
    key_filename: Optional[str] = None
    project_id: Optional[str] = None
    cloud_region: Optional[str] = None
    registry_id: Optional[str] = None
    device_id: Optional[str] = None
    subfolder: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommandOutConfig":
        return cls(
            account=_optional_str(data.get("account")),
            key_filename=_optional_str(data.get("keyFilename")),
            project_id=_optional_str(data.get("projectId")),
            cloud_region=_optional_str(data.get("cloudRegion")),
            registry_id=_optional_str(data.get("registryId")),
            device_id=_optional_str(data.get("deviceId")),
            subfolder=_optional_str(data.get("subfolder")),
        )
