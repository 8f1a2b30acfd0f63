"""
Common Schema Types
==================

Bounded Context: Shared Data Structures

Types and helpers shared by the outbound (flow -> Pub/Sub) and inbound
(Pub/Sub -> flow) transforms.

Types:
- Timestamp: UTC instant with ISO 8601 and epoch-millisecond views
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class Timestamp:
    """
    Immutable UTC timestamp.

    Flow messages carry time either as epoch milliseconds, an ISO 8601
    string, or a datetime; `from_value` accepts all three.

    Attributes:
        value: Timezone-aware datetime in UTC

    Example:
        >>> Timestamp.from_value(1546300800000).to_iso()
        '2019-01-01T00:00:00.000Z'
    """
    value: datetime

    def __post_init__(self):
        """Validate invariants."""
        if self.value.tzinfo is None:
            raise ValueError("Timestamp value must be timezone-aware")

    @classmethod
    def now(cls) -> "Timestamp":
        """Create timestamp from current time."""
        return cls(value=datetime.now(timezone.utc))

    @classmethod
    def from_value(cls, value: Any) -> "Timestamp":
        """
        Parse a flow message `time` field.

        Raises:
            ValueError: If the value cannot be interpreted as a point in time
        """
        if isinstance(value, Timestamp):
            return value
        if isinstance(value, datetime):
            dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
            return cls(value=dt.astimezone(timezone.utc))
        if isinstance(value, bool):
            raise ValueError(f"Invalid time value: {value!r}")
        if isinstance(value, (int, float)):
            try:
                return cls(value=datetime.fromtimestamp(value / 1000.0, tz=timezone.utc))
            except (OverflowError, OSError, ValueError) as e:
                raise ValueError(f"Time out of range: {value!r}") from e
        if isinstance(value, str):
            text = value.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                return cls.from_value(datetime.fromisoformat(text))
            except ValueError as e:
                raise ValueError(f"Invalid ISO timestamp: {value}") from e
        raise ValueError(f"Invalid time value: {value!r}")

    def to_iso(self) -> str:
        """ISO 8601 in UTC, millisecond precision, `Z` suffix."""
        return self.value.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def to_epoch_ms(self) -> int:
        return int(round(self.value.timestamp() * 1000))


def is_empty_payload(payload: Any) -> bool:
    """
    True for payloads a connector ignores: None, empty text, empty bytes,
    empty list or dict.
    """
    if payload is None:
        return True
    if isinstance(payload, (str, bytes, bytearray, list, tuple, dict)):
        return len(payload) == 0
    return False


def payload_to_bytes(payload: Any) -> bytes:
    """
    Convert a flow payload to bytes: bytes unchanged, text UTF-8 encoded,
    anything else serialised as JSON.

    Raises:
        TypeError: If the payload is not JSON serialisable
    """
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload).encode("utf-8")
