"""
Structured JSON Logger
=====================

Bounded Context: Observability Infrastructure

Connector logs are emitted as one JSON object per line so they can be queried
by event name and node id in a log aggregator.

Design:
- Wraps Python's logging module
- Typed events (LogEvent enum)
- Per-node context merged into every entry (node_id, node_type)

Example:
    >>> logger = create_logger("pubsub-out", context={'node_id': 'n1'})
    >>> logger.info(
    ...     event=LogEvent.TOPIC_RESOLVED,
    ...     message="Topic ready",
    ...     metadata={'topic': 'projects/p/topics/telemetry'}
    ... )

Output:
    {
        "timestamp": "2026-10-18T15:30:45.123456+00:00",
        "level": "INFO",
        "component": "pubsub-out",
        "event": "pubsub.topic.resolved",
        "message": "Topic ready",
        "context": {"node_id": "n1"},
        "metadata": {"topic": "projects/p/topics/telemetry"}
    }
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .events import LogEvent


class StructuredLogger:
    """
    JSON structured logger for connector nodes.

    Attributes:
        component: Component name (e.g., "pubsub-out", "iot-command")
        context: Fields attached to every entry (node id, node type)
        logger: Underlying Python logger instance
    """

    def __init__(
        self,
        component: str,
        level: Optional[int] = None,
        logger_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize structured logger.

        Args:
            component: Component identifier (e.g., "pubsub-out")
            level: Logging level (default: inherited from the logging config)
            logger_name: Custom logger name (default: nimbus_pubsub.<component>)
            context: Fields merged into every log entry
        """
        self.component = component
        self.context = dict(context or {})
        self.logger_name = logger_name or f"nimbus_pubsub.{component}"
        self.logger = logging.getLogger(self.logger_name)
        if level is not None:
            self.logger.setLevel(level)

        # standalone use: without any configured handler, print JSON to stderr
        if not self.logger.handlers and not logging.getLogger().handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(JSONFormatter())
            self.logger.addHandler(handler)

    def bind(self, **context: Any) -> "StructuredLogger":
        """Return a logger sharing the same sink with extra context fields."""
        merged = dict(self.context)
        merged.update(context)
        bound = StructuredLogger.__new__(StructuredLogger)
        bound.component = self.component
        bound.context = merged
        bound.logger_name = self.logger_name
        bound.logger = self.logger
        return bound

    def _log(
        self,
        level: int,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return

        log_entry: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': logging.getLevelName(level),
            'component': self.component,
            'event': event.value,
            'message': message,
        }

        if self.context:
            log_entry['context'] = self.context

        if metadata:
            log_entry['metadata'] = metadata

        if exc_info is not None:
            log_entry['exception'] = {
                'type': type(exc_info).__name__,
                'message': str(exc_info)
            }

        self.logger.log(level, json.dumps(log_entry, default=str))

    def debug(self, event: LogEvent, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log(logging.DEBUG, event, message, metadata)

    def info(self, event: LogEvent, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        """
        Log INFO level message.

        Example:
            >>> logger.info(
            ...     event=LogEvent.COMMAND_SENT,
            ...     message="Command delivered",
            ...     metadata={'device': 'projects/p/locations/r/registries/g/devices/d'}
            ... )
        """
        self._log(logging.INFO, event, message, metadata)

    def warning(self, event: LogEvent, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log(logging.WARNING, event, message, metadata)

    def error(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        """
        Log ERROR level message.

        Args:
            event: Typed log event
            message: Human-readable message
            metadata: Additional context
            exc_info: Exception instance, summarised as type and message
        """
        self._log(logging.ERROR, event, message, metadata, exc_info)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)


class JSONFormatter(logging.Formatter):
    """
    Pass-through formatter: StructuredLogger already renders JSON.
    """

    def format(self, record: logging.LogRecord) -> str:
        return record.getMessage()


def create_logger(
    component: str,
    level: Optional[int] = None,
    context: Optional[Dict[str, Any]] = None
) -> StructuredLogger:
    """
    Factory function to create configured StructuredLogger.

    Example:
        >>> logger = create_logger("pubsub-in", level=logging.DEBUG)
    """
    return StructuredLogger(component=component, level=level, context=context)
