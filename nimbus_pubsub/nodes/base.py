"""
Base Connector Node
===================

Bounded Context: Connector infrastructure

Shared plumbing for the Pub/Sub and IoT connector nodes.

Design:
- Status changes go through NodeStatus (fixed display hints)
- Errors are reported to the host and logged as structured events, never raised
- Identity resolved from the host credential store or a key file

Architecture:
    ConnectorNode (base)
        ↓
    PubSubOutNode, PubSubInNode, IotCommandOutNode
"""

from typing import Any, Dict, Optional

from nimbus_runtime import Node

from ..identity import ServiceIdentity, resolve_identity
from ..logging import LogEvent, StructuredLogger, create_logger
from ..status import NodeStatus


class ConnectorNode(Node):
    """
    Base class for connector nodes.

    Attributes:
        state: Last NodeStatus shown (None before the first status)
        logger: Structured logger bound to this node's id and type
    """

    component = "connector"

    def __init__(self, runtime: Any, config: Dict[str, Any], logger: Optional[StructuredLogger] = None):
        super().__init__(runtime, config)
        self.state: Optional[NodeStatus] = None
        self.logger = (logger or create_logger(self.component)).bind(node_id=self.id, node_type=self.type)

    def set_status(self, status: NodeStatus) -> None:
        self.state = status
        self.status(status.display)

    def report(
        self,
        event: LogEvent,
        error: BaseException,
        message: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log a structured error and hand it to the host error channel."""
        self.logger.error(event=event, message=str(error), metadata=metadata, exc_info=error)
        self.error(error, message)

    def resolve_identity(self, account: Optional[str], key_filename: Optional[str]) -> ServiceIdentity:
        return resolve_identity(self.runtime.credentials, account, key_filename)
