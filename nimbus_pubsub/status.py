"""
Connector status values and their display hints.
"""

from enum import Enum
from typing import Dict

from nimbus_runtime import StatusDisplay


class NodeStatus(str, Enum):
    """Connectivity/activity state shown on a connector node."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    PUBLISHING = "publishing"

    @property
    def display(self) -> StatusDisplay:
        return STATUS_DISPLAYS[self]


STATUS_DISPLAYS: Dict[NodeStatus, StatusDisplay] = {
    NodeStatus.CONNECTING: StatusDisplay(fill="yellow", shape="dot", text="connecting"),
    NodeStatus.CONNECTED: StatusDisplay(fill="green", shape="dot", text="connected"),
    NodeStatus.DISCONNECTED: StatusDisplay(fill="red", shape="dot", text="disconnected"),
    NodeStatus.PUBLISHING: StatusDisplay(fill="green", shape="ring", text="publishing"),
}
