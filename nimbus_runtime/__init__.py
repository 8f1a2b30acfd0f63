"""
Nimbus Flow Runtime
===================

Bounded Context: Host runtime for flow nodes

Minimal in-process host that creates nodes from a flow file, delivers
messages, routes outputs along wires and reports node status and errors.

Public API
----------
    Node, StatusDisplay
    NodeTypeRegistry, NodeTypeNotAvailableError
    CredentialStore
    FlowConfig
    FlowRuntime
"""

from .credentials import CredentialStore
from .flow import FlowConfig
from .node import CLOSE_EVENT, INPUT_EVENT, Node, StatusDisplay
from .registry import NodeTypeNotAvailableError, NodeTypeRegistry
from .runtime import DEFAULT_CLOSE_TIMEOUT, FlowRuntime

__all__ = [
    'CLOSE_EVENT',
    'INPUT_EVENT',
    'Node',
    'StatusDisplay',
    'NodeTypeRegistry',
    'NodeTypeNotAvailableError',
    'CredentialStore',
    'FlowConfig',
    'FlowRuntime',
    'DEFAULT_CLOSE_TIMEOUT',
]
