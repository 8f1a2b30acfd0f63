"""
NodeTypeRegistry - Explicit node type registration

Bounded Context: Node type registration and lookup
Responsibilities:
  - Register node types with their factories
  - Reject unknown types before a flow is started
  - Provide introspection (available_types, get_help)

Threading: Thread-safe (uses lock for write operations)
Pattern: Registry with explicit registration
"""

import threading
from typing import Any, Callable, Dict, Set

NodeFactory = Callable[..., Any]


class NodeTypeNotAvailableError(Exception):
    """Raised when a flow references a node type that was never registered"""
    pass


class NodeTypeRegistry:
    """
    Registry of node types available to a FlowRuntime.

    Key Features:
      - Fail-fast: Unknown types rejected when the flow is loaded
      - Introspection: Can query registered types at runtime
      - Factories: Any callable taking (runtime, config) works, so tests can
        register functools.partial() wrappers with injected clients

    Example:
        registry = NodeTypeRegistry()
        registry.register("google-cloud-pubsub out", PubSubOutNode,
                          "Publish messages to a Pub/Sub topic")

        node = registry.create("google-cloud-pubsub out", runtime, config)
    """

    def __init__(self):
        self._factories: Dict[str, NodeFactory] = {}
        self._descriptions: Dict[str, str] = {}
        self._lock = threading.Lock()

    def register(self, type_name: str, factory: NodeFactory, description: str = "") -> None:
        """
        Register a node type with its factory.

        Args:
            type_name: Type name used in flow files (e.g. "google-cloud-pubsub out")
            factory: Callable building the node from (runtime, config)
            description: Human-readable description for help text

        Raises:
            ValueError: If type already registered (double registration)
        """
        with self._lock:
            if type_name in self._factories:
                raise ValueError(f"Node type '{type_name}' already registered")

            self._factories[type_name] = factory
            self._descriptions[type_name] = description

    def get(self, type_name: str) -> NodeFactory:
        """
        Look up the factory for a node type.

        Raises:
            NodeTypeNotAvailableError: If type not registered
        """
        if type_name not in self._factories:
            raise NodeTypeNotAvailableError(
                f"Node type '{type_name}' not available. "
                f"Available types: {', '.join(sorted(self.available_types))}"
            )
        return self._factories[type_name]

    def create(self, type_name: str, runtime: Any, config: Dict[str, Any]) -> Any:
        return self.get(type_name)(runtime, config)

    def is_available(self, type_name: str) -> bool:
        return type_name in self._factories

    @property
    def available_types(self) -> Set[str]:
        """Snapshot of registered type names."""
        return set(self._factories.keys())

    def get_help(self) -> Dict[str, str]:
        return dict(self._descriptions)

    def count(self) -> int:
        return len(self._factories)
