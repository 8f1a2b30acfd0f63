"""
FlowRuntime - In-process host for flow nodes

Bounded Context: Node lifecycle + message routing
Responsibilities:
  - Create nodes from a FlowConfig via the NodeTypeRegistry
  - Deliver injected input and route node output along wires
  - Fan out status / error / output events to listeners
  - Track background tasks spawned by nodes
  - Close every node on stop, bounded by a timeout

Threading:
  - Single asyncio event loop; all node callbacks run on it
  - Code on other threads must hop onto the loop (call_soon_threadsafe)
"""

import asyncio
import copy
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .credentials import CredentialStore
from .flow import FlowConfig
from .node import Node, StatusDisplay
from .registry import NodeTypeRegistry

logger = logging.getLogger(__name__)

DEFAULT_CLOSE_TIMEOUT = 15.0

StatusListener = Callable[[Node, StatusDisplay], None]
ErrorListener = Callable[[Node, Any, Optional[Dict[str, Any]]], None]
OutputListener = Callable[[Node, Dict[str, Any]], None]


class FlowRuntime:
    """
    Host runtime that owns a set of nodes.

    Example:
        registry = NodeTypeRegistry()
        register_nodes(registry)

        runtime = FlowRuntime(registry)
        runtime.on_status(lambda node, status: print(node.id, status.text))

        await runtime.start(FlowConfig.from_yaml("flow.yaml"))
        runtime.deliver("telemetry-out", {"payload": "hello"})
        await runtime.stop()
    """

    def __init__(
        self,
        registry: NodeTypeRegistry,
        credentials: Optional[CredentialStore] = None,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
    ):
        self.registry = registry
        self.credentials = credentials or CredentialStore()
        self.close_timeout = close_timeout
        self.nodes: Dict[str, Node] = {}

        self._status_listeners: List[StatusListener] = []
        self._error_listeners: List[ErrorListener] = []
        self._output_listeners: List[OutputListener] = []
        self._tasks: Set[asyncio.Task] = set()

    # ---- listeners ------------------------------------------------------
    def on_status(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def on_error(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def on_output(self, listener: OutputListener) -> None:
        self._output_listeners.append(listener)

    # ---- lifecycle ------------------------------------------------------
    def validate(self, flow: FlowConfig) -> None:
        """
        Raise NodeTypeNotAvailableError if the flow uses an unknown type.
        """
        for node_config in flow.nodes:
            self.registry.get(node_config["type"])

    async def start(self, flow: FlowConfig) -> None:
        """
        Create every node in the flow.

        Credentials from the flow are merged into the store first so nodes can
        resolve them during construction.
        """
        self.validate(flow)
        for ref, fields in flow.credentials.items():
            self.credentials.add(ref, fields)

        for node_config in flow.nodes:
            self.add_node(node_config)

        logger.info(f"Flow started with {len(self.nodes)} node(s)")

    def add_node(self, node_config: Dict[str, Any]) -> Node:
        node = self.registry.create(node_config["type"], self, node_config)
        self.nodes[node.id] = node
        return node

    async def stop(self, timeout: Optional[float] = None) -> None:
        """
        Close all nodes, waiting at most `timeout` seconds for each.
        """
        timeout = self.close_timeout if timeout is None else timeout
        nodes = list(self.nodes.values())
        results = await asyncio.gather(
            *(self._close_node(node, timeout) for node in nodes),
            return_exceptions=True,
        )
        for node, result in zip(nodes, results):
            if isinstance(result, Exception):
                logger.error(f"Error closing node {node.id}: {result}")
        self.nodes.clear()
        logger.info(f"Flow stopped ({len(nodes)} node(s) closed)")

    async def _close_node(self, node: Node, timeout: float) -> None:
        try:
            await asyncio.wait_for(node.close(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Node {node.id} ({node.type}) did not close within {timeout}s")

    # ---- messages -------------------------------------------------------
    def deliver(self, node_id: str, message: Dict[str, Any]) -> None:
        """Inject a message into a node's input."""
        try:
            node = self.nodes[node_id]
        except KeyError:
            raise KeyError(f"Unknown node: {node_id}") from None
        node.receive(message)

    def route(self, source: Node, message: Dict[str, Any]) -> None:
        """
        Route a node's output along its wires.

        The first target receives the original message, every further target a
        deep copy.
        """
        for listener in list(self._output_listeners):
            listener(source, message)

        for index, target_id in enumerate(source.wires):
            target = self.nodes.get(target_id)
            if target is None:
                logger.warning(f"Node {source.id} is wired to missing node {target_id}")
                continue
            target.receive(message if index == 0 else copy.deepcopy(message))

    # ---- host reporting -------------------------------------------------
    def report_status(self, node: Node, display: StatusDisplay) -> None:
        logger.debug(f"[{node.type}:{node.id}] status={display.text}")
        for listener in list(self._status_listeners):
            listener(node, display)

    def report_error(self, node: Node, error: Any, message: Optional[Dict[str, Any]] = None) -> None:
        logger.error(f"[{node.type}:{node.id}] {error}")
        for listener in list(self._error_listeners):
            listener(node, error, message)

    # ---- tasks ----------------------------------------------------------
    def spawn(self, awaitable: Awaitable, owner: Optional[Node] = None) -> asyncio.Task:
        """
        Schedule a coroutine on the running loop and keep a reference to it.

        Unhandled exceptions are reported against `owner`.
        """
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is None:
                return
            if owner is not None:
                self.report_error(owner, exc)
            else:
                logger.error(f"Background task failed: {exc}")

        task.add_done_callback(_done)
        return task

    async def idle(self) -> None:
        """
        Wait until every spawned task (including ones spawned meanwhile) ends.
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            # let done-callbacks run so finished tasks leave the set
            await asyncio.sleep(0)
