"""
Flow Node Base
==============

Bounded Context: Host Runtime Contract

This module defines the runtime-side node abstraction that every connector
builds on. A node receives its configuration at construction, registers
handlers for the "input" and "close" events, and reports back to the host
through status, error and log calls.

Design:
- Event handlers registered explicitly (on / remove_listener)
- Close handlers receive a `done` callback that must eventually be invoked
- Coroutine results from input handlers are scheduled on the runtime loop
- Outputs routed by the runtime along the node's wires

Example:
    >>> class EchoNode(Node):
    ...     def __init__(self, runtime, config):
    ...         super().__init__(runtime, config)
    ...         self.on("input", self.send)
"""

import asyncio
import inspect
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .runtime import FlowRuntime

logger = logging.getLogger(__name__)

INPUT_EVENT = "input"
CLOSE_EVENT = "close"


@dataclass(frozen=True)
class StatusDisplay:
    """
    Status badge shown by the host next to a node.

    Attributes:
        fill: Badge colour (green, yellow, red, ...)
        shape: "dot" or "ring"
        text: Short human-readable label
    """
    fill: str
    shape: str
    text: str

    def __post_init__(self):
        """Validate invariants."""
        if self.shape not in ("dot", "ring"):
            raise ValueError(f"StatusDisplay shape must be 'dot' or 'ring', got {self.shape!r}")

    def to_dict(self) -> Dict[str, str]:
        return {'fill': self.fill, 'shape': self.shape, 'text': self.text}


class Node:
    """
    Base class for flow nodes.

    Attributes:
        runtime: Owning FlowRuntime
        id: Unique node identifier
        type: Registered node type name
        name: Optional display name
        wires: Ids of nodes that receive this node's output

    Close protocol:
        Each close handler is called with a `done` callback. `close()` returns
        once every handler has invoked its callback.
    """

    def __init__(self, runtime: "FlowRuntime", config: Dict[str, Any]):
        self.runtime = runtime
        self.id: str = str(config.get("id") or uuid.uuid4().hex)
        self.type: str = str(config.get("type", ""))
        self.name: str = str(config.get("name") or "")
        self.wires: List[str] = [str(w) for w in config.get("wires") or []]

        self._listeners: Dict[str, List[Callable]] = defaultdict(list)
        self.current_status: Optional[StatusDisplay] = None
        self.closed = False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r} type={self.type!r}>"

    # ---- events ---------------------------------------------------------
    def on(self, event: str, handler: Callable) -> None:
        self._listeners[event].append(handler)

    def remove_listener(self, event: str, handler: Callable) -> None:
        try:
            self._listeners[event].remove(handler)
        except ValueError:
            pass

    def listener_count(self, event: str) -> int:
        return len(self._listeners[event])

    def receive(self, message: Optional[Dict[str, Any]]) -> None:
        """
        Dispatch an inbound message to every input handler.

        Handler exceptions are reported through the error channel and never
        propagate to the caller.
        """
        for handler in list(self._listeners[INPUT_EVENT]):
            try:
                result = handler(message)
            except Exception as e:
                self.error(e, message)
                continue
            if inspect.isawaitable(result):
                self.runtime.spawn(result, owner=self)

    async def close(self) -> None:
        """
        Run close handlers and wait until each has signalled completion.
        """
        loop = asyncio.get_running_loop()
        waiters = []

        for handler in list(self._listeners[CLOSE_EVENT]):
            waiter = loop.create_future()

            def done(waiter: asyncio.Future = waiter) -> None:
                if not waiter.done():
                    waiter.set_result(None)

            try:
                handler(done)
            except Exception as e:
                self.error(e)
                done()
            waiters.append(waiter)

        self._listeners.clear()
        self.closed = True
        if waiters:
            await asyncio.gather(*waiters)

    # ---- host reporting -------------------------------------------------
    def status(self, display: StatusDisplay) -> None:
        self.current_status = display
        self.runtime.report_status(self, display)

    def error(self, error: Any, message: Optional[Dict[str, Any]] = None) -> None:
        self.runtime.report_error(self, error, message)

    def log(self, text: str) -> None:
        logger.info("[%s:%s] %s", self.type, self.id, text)

    def warn(self, text: str) -> None:
        logger.warning("[%s:%s] %s", self.type, self.id, text)

    # ---- outbound -------------------------------------------------------
    def send(self, message: Optional[Dict[str, Any]]) -> None:
        if message is None:
            return
        self.runtime.route(self, message)
