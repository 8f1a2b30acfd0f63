"""
FlowApp - Long-running flow service

Lifecycle:
    1. Load flow file
    2. Create runtime, register connector node types
    3. Start flow (nodes begin resolving topics/subscriptions)
    4. Optionally start the MQTT bridge into one node
    5. Wait for SIGINT / SIGTERM
    6. Graceful shutdown: bridge first, then nodes (in-flight publishes drain)
"""

import asyncio
import json
import logging
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from nimbus_pubsub import register_nodes
from nimbus_runtime import FlowConfig, FlowRuntime, Node, NodeTypeRegistry, StatusDisplay

from .mqtt_bridge import MqttBridge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BridgeOptions:
    """MQTT bridge settings from the command line."""

    broker: str
    topic: str
    node_id: str
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    qos: int = 0

    def __post_init__(self):
        if not 1 <= self.port <= 65535:
            raise ValueError(f"MQTT port must be in [1, 65535], got {self.port}")
        if self.qos not in {0, 1, 2}:
            raise ValueError(f"MQTT QoS must be 0, 1, or 2, got {self.qos}")


def build_runtime() -> FlowRuntime:
    runtime = FlowRuntime(register_nodes(NodeTypeRegistry()))
    runtime.on_status(_log_status)
    runtime.on_output(_log_output)
    return runtime


def _log_status(node: Node, status: StatusDisplay) -> None:
    logger.info(f"[{node.id}] {status.text}")


def _log_output(node: Node, message: Dict[str, Any]) -> None:
    logger.info(f"[{node.id}] output: {json.dumps(message, default=_printable)}")


def _printable(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    return str(value)


class FlowApp:
    """
    Runs a flow until a stop signal arrives.

    Handles:
    - Flow loading and node creation
    - Optional MQTT bridge
    - Signal handling (SIGTERM, SIGINT)
    - Graceful shutdown
    """

    def __init__(self, flow_path: Path, bridge: Optional[BridgeOptions] = None):
        self.flow_path = flow_path
        self.bridge_options = bridge
        self.runtime: Optional[FlowRuntime] = None
        self.bridge: Optional[MqttBridge] = None
        self._stop: Optional[asyncio.Event] = None
        self._stop_requested = False

    def request_stop(self, signum: Optional[int] = None) -> None:
        if signum is not None:
            logger.info(f"Received signal {signal.Signals(signum).name} ({signum})")
        self._stop_requested = True
        if self._stop is not None:
            self._stop.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.request_stop, signum)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                signal.signal(signum, lambda s, _f: loop.call_soon_threadsafe(self.request_stop, s))

    async def run(self) -> int:
        # created here so the event belongs to the running loop
        self._stop = asyncio.Event()
        if self._stop_requested:
            self._stop.set()

        flow = FlowConfig.from_yaml(self.flow_path)
        self.runtime = build_runtime()
        await self.runtime.start(flow)

        try:
            if self.bridge_options is not None:
                if not await self._start_bridge(self.bridge_options):
                    return 1

            self._install_signal_handlers()
            logger.info("Flow running, press Ctrl+C to stop")
            await self._stop.wait()
        finally:
            await self.shutdown()
        return 0

    async def _start_bridge(self, options: BridgeOptions) -> bool:
        if options.node_id not in self.runtime.nodes:
            logger.error(f"Bridge target node not found in flow: {options.node_id}")
            return False

        self.bridge = MqttBridge(
            runtime=self.runtime,
            node_id=options.node_id,
            broker_host=options.broker,
            broker_port=options.port,
            topic=options.topic,
            username=options.username,
            password=options.password,
            qos=options.qos,
        )
        return await self.bridge.start()

    async def shutdown(self) -> None:
        """
        Order:
        1. Stop the MQTT bridge (no new input)
        2. Close all nodes (publishes in flight are awaited)
        """
        if self.bridge is not None:
            self.bridge.stop()
            self.bridge = None

        if self.runtime is not None:
            await self.runtime.stop()
            self.runtime = None
        logger.info("Shutdown complete")


async def inject_once(flow_path: Path, node_id: str, message: Dict[str, Any]) -> int:
    """
    Start a flow, deliver one message to `node_id`, wait for the resulting
    work, and stop.

    Returns:
        Number of errors reported while the flow was running
    """
    flow = FlowConfig.from_yaml(flow_path)
    runtime = build_runtime()
    errors = []
    runtime.on_error(lambda node, error, msg: errors.append(error))

    await runtime.start(flow)
    try:
        # let topics and clients resolve so the message is not merely queued
        await runtime.idle()
        runtime.deliver(node_id, message)
        await runtime.idle()
    finally:
        await runtime.stop()
    return len(errors)
