"""
MQTT Bridge
===========

Bounded Context: MQTT -> Flow message injection

Subscribes to an MQTT topic and injects every received message into one flow
node, typically a "google-cloud-pubsub out" node, turning an MQTT feed into
Pub/Sub messages.

Message Flow:
    MQTT Broker -> paho network thread -> call_soon_threadsafe -> FlowRuntime.deliver

Flow message shape:
    {payload, topic, qos, retain, time}
    payload is text when it decodes as UTF-8, bytes otherwise; time is the
    receive time in epoch milliseconds.

Threading:
    paho callbacks run on the paho network thread; delivery is handed to the
    asyncio loop, so nodes only ever run on the loop.
"""

import asyncio
import threading
import time
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from nimbus_pubsub.logging import LogEvent, StructuredLogger, create_logger
from nimbus_runtime import FlowRuntime


def mqtt_to_flow_message(msg: Any, received_at: Optional[float] = None) -> Dict[str, Any]:
    """
    Translate a paho MQTTMessage into a flow message.
    """
    raw = bytes(msg.payload or b"")
    try:
        payload: Any = raw.decode("utf-8")
    except UnicodeDecodeError:
        payload = raw

    return {
        'payload': payload,
        'topic': msg.topic,
        'qos': msg.qos,
        'retain': bool(msg.retain),
        'time': int((received_at if received_at is not None else time.time()) * 1000),
    }


class MqttBridge:
    """
    Feeds an MQTT subscription into a flow node.

    Attributes:
        runtime: FlowRuntime owning the target node
        node_id: Id of the node receiving the messages
        broker_host: MQTT broker hostname
        broker_port: MQTT broker port
        topic: MQTT topic filter to subscribe to
        bridged: Number of messages injected

    Example:
        >>> bridge = MqttBridge(runtime, "telemetry-out", "localhost", "sensors/#")
        >>> if await bridge.start():
        ...     ...
        >>> bridge.stop()
    """

    def __init__(
        self,
        runtime: FlowRuntime,
        node_id: str,
        broker_host: str,
        topic: str,
        broker_port: int = 1883,
        client_id: str = "nimbus_bridge",
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 0,
        logger: Optional[StructuredLogger] = None
    ):
        self.runtime = runtime
        self.node_id = node_id
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topic = topic
        self.qos = qos
        self.logger = logger or create_logger("mqtt-bridge")
        self.bridged = 0

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        if username and password:
            self.client.username_pw_set(username, password)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        self._connected = threading.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def broker(self) -> str:
        return f"{self.broker_host}:{self.broker_port}"

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        if reason_code.is_failure:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message=f"Failed to connect to broker ({reason_code})",
                metadata={'broker': self.broker}
            )
            return

        self._connected.set()
        client.subscribe(self.topic, qos=self.qos)
        self.logger.info(
            event=LogEvent.MQTT_CONNECTED,
            message="Connected to MQTT broker",
            metadata={'broker': self.broker, 'topic': self.topic, 'node_id': self.node_id}
        )

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        self._connected.clear()
        self.logger.warning(
            event=LogEvent.MQTT_DISCONNECTED,
            message="Disconnected from MQTT broker",
            metadata={'broker': self.broker, 'reason_code': str(reason_code)}
        )

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self.deliver, mqtt_to_flow_message(msg))

    def deliver(self, message: Dict[str, Any]) -> None:
        """Inject one flow message into the target node (runs on the loop)."""
        try:
            self.runtime.deliver(self.node_id, message)
        except KeyError as e:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message=f"Bridge target missing: {e}",
                metadata={'node_id': self.node_id}
            )
            return

        self.bridged += 1
        self.logger.debug(
            event=LogEvent.MQTT_MESSAGE_BRIDGED,
            message="Bridged MQTT message",
            metadata={'topic': message['topic'], 'node_id': self.node_id}
        )

    async def start(self, timeout: float = 10.0) -> bool:
        """
        Connect and start the paho network loop.

        Returns:
            True if connected within `timeout` seconds, False otherwise
        """
        loop = asyncio.get_running_loop()
        self._loop = loop
        try:
            await loop.run_in_executor(None, self.client.connect, self.broker_host, self.broker_port)
        except (OSError, ValueError) as e:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message="Failed to connect to broker",
                exc_info=e,
                metadata={'broker': self.broker}
            )
            return False

        self.client.loop_start()
        if await loop.run_in_executor(None, self._connected.wait, timeout):
            return True

        self.logger.error(
            event=LogEvent.MQTT_CONNECTION_ERROR,
            message="Connection timeout",
            metadata={'timeout': timeout, 'broker': self.broker}
        )
        return False

    def stop(self) -> None:
        self.client.loop_stop()
        self.client.disconnect()
        self._loop = None
        self.logger.info(
            event=LogEvent.MQTT_DISCONNECTED,
            message="Bridge stopped",
            metadata={'bridged': self.bridged, 'broker': self.broker}
        )

    def is_connected(self) -> bool:
        return self._connected.is_set()
