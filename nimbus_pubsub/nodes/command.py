"""
Cloud IoT Command Connector
===========================

Bounded Context: Flow -> device command delivery

Node type: "google-cloud-iot-command out"

Each input message becomes one sendCommandToDevice request. The device is
addressed by the message's projectId / cloudRegion / registryId / deviceId
fields, falling back to the values configured on the node. Nothing is sent
back into the flow; failures are reported as node errors.

Example flow entry:
    - id: "device-command"
      type: "google-cloud-iot-command out"
      account: "gcp"
      projectId: "my-project"
      cloudRegion: "europe-west1"
      registryId: "line-1"
      deviceId: "press-04"
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from ..config import CommandOutConfig
from ..errors import CommandError, as_configuration_error
from ..gcp import DeviceCommandService
from ..identity import ServiceIdentity
from ..logging import LogEvent, StructuredLogger
from ..schemas import DeviceTarget, is_empty_payload, payload_to_bytes
from ..status import NodeStatus
from .base import ConnectorNode

TYPE_NAME = "google-cloud-iot-command out"

ServiceFactory = Callable[[ServiceIdentity], Awaitable[DeviceCommandService]]


class IotCommandOutNode(ConnectorNode):
    """
    Sends device commands through the Cloud IoT API.

    Attributes:
        config: Validated CommandOutConfig (None if configuration failed)
        client: DeviceCommandService once discovery finished
        sent: Number of commands acknowledged by the API
    """

    component = "iot-command"

    def __init__(
        self,
        runtime: Any,
        config: Dict[str, Any],
        service_factory: ServiceFactory = DeviceCommandService.discover,
        logger: Optional[StructuredLogger] = None
    ):
        super().__init__(runtime, config, logger)
        self.config: Optional[CommandOutConfig] = None
        self.client: Optional[DeviceCommandService] = None
        self.sent = 0
        self._setup: Optional[asyncio.Task] = None

        self.set_status(NodeStatus.CONNECTING)
        try:
            self.config = CommandOutConfig.from_dict(config)
            identity = self.resolve_identity(self.config.account, self.config.key_filename)
        except ValueError as e:
            self.set_status(NodeStatus.DISCONNECTED)
            self.report(LogEvent.CONFIG_ERROR, as_configuration_error(e))
            return

        self.on("input", self._on_input)
        self.on("close", self._on_close)
        self._setup = self.runtime.spawn(self._discover(service_factory, identity), owner=self)

    async def _discover(self, service_factory: ServiceFactory, identity: ServiceIdentity) -> None:
        try:
            client = await service_factory(identity)
        except Exception as e:
            self.set_status(NodeStatus.DISCONNECTED)
            self.report(LogEvent.IOT_CLIENT_ERROR, CommandError(f"Error during API discovery: {e}"))
            return

        self.client = client
        self.set_status(NodeStatus.CONNECTED)
        self.logger.info(event=LogEvent.IOT_CLIENT_READY, message="Cloud IoT client ready")

    def _on_input(self, message: Optional[Dict[str, Any]]) -> None:
        if not message or is_empty_payload(message.get("payload")):
            return

        if self.client is None:
            self.report(
                LogEvent.COMMAND_ERROR,
                CommandError("Cloud IoT client not ready, command dropped"),
                message
            )
            return

        try:
            target = DeviceTarget.from_message(message, self.config)
            data = payload_to_bytes(message["payload"])
        except (TypeError, ValueError) as e:
            self.report(LogEvent.COMMAND_ERROR, CommandError(f"Could not send command: {e}"), message)
            return

        subfolder = message.get("subfolder") or self.config.subfolder
        self.runtime.spawn(self._send(self.client, target, data, subfolder, message), owner=self)

    async def _send(
        self,
        client: DeviceCommandService,
        target: DeviceTarget,
        data: bytes,
        subfolder: Optional[str],
        message: Dict[str, Any]
    ) -> None:
        try:
            await client.send_command(target, data, subfolder)
        except Exception as e:
            self.report(
                LogEvent.COMMAND_ERROR,
                CommandError(f"Could not send command to {target.resource_name}: {e}"),
                message,
                metadata={'device': target.resource_name}
            )
            return

        self.sent += 1
        self.logger.info(
            event=LogEvent.COMMAND_SENT,
            message="Command sent",
            metadata={'device': target.resource_name, 'bytes': len(data)}
        )

    def _on_close(self, done: Callable[[], None]) -> None:
        if self._setup is not None and not self._setup.done():
            self._setup.cancel()
        self._setup = None
        self.client = None
        self.config = None
        self.remove_listener("input", self._on_input)
        self.set_status(NodeStatus.DISCONNECTED)
        self.logger.info(event=LogEvent.NODE_CLOSED, message="Node closed")
        done()
