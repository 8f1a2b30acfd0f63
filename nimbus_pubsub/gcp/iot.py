"""
Cloud IoT device command client.

The Cloud IoT API is reached through the Google API discovery client; both
discovery and request execution are blocking and run in the loop's default
executor.
"""

import asyncio
import base64
import functools
from typing import Any, Dict, Optional

from googleapiclient import discovery

from ..identity import CLOUD_PLATFORM_SCOPE, ServiceIdentity
from ..schemas import DeviceTarget

API_NAME = "cloudiot"
API_VERSION = "v1"
DISCOVERY_API = "https://cloudiot.googleapis.com/$discovery/rest"


class DeviceCommandService:
    """
    Authorised Cloud IoT client.

    Example:
        >>> service = await DeviceCommandService.discover(identity)
        >>> await service.send_command(target, b'{"led": "on"}')
    """

    def __init__(self, client: Any):
        self._client = client

    @classmethod
    async def discover(cls, identity: ServiceIdentity) -> "DeviceCommandService":
        """Authorise with the cloud-platform scope and build the API client."""
        credentials = identity.credentials(scopes=[CLOUD_PLATFORM_SCOPE])
        loop = asyncio.get_running_loop()
        client = await loop.run_in_executor(
            None,
            functools.partial(
                discovery.build,
                API_NAME,
                API_VERSION,
                credentials=credentials,
                discoveryServiceUrl=f"{DISCOVERY_API}?version={API_VERSION}",
                cache_discovery=False,
            ),
        )
        return cls(client)

    @staticmethod
    def build_request(target: DeviceTarget, data: bytes, subfolder: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"binaryData": base64.b64encode(data).decode("ascii")}
        if subfolder:
            body["subfolder"] = subfolder
        return {"name": target.resource_name, "body": body}

    async def send_command(self, target: DeviceTarget, data: bytes, subfolder: Optional[str] = None) -> Any:
        """
        Send one command to one device.

        The device must be subscribed to the wildcard commands subfolder, or
        `subfolder` must name one it is subscribed to.
        """
        request = self.build_request(target, data, subfolder)
        call = (
            self._client.projects()
            .locations()
            .registries()
            .devices()
            .sendCommandToDevice(name=request["name"], body=request["body"])
        )
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, call.execute)
