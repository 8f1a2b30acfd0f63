"""
Device command addressing.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..config import CommandOutConfig


@dataclass(frozen=True)
class DeviceTarget:
    """
    Fully qualified Cloud IoT device.

    Example:
        >>> DeviceTarget("p", "europe-west1", "line-1", "press-04").resource_name
        'projects/p/locations/europe-west1/registries/line-1/devices/press-04'
    """
    project_id: str
    cloud_region: str
    registry_id: str
    device_id: str

    def __post_init__(self):
        """Validate invariants."""
        missing = [
            name for name, value in (
                ('projectId', self.project_id),
                ('cloudRegion', self.cloud_region),
                ('registryId', self.registry_id),
                ('deviceId', self.device_id),
            ) if not value
        ]
        if missing:
            raise ValueError(f"Missing device target field(s): {', '.join(missing)}")

    @property
    def registry_name(self) -> str:
        return f"projects/{self.project_id}/locations/{self.cloud_region}/registries/{self.registry_id}"

    @property
    def resource_name(self) -> str:
        return f"{self.registry_name}/devices/{self.device_id}"

    @classmethod
    def from_message(cls, message: Mapping[str, Any], defaults: CommandOutConfig) -> "DeviceTarget":
        """
        Resolve the target from message fields, falling back to node defaults.

        Raises:
            ValueError: If any coordinate is missing from both
        """
        def pick(key: str, default: Optional[str]) -> Optional[str]:
            value = message.get(key)
            return str(value) if value else default

        return cls(
            project_id=pick("projectId", defaults.project_id),
            cloud_region=pick("cloudRegion", defaults.cloud_region),
            registry_id=pick("registryId", defaults.registry_id),
            device_id=pick("deviceId", defaults.device_id),
        )
