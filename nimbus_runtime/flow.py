"""
Flow file schema.

A flow file lists the nodes to start, the wiring between them, and the
credentials they reference.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml


@dataclass(frozen=True)
class FlowConfig:
    """
    Parsed flow definition.

    Immutable after construction (frozen dataclass).
    """

    nodes: List[Dict[str, Any]] = field(default_factory=list)
    credentials: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self):
        """Validate node entries."""
        seen = set()
        for index, node in enumerate(self.nodes):
            if not isinstance(node, dict):
                raise ValueError(f"Node entry #{index} must be a mapping, got {type(node).__name__}")
            if not node.get("type"):
                raise ValueError(f"Node entry #{index} is missing 'type'")
            node_id = node.get("id")
            if not node_id:
                raise ValueError(f"Node entry #{index} ({node['type']}) is missing 'id'")
            if node_id in seen:
                raise ValueError(f"Duplicate node id: {node_id}")
            seen.add(node_id)

        for node in self.nodes:
            for target in node.get("wires") or []:
                if target not in seen:
                    raise ValueError(
                        f"Node '{node['id']}' is wired to unknown node '{target}'"
                    )

    def node(self, node_id: str) -> Dict[str, Any]:
        for node in self.nodes:
            if node["id"] == node_id:
                return node
        raise KeyError(node_id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowConfig":
        data = data or {}
        if not isinstance(data, dict):
            raise ValueError(f"Flow must be a mapping with 'nodes', got {type(data).__name__}")
        return cls(
            nodes=[dict(n) if isinstance(n, dict) else n for n in data.get("nodes") or []],
            credentials={str(k): dict(v) for k, v in (data.get("credentials") or {}).items()},
        )

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "FlowConfig":
        """
        Load a flow from YAML.

        Example YAML:
            nodes:
              - id: "telemetry-out"
                type: "google-cloud-pubsub out"
                topic: "telemetry"
                account: "gcp"

              - id: "commands-in"
                type: "google-cloud-pubsub in"
                topic: "commands"
                subscription: "commands-node"
                account: "gcp"
                encoding: "utf-8"
                wires: ["device-command"]

              - id: "device-command"
                type: "google-cloud-iot-command out"
                account: "gcp"
                projectId: "my-project"
                cloudRegion: "europe-west1"
                registryId: "line-1"
                deviceId: "press-04"

            credentials:
              gcp:
                account: '{"type": "service_account", "project_id": "my-project", ...}'
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Flow file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}")

        return cls.from_dict(data)
