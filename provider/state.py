"""Local state storage for awsprov.

State is a JSON document:

    {
        "version": 1,
        "serial": 7,
        "lineage": "6f1c...",
        "resources": {
            "aws_codepipeline.main": {
                "mode": "managed",
                "type": "aws_codepipeline",
                "name": "main",
                "provider": "aws",
                "id": "my-pipeline",
                "attributes": {...},
                "dependencies": ["aws_s3_bucket.artifacts"]
            }
        }
    }

``serial`` is bumped on every write so that a stale copy can be told apart.
"""

import copy
import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import provider.config as config
from provider.exceptions import StateError

logger = logging.getLogger(__name__)


@dataclass
class ResourceState:
    mode: str
    type: str
    name: str
    id: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    provider: str = config.PROVIDER_NAME
    dependencies: List[str] = field(default_factory=list)

    @property
    def address(self) -> str:
        prefix = "data." if self.mode == "data" else ""
        return f"{prefix}{self.type}.{self.name}"

    @property
    def provider_alias(self) -> str:
        _, _, alias = self.provider.partition(".")
        return alias

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "type": self.type,
            "name": self.name,
            "provider": self.provider,
            "id": self.id,
            "attributes": copy.deepcopy(self.attributes),
            "dependencies": list(self.dependencies),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceState":
        return cls(
            mode=data["mode"],
            type=data["type"],
            name=data["name"],
            id=data.get("id", ""),
            attributes=dict(data.get("attributes") or {}),
            provider=data.get("provider", config.PROVIDER_NAME),
            dependencies=list(data.get("dependencies") or []),
        )


@dataclass
class State:
    """In-memory state: resources keyed by address."""

    resources: Dict[str, ResourceState] = field(default_factory=dict)
    serial: int = 0
    lineage: str = field(default_factory=lambda: str(uuid.uuid4()))
    version: int = config.STATE_VERSION

    def get(self, address: str) -> Optional[ResourceState]:
        return self.resources.get(address)

    def set(self, resource: ResourceState) -> None:
        self.resources[resource.address] = resource

    def remove(self, address: str) -> None:
        self.resources.pop(address, None)

    def addresses(self) -> List[str]:
        return sorted(self.resources)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "serial": self.serial,
            "lineage": self.lineage,
            "resources": {a: r.to_dict() for a, r in sorted(self.resources.items())},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "State":
        version = data.get("version", config.STATE_VERSION)
        if version != config.STATE_VERSION:
            raise StateError(f"Unsupported state version {version}")
        state = cls(
            serial=int(data.get("serial", 0)),
            lineage=data.get("lineage") or str(uuid.uuid4()),
            version=version,
        )
        for address, entry in (data.get("resources") or {}).items():
            resource = ResourceState.from_dict(entry)
            if resource.address != address:
                raise StateError(
                    "State entry does not match its address",
                    {"address": address, "entry": resource.address},
                )
            state.set(resource)
        return state


class StateFile:
    """
    JSON state file on local disk.

    Args:
        path: Location of the state file (need not exist yet)
    """

    def __init__(self, path: str = config.DEFAULT_STATE_FILE):
        self.path = path

    def load(self) -> State:
        """
        Read state from disk.

        Returns:
            Parsed State, or an empty State if the file does not exist

        Raises:
            StateError: If the file cannot be parsed
        """
        if not os.path.exists(self.path):
            logger.debug(f"No state file at {self.path}, starting empty")
            return State()
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StateError(f"Could not read state file: {e}", {"path": self.path}) from e
        return State.from_dict(data)

    def save(self, state: State) -> None:
        """
        Write state to disk, bumping its serial.

        The file is written to a sibling temporary file first and then moved
        into place.
        """
        state.serial += 1
        tmp_path = f"{self.path}.tmp"
        try:
            with open(tmp_path, "w") as f:
                json.dump(state.to_dict(), f, indent=2, sort_keys=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StateError(f"Could not write state file: {e}", {"path": self.path}) from e
        logger.debug(f"Saved state serial {state.serial} to {self.path}")
