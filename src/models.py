"""
Data models for the GCE node orchestrator.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from errors import GroupProvisioningError, PlatformError

DEFAULT_RESOURCE_PREFIX = "jclouds"


class OperationStatus(Enum):
    """Lifecycle of a platform operation. Transitions are platform-driven."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"


class ResourceKind(Enum):
    """Platform resource kinds handled by the orchestrator."""

    NETWORK = ("networks", False)
    FIREWALL = ("firewalls", False)
    DISK = ("disks", True)
    INSTANCE = ("instances", True)

    def __init__(self, collection: str, zonal: bool):
        self.collection = collection
        self.zonal = zonal

    @classmethod
    def from_collection(cls, collection: str) -> "ResourceKind":
        for kind in cls:
            if kind.collection == collection:
                return kind
        raise ValueError(f"Unknown resource collection: {collection}")


def _last_segment(link: Optional[str]) -> str:
    return link.rstrip("/").split("/")[-1] if link else ""


def _scope_from_link(link: str) -> str:
    """Return the zone/region name embedded in a link, or 'global'."""
    parts = link.split("/")
    for marker in ("zones", "regions"):
        if marker in parts:
            idx = parts.index(marker)
            if idx + 1 < len(parts):
                return parts[idx + 1]
    return "global"


@dataclass(frozen=True)
class OperationHandle:
    """In-flight asynchronous platform action."""

    name: str
    self_link: str
    target_link: str = ""
    operation_type: str = ""  # insert, delete, setTags
    scope: str = "global"  # zone name, region name or "global"
    status: OperationStatus = OperationStatus.PENDING

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "OperationHandle":
        self_link = data.get("selfLink", "")
        return cls(
            name=data.get("name", _last_segment(self_link)),
            self_link=self_link,
            target_link=data.get("targetLink", ""),
            operation_type=data.get("operationType", ""),
            scope=_scope_from_link(self_link) if self_link else "global",
            status=OperationStatus(data.get("status", "PENDING")),
        )


@dataclass
class ResourceRef:
    """Named, URI-identified platform object (network, firewall, disk, instance)."""

    kind: ResourceKind
    name: str
    self_link: str
    scope: str = "global"
    status: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, kind: ResourceKind, data: Dict[str, Any]) -> "ResourceRef":
        self_link = data.get("selfLink", "")
        return cls(
            kind=kind,
            name=data.get("name", _last_segment(self_link)),
            self_link=self_link,
            scope=_scope_from_link(self_link) if self_link else "global",
            status=data.get("status"),
            properties=data,
        )

    @classmethod
    def from_link(cls, link: str) -> "ResourceRef":
        """Build a bare reference from a self-link such as an operation target."""
        parts = (link or "").rstrip("/").split("/")
        if len(parts) < 2 or not parts[-1]:
            raise PlatformError("INVALID_RESPONSE", f"not a resource link: {link!r}")
        try:
            kind = ResourceKind.from_collection(parts[-2])
        except ValueError as e:
            raise PlatformError("INVALID_RESPONSE", str(e)) from e
        return cls(
            kind=kind, name=parts[-1], self_link=link, scope=_scope_from_link(link)
        )

    # Instance helpers

    @property
    def fingerprint(self) -> Optional[str]:
        return self.properties.get("tags", {}).get("fingerprint")

    @property
    def tags(self) -> List[str]:
        return list(self.properties.get("tags", {}).get("items", []))

    @property
    def network_links(self) -> List[str]:
        return [
            ni["network"]
            for ni in self.properties.get("networkInterfaces", [])
            if ni.get("network")
        ]

    @property
    def metadata(self) -> Dict[str, str]:
        items = self.properties.get("metadata", {}).get("items", [])
        return {item["key"]: item.get("value", "") for item in items}

    @property
    def boot_disk_name(self) -> Optional[str]:
        for disk in self.properties.get("disks", []):
            if disk.get("boot"):
                return _last_segment(disk.get("source")) or None
        return None

    def group(self, prefix: str = DEFAULT_RESOURCE_PREFIX) -> Optional[str]:
        return self.metadata.get(f"{prefix}-group")

    def image_id(self, prefix: str = DEFAULT_RESOURCE_PREFIX) -> Optional[str]:
        """Name of the image the instance was booted from."""
        return _last_segment(self.metadata.get(f"{prefix}-image")) or None

    # Network / firewall helpers

    @property
    def ipv4_range(self) -> Optional[str]:
        return self.properties.get("IPv4Range")

    @property
    def network_link(self) -> Optional[str]:
        return self.properties.get("network")


@dataclass(frozen=True)
class NodeSpec:
    """Desired state of a single node. An empty name marks a group template."""

    zone: str
    machine_type: str
    image: str
    name: str = ""
    group: str = ""
    network: str = ""
    disk_size_gb: int = 10
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)
    inbound_ports: List[int] = field(default_factory=lambda: [22])
    ipv4_range: str = "10.0.0.0/8"
    ssh_public_key: Optional[str] = None
    login_user: str = "jclouds"

    @property
    def node_id(self) -> str:
        return f"{self.zone}/{self.name}"


@dataclass
class NodeFailure:
    """A node that could not be created."""

    name: str
    error: Exception


@dataclass
class CreateNodesResult:
    """Aggregate outcome of creating several nodes in a group."""

    group: str
    created: List[ResourceRef] = field(default_factory=list)
    failed: List[NodeFailure] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped

    def raise_for_failures(self) -> None:
        if not self.ok:
            raise GroupProvisioningError(self)
