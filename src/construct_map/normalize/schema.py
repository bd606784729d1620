from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

PATH_SEPARATOR = "/"
OPERATION_SEPARATOR = "#"
DEFAULT_APP_SCOPE = "Default"


class ResourceKind(str, Enum):
    FUNCTION = "function"
    AUTO_ID = "auto_id"
    SCHEDULE = "schedule"
    ENDPOINT = "endpoint"
    API = "api"
    BUCKET = "bucket"
    QUEUE = "queue"
    TOPIC = "topic"
    COUNTER = "counter"
    TABLE = "table"
    WEBSITE = "website"
    UNKNOWN = "unknown"


# External kind tags, as emitted by the SDK tree, mapped once at ingress.
_SDK_KIND_TAGS: Dict[str, ResourceKind] = {
    "@winglang/sdk.cloud.Function": ResourceKind.FUNCTION,
    "@winglang/sdk.std.AutoIdResource": ResourceKind.AUTO_ID,
    "@winglang/sdk.cloud.Schedule": ResourceKind.SCHEDULE,
    "@winglang/sdk.cloud.Endpoint": ResourceKind.ENDPOINT,
    "@winglang/sdk.cloud.Api": ResourceKind.API,
    "@winglang/sdk.cloud.Bucket": ResourceKind.BUCKET,
    "@winglang/sdk.cloud.Queue": ResourceKind.QUEUE,
    "@winglang/sdk.cloud.Topic": ResourceKind.TOPIC,
    "@winglang/sdk.cloud.Counter": ResourceKind.COUNTER,
    "@winglang/sdk.ex.Table": ResourceKind.TABLE,
    "@winglang/sdk.cloud.Website": ResourceKind.WEBSITE,
}

_SHORT_KIND_TAGS: Dict[str, ResourceKind] = {
    kind.value: kind for kind in ResourceKind if kind is not ResourceKind.UNKNOWN
}
_SHORT_KIND_TAGS.update({"autoid": ResourceKind.AUTO_ID, "scheduler": ResourceKind.SCHEDULE})


def resource_kind_from_tag(tag: Optional[str]) -> ResourceKind:
    """Map an external kind tag (fully-qualified or short form) onto ResourceKind."""
    if not tag:
        return ResourceKind.UNKNOWN
    kind = _SDK_KIND_TAGS.get(tag)
    if kind is not None:
        return kind
    return _SHORT_KIND_TAGS.get(tag.strip().lower(), ResourceKind.UNKNOWN)


class NodeRole(str, Enum):
    CONTAINER = "container"
    AUTO_ID = "autoId"
    FUNCTION = "function"
    SCHEDULER = "scheduler"
    ENDPOINT = "endpoint"
    CONSTRUCT = "construct"


@dataclass(frozen=True, eq=False)
class ConstructNode:
    path: str
    name: str
    kind: ResourceKind = ResourceKind.UNKNOWN
    kind_tag: Optional[str] = None
    hidden: bool = False
    children: Mapping[str, "ConstructNode"] = field(default_factory=lambda: MappingProxyType({}), repr=False)

    def iter_children(self) -> Tuple["ConstructNode", ...]:
        return tuple(self.children.values())


@dataclass(frozen=True)
class RawConnection:
    source: str
    target: str
    name: str = ""
    source_operation: Optional[str] = None
    target_operation: Optional[str] = None


@dataclass(frozen=True)
class Endpoint:
    id: str
    kind: ResourceKind = ResourceKind.UNKNOWN
    operation: Optional[str] = None


@dataclass(frozen=True)
class BridgedConnection:
    source: Endpoint
    target: Endpoint

    @property
    def identity(self) -> Tuple[str, Optional[str], str, Optional[str]]:
        return (self.source.id, self.source.operation, self.target.id, self.target.operation)


@dataclass(frozen=True)
class Inflight:
    id: str
    name: str
    source_occupied: bool = False
    target_occupied: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "sourceOccupied": self.source_occupied,
            "targetOccupied": self.target_occupied,
        }


@dataclass(frozen=True)
class NodeDescriptor:
    role: NodeRole
    children: Tuple[str, ...] = ()
    inflights: Tuple[Inflight, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.role.value}
        if self.role is NodeRole.CONTAINER:
            out["children"] = list(self.children)
        elif self.role is NodeRole.CONSTRUCT:
            out["inflights"] = [i.to_dict() for i in self.inflights]
        return out


@dataclass(frozen=True)
class Edge:
    id: str
    source_port: str
    target_port: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "sources": [self.source_port], "targets": [self.target_port]}


@dataclass(frozen=True)
class Snapshot:
    tree: ConstructNode
    connections: Tuple[RawConnection, ...]


@dataclass(frozen=True)
class OutputPaths:
    root: Path
    nodes_jsonl: Path
    edges_jsonl: Path
    summary_json: Path


def resolve_output_paths(outdir: Path) -> OutputPaths:
    return OutputPaths(
        root=outdir,
        nodes_jsonl=outdir / "map_nodes.jsonl",
        edges_jsonl=outdir / "map_edges.jsonl",
        summary_json=outdir / "map_summary.json",
    )
