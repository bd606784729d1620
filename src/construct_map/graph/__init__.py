from __future__ import annotations

from .bridge import bridge_connections, exclude_deferred_operations
from .builder import MapOptions, MapResult, build_map, build_map_from_snapshot, summarize
from .classify import classify_node
from .inflights import node_inflights
from .memo import MapCache, snapshot_hash
from .ports import PortAliasRule, build_edges, port_id
from .visibility import VisibilityMap, compute_visibility

__all__ = [
    "MapCache",
    "MapOptions",
    "MapResult",
    "PortAliasRule",
    "VisibilityMap",
    "bridge_connections",
    "build_edges",
    "build_map",
    "build_map_from_snapshot",
    "classify_node",
    "compute_visibility",
    "exclude_deferred_operations",
    "node_inflights",
    "port_id",
    "snapshot_hash",
    "summarize",
]
