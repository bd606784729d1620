from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from time import perf_counter
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from ..logging import get_logger
from ..normalize.schema import (
    DEFAULT_APP_SCOPE,
    BridgedConnection,
    ConstructNode,
    Edge,
    NodeDescriptor,
    NodeRole,
    RawConnection,
    ResourceKind,
    Snapshot,
)
from .bridge import DEFERRED_OPERATIONS, bridge_connections, prepare_connections
from .classify import classify_node, connected_paths, describe_node
from .inflights import inflights_by_node
from .ports import DEFAULT_PORT_ALIASES, PortAliasRule, build_edges
from .visibility import VisibilityMap, compute_visibility, find_app_scope

LOG = get_logger(__name__)


@dataclass(frozen=True)
class MapOptions:
    app_scope: str = DEFAULT_APP_SCOPE
    excluded_operations: FrozenSet[str] = DEFERRED_OPERATIONS
    port_aliases: Tuple[PortAliasRule, ...] = DEFAULT_PORT_ALIASES


@dataclass(frozen=True)
class MapResult:
    tree: ConstructNode
    visibility: VisibilityMap
    connections: Tuple[BridgedConnection, ...]
    nodes: Mapping[str, NodeDescriptor]
    roles: Mapping[str, NodeRole]
    root_nodes: Tuple[ConstructNode, ...]
    edges: Tuple[Edge, ...]
    kinds: Mapping[str, ResourceKind] = field(default_factory=lambda: MappingProxyType({}))

    def is_hidden(self, path: str) -> bool:
        return self.visibility.is_hidden(path)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data form handed to the layout engine."""
        return {
            "nodes": {path: desc.to_dict() for path, desc in self.nodes.items()},
            "roles": {path: role.value for path, role in self.roles.items()},
            "rootNodes": [node.path for node in self.root_nodes],
            "edges": [edge.to_dict() for edge in self.edges],
            "hidden": sorted(self.visibility.hidden_paths()),
        }


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    **extra: Any,
) -> None:
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(step)
        elif phase == "complete":
            duration_ms = timers.finish(step)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    LOG.log(level, message, extra=payload)


def index_tree(tree: ConstructNode) -> Dict[str, ConstructNode]:
    """path -> node for every node in the tree, in pre-order."""
    out: Dict[str, ConstructNode] = {}
    stack: List[ConstructNode] = [tree]
    while stack:
        node = stack.pop()
        out[node.path] = node
        stack.extend(reversed(node.iter_children()))
    return out


def build_map(
    tree: ConstructNode,
    connections: Sequence[RawConnection],
    options: Optional[MapOptions] = None,
) -> MapResult:
    """
    Turn a construct tree and its raw connections into a renderable map.

    Hidden endpoints are bridged to their nearest visible ancestor, every node
    gets a role, and connection-bearing nodes list the operations used on them.
    Paths missing from the tree never fail the build: they get the unknown kind
    and bridge by walking their path string upwards.
    """
    opts = options or MapOptions()
    timers = _StepTimers()
    _log_event(logging.DEBUG, "Map build started", step="map", phase="start", timers=timers)

    nodes_by_path = index_tree(tree)
    kinds = MappingProxyType({path: node.kind for path, node in nodes_by_path.items()})

    def resolve_kind(path: str) -> ResourceKind:
        return kinds.get(path, ResourceKind.UNKNOWN)

    visibility = compute_visibility(tree, opts.app_scope)
    _log_event(
        logging.DEBUG,
        "Visibility computed",
        step="visibility",
        phase="complete",
        nodes=len(visibility),
        hidden=len(visibility.hidden_paths()),
    )

    unresolved = sorted(
        {p for c in connections for p in (c.source, c.target) if p not in nodes_by_path}
    )
    if unresolved:
        LOG.debug("Connections reference paths missing from the tree", extra={"paths": unresolved[:20]})

    prepared = prepare_connections(connections, resolve_kind, excluded_operations=opts.excluded_operations)
    bridged = tuple(
        bridge_connections(prepared, is_hidden=visibility.inherits_hidden, resolve_kind=resolve_kind)
    )
    _log_event(
        logging.DEBUG,
        "Connections bridged",
        step="bridge",
        phase="complete",
        raw=len(connections),
        excluded=len(connections) - len(prepared),
        bridged=len(bridged),
    )

    incident = connected_paths(bridged)
    inflights = inflights_by_node(bridged)
    roles: Dict[str, NodeRole] = {}
    descriptors: Dict[str, NodeDescriptor] = {}
    for path, node in nodes_by_path.items():
        role = classify_node(node, path in incident, visibility.is_hidden)
        roles[path] = role
        descriptors[path] = describe_node(node, role, inflights.get(path, ()))

    edges = tuple(build_edges(bridged, is_hidden=visibility.is_hidden, rules=opts.port_aliases))
    root_nodes = find_app_scope(tree, opts.app_scope).iter_children()

    _log_event(
        logging.DEBUG,
        "Map build complete",
        step="map",
        phase="complete",
        timers=timers,
        nodes=len(descriptors),
        edges=len(edges),
    )
    return MapResult(
        tree=tree,
        visibility=visibility,
        connections=bridged,
        nodes=MappingProxyType(descriptors),
        roles=MappingProxyType(roles),
        root_nodes=root_nodes,
        edges=edges,
        kinds=kinds,
    )


def build_map_from_snapshot(snapshot: Snapshot, options: Optional[MapOptions] = None) -> MapResult:
    return build_map(snapshot.tree, snapshot.connections, options)


def summarize(result: MapResult) -> Dict[str, Any]:
    role_counts = Counter(role.value for role in result.roles.values())
    return {
        "nodes": len(result.nodes),
        "hidden_nodes": len(result.visibility.hidden_paths()),
        "bridged_connections": len(result.connections),
        "edges": len(result.edges),
        "roles": {role.value: role_counts.get(role.value, 0) for role in NodeRole},
        "root_nodes": [node.path for node in result.root_nodes],
    }
