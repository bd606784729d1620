from __future__ import annotations

from typing import AbstractSet, Callable, Dict, Iterable, Sequence

from ..normalize.schema import BridgedConnection, ConstructNode, Inflight, NodeDescriptor, NodeRole, ResourceKind

# Kinds that always map to a dedicated role.
KIND_ROLES: Dict[ResourceKind, NodeRole] = {
    ResourceKind.FUNCTION: NodeRole.FUNCTION,
    ResourceKind.AUTO_ID: NodeRole.AUTO_ID,
    ResourceKind.SCHEDULE: NodeRole.SCHEDULER,
    ResourceKind.ENDPOINT: NodeRole.ENDPOINT,
}

# Kinds rendered as a single unit even when they have visible children (routes).
AGGREGATE_KINDS = frozenset({ResourceKind.API})


def connected_paths(connections: Iterable[BridgedConnection]) -> AbstractSet[str]:
    """Paths that appear as source or target of any bridged connection."""
    out = set()
    for c in connections:
        out.add(c.source.id)
        out.add(c.target.id)
    return frozenset(out)


def has_visible_children(node: ConstructNode, is_hidden: Callable[[str], bool]) -> bool:
    return any(not is_hidden(child.path) for child in node.iter_children())


def classify_node(
    node: ConstructNode,
    has_incident_connection: bool,
    is_hidden: Callable[[str], bool],
) -> NodeRole:
    role = KIND_ROLES.get(node.kind)
    if role is not None:
        return role
    if (
        node.kind in AGGREGATE_KINDS
        or has_incident_connection
        or not has_visible_children(node, is_hidden)
    ):
        return NodeRole.CONSTRUCT
    return NodeRole.CONTAINER


def describe_node(node: ConstructNode, role: NodeRole, inflights: Sequence[Inflight]) -> NodeDescriptor:
    if role is NodeRole.CONTAINER:
        return NodeDescriptor(role=role, children=tuple(child.path for child in node.iter_children()))
    if role is NodeRole.CONSTRUCT:
        return NodeDescriptor(role=role, inflights=tuple(inflights))
    return NodeDescriptor(role=role)
