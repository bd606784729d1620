from __future__ import annotations

from dataclasses import replace
from typing import AbstractSet, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from ..logging import get_logger
from ..normalize.schema import BridgedConnection, Endpoint, RawConnection, ResourceKind
from .visibility import parent_path

LOG = get_logger(__name__)

# Asynchronous queue-trigger counterpart of a synchronous invocation.
DEFERRED_OPERATIONS: FrozenSet[str] = frozenset({"invokeAsync"})


def exclude_deferred_operations(
    connections: Iterable[RawConnection],
    excluded: AbstractSet[str] = DEFERRED_OPERATIONS,
) -> List[RawConnection]:
    """Drop connections whose source or target operation is a deferred-invocation alias."""
    return [
        c
        for c in connections
        if c.source_operation not in excluded and c.target_operation not in excluded
    ]


def ascend_to_visible(path: str, is_hidden: Callable[[str], bool]) -> str:
    """Walk up from path until a visible node (or the root) is reached."""
    current = path
    while is_hidden(current):
        parent = parent_path(current)
        if parent is None:
            break
        current = parent
    return current


def connection_identity(connection: BridgedConnection) -> str:
    return (
        f"{connection.source.id}#{connection.source.operation or ''}"
        f"##{connection.target.id}#{connection.target.operation or ''}"
    )


def endpoint_id(endpoint: Endpoint) -> str:
    return endpoint.id


def bridge_connections(
    connections: Iterable[BridgedConnection],
    *,
    is_hidden: Callable[[str], bool],
    get_node_id: Callable[[Endpoint], str] = endpoint_id,
    get_connection_id: Callable[[BridgedConnection], str] = connection_identity,
    resolve_kind: Optional[Callable[[str], ResourceKind]] = None,
) -> List[BridgedConnection]:
    """
    Redirect each endpoint to its nearest visible ancestor, then drop self-loops
    and merge connections that became identical.

    Operations survive ascent unchanged: the credited node changes, the invoked
    operation does not. When resolve_kind is given, the endpoint kind is looked
    up again for the credited node. Output keeps first-seen order.
    """
    out: List[BridgedConnection] = []
    seen: Dict[str, BridgedConnection] = {}
    self_loops = 0
    duplicates = 0

    def _bridge(endpoint: Endpoint) -> Endpoint:
        node_id = get_node_id(endpoint)
        visible_id = ascend_to_visible(node_id, is_hidden)
        if visible_id == endpoint.id:
            return endpoint
        kind = resolve_kind(visible_id) if resolve_kind is not None else endpoint.kind
        return replace(endpoint, id=visible_id, kind=kind)

    for connection in connections:
        bridged = BridgedConnection(source=_bridge(connection.source), target=_bridge(connection.target))
        if bridged.source.id == bridged.target.id:
            self_loops += 1
            continue
        key = get_connection_id(bridged)
        if key in seen:
            duplicates += 1
            continue
        seen[key] = bridged
        out.append(bridged)

    LOG.debug(
        "Bridged connections",
        extra={"bridged": len(out), "self_loops_dropped": self_loops, "duplicates_merged": duplicates},
    )
    return out


def to_endpoints(
    connection: RawConnection,
    resolve_kind: Callable[[str], ResourceKind],
) -> Tuple[Endpoint, Endpoint]:
    return (
        Endpoint(id=connection.source, kind=resolve_kind(connection.source), operation=connection.source_operation),
        Endpoint(id=connection.target, kind=resolve_kind(connection.target), operation=connection.target_operation),
    )


def prepare_connections(
    connections: Iterable[RawConnection],
    resolve_kind: Callable[[str], ResourceKind],
    *,
    excluded_operations: AbstractSet[str] = DEFERRED_OPERATIONS,
) -> List[BridgedConnection]:
    """Filter deferred operations and lift raw connections into endpoint pairs, ready to bridge."""
    prepared: List[BridgedConnection] = []
    for connection in exclude_deferred_operations(connections, excluded_operations):
        source, target = to_endpoints(connection, resolve_kind)
        prepared.append(BridgedConnection(source=source, target=target))
    return prepared
