from __future__ import annotations

from typing import Dict, Iterable, List, Sequence, Tuple

from ..normalize.schema import OPERATION_SEPARATOR, BridgedConnection, Inflight


def node_inflights(path: str, connections: Sequence[BridgedConnection]) -> List[Inflight]:
    """
    Distinct operations used at a node: names used as a target come first, then
    names used only as a source, each in first-seen order.
    """
    names: List[str] = []
    as_source = set()
    as_target = set()
    for c in connections:
        if c.target.id == path and c.target.operation:
            as_target.add(c.target.operation)
            if c.target.operation not in names:
                names.append(c.target.operation)
    for c in connections:
        if c.source.id == path and c.source.operation:
            as_source.add(c.source.operation)
            if c.source.operation not in names:
                names.append(c.source.operation)
    return [
        Inflight(
            id=f"{path}{OPERATION_SEPARATOR}{name}",
            name=name,
            source_occupied=name in as_source,
            target_occupied=name in as_target,
        )
        for name in names
    ]


def inflights_by_node(connections: Iterable[BridgedConnection]) -> Dict[str, Tuple[Inflight, ...]]:
    """Inflights for every node incident to a connection, in one pass over the list."""
    conns = list(connections)
    targets: Dict[str, List[str]] = {}
    sources: Dict[str, List[str]] = {}
    for c in conns:
        if c.target.operation:
            ops = targets.setdefault(c.target.id, [])
            if c.target.operation not in ops:
                ops.append(c.target.operation)
        if c.source.operation:
            ops = sources.setdefault(c.source.id, [])
            if c.source.operation not in ops:
                ops.append(c.source.operation)

    out: Dict[str, Tuple[Inflight, ...]] = {}
    for path in sorted(set(targets) | set(sources)):
        target_ops = targets.get(path, [])
        source_ops = sources.get(path, [])
        names = target_ops + [name for name in source_ops if name not in target_ops]
        out[path] = tuple(
            Inflight(
                id=f"{path}{OPERATION_SEPARATOR}{name}",
                name=name,
                source_occupied=name in source_ops,
                target_occupied=name in target_ops,
            )
            for name in names
        )
    return out
