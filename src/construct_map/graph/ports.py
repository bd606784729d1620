from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..normalize.schema import OPERATION_SEPARATOR, BridgedConnection, Edge, ResourceKind

SOURCE = "source"
TARGET = "target"
EDGE_SEPARATOR = "##"


@dataclass(frozen=True)
class PortAliasRule:
    """All operations on a node of this kind share the port named after operation."""

    kind: ResourceKind
    operation: str


# invoke and invokeAsync on a function render as one port
DEFAULT_PORT_ALIASES: Tuple[PortAliasRule, ...] = (PortAliasRule(ResourceKind.FUNCTION, "invoke"),)


def alias_table(rules: Iterable[PortAliasRule]) -> Dict[ResourceKind, str]:
    table: Dict[ResourceKind, str] = {}
    for rule in rules:
        table.setdefault(rule.kind, rule.operation)
    return table


def port_id(
    path: str,
    kind: ResourceKind,
    operation: Optional[str],
    direction: str,
    *,
    is_hidden: Callable[[str], bool],
    aliases: Mapping[ResourceKind, str],
) -> str:
    if direction not in (SOURCE, TARGET):
        raise ValueError(f"direction must be 'source' or 'target', got {direction!r}")
    if is_hidden(path):
        return path
    alias = aliases.get(kind)
    if alias is not None:
        return OPERATION_SEPARATOR.join((path, alias, direction))
    if operation:
        return OPERATION_SEPARATOR.join((path, operation, direction))
    return OPERATION_SEPARATOR.join((path, direction))


def build_edges(
    connections: Sequence[BridgedConnection],
    *,
    is_hidden: Callable[[str], bool],
    rules: Iterable[PortAliasRule] = DEFAULT_PORT_ALIASES,
) -> List[Edge]:
    """Render bridged connections as layout edges; connections that share both ports merge."""
    aliases = alias_table(rules)
    out: List[Edge] = []
    seen = set()
    for c in connections:
        source = port_id(c.source.id, c.source.kind, c.source.operation, SOURCE, is_hidden=is_hidden, aliases=aliases)
        target = port_id(c.target.id, c.target.kind, c.target.operation, TARGET, is_hidden=is_hidden, aliases=aliases)
        edge_id = f"{source}{EDGE_SEPARATOR}{target}"
        if edge_id in seen:
            continue
        seen.add(edge_id)
        out.append(Edge(id=edge_id, source_port=source, target_port=target))
    return out
