from __future__ import annotations

import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import yaml

from ..util.errors import InputError, InvalidConnectionError, MalformedTreeError
from .schema import (
    PATH_SEPARATOR,
    ConstructNode,
    RawConnection,
    Snapshot,
    resource_kind_from_tag,
)

_SOURCE_OPERATION_KEYS = ("sourceOp", "sourceOperation", "source_operation")
_TARGET_OPERATION_KEYS = ("targetOp", "targetOperation", "target_operation")


def stable_json_dumps(obj: Any) -> str:
    """
    Dump JSON with sort_keys=True and separators to ensure stable output.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _get(d: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in d:
            return d[k]
    return None


def _kind_tag(raw: Mapping[str, Any]) -> Optional[str]:
    tag = raw.get("resourceKind")
    if tag is None:
        info = raw.get("constructInfo")
        if isinstance(info, Mapping):
            tag = info.get("fqn")
    return tag if isinstance(tag, str) and tag else None


def _declared_hidden(raw: Mapping[str, Any], path: str) -> bool:
    hidden = raw.get("hidden")
    if hidden is None:
        display = raw.get("display")
        if isinstance(display, Mapping):
            hidden = display.get("hidden")
    if hidden is None:
        return False
    if not isinstance(hidden, bool):
        raise MalformedTreeError("'hidden' must be a boolean", path=path)
    return hidden


def _child_items(raw: Mapping[str, Any], path: str) -> List[Tuple[str, Any]]:
    children = raw.get("children")
    if children is None:
        return []
    if isinstance(children, Mapping):
        return [(str(k), v) for k, v in children.items()]
    if isinstance(children, list):
        items: List[Tuple[str, Any]] = []
        names: Set[str] = set()
        for child in children:
            name = child.get("id") if isinstance(child, Mapping) else None
            if not isinstance(name, str) or not name:
                raise MalformedTreeError("list children must carry an 'id'", path=path)
            if name in names:
                raise MalformedTreeError(f"duplicate child name {name!r}", path=path)
            names.add(name)
            items.append((name, child))
        return items
    raise MalformedTreeError("'children' must be an object or a list", path=path)


def parse_tree(raw: Any) -> ConstructNode:
    """Validate a raw construct tree and return its typed, immutable form.

    Node paths come from the ``path`` key, or are derived from the parent path
    and the child's local name. A child path must be its parent path plus one
    segment. Duplicate paths, duplicate child names and node objects reachable
    more than once (cycles in an in-memory structure) raise MalformedTreeError.
    """
    if not isinstance(raw, Mapping):
        raise MalformedTreeError("tree root must be an object")

    root_path = raw.get("path") or raw.get("id")
    if not isinstance(root_path, str) or not root_path:
        raise MalformedTreeError("tree root must carry a 'path' or 'id'")

    # Pre-order pass: validate and assign paths.
    order: List[Tuple[Mapping[str, Any], str, str, List[str]]] = []
    seen_objects: Set[int] = set()
    seen_paths: Set[str] = set()
    stack: List[Tuple[Any, Optional[str], str]] = [(raw, None, root_path.rsplit(PATH_SEPARATOR, 1)[-1])]
    while stack:
        node_raw, parent_path, local_name = stack.pop()
        where = f"{parent_path}{PATH_SEPARATOR}{local_name}" if parent_path else local_name
        if not isinstance(node_raw, Mapping):
            raise MalformedTreeError("node must be an object", path=where)
        if id(node_raw) in seen_objects:
            raise MalformedTreeError("node reachable more than once", path=where)
        seen_objects.add(id(node_raw))

        path = node_raw.get("path")
        if path is None:
            path = root_path if parent_path is None else where
        if not isinstance(path, str) or not path:
            raise MalformedTreeError("'path' must be a non-empty string", path=where)
        if parent_path is not None and path.rpartition(PATH_SEPARATOR)[0] != parent_path:
            raise MalformedTreeError(f"path does not extend parent path {parent_path!r}", path=path)
        if path in seen_paths:
            raise MalformedTreeError("duplicate path", path=path)
        seen_paths.add(path)

        name = node_raw.get("id")
        if not isinstance(name, str) or not name:
            name = local_name

        children = _child_items(node_raw, path)
        order.append((node_raw, path, name, [k for k, _ in children]))
        for child_name, child_raw in reversed(children):
            stack.append((child_raw, path, child_name))

    # Post-order build: every child precedes its parent when walking backwards.
    pending: List[ConstructNode] = []
    for node_raw, path, name, child_keys in reversed(order):
        count = len(child_keys)
        child_nodes = pending[len(pending) - count :] if count else []
        if count:
            del pending[len(pending) - count :]
        children = MappingProxyType(dict(zip(child_keys, reversed(child_nodes))))
        tag = _kind_tag(node_raw)
        node = ConstructNode(
            path=path,
            name=name,
            kind=resource_kind_from_tag(tag),
            kind_tag=tag,
            hidden=_declared_hidden(node_raw, path),
            children=children,
        )
        pending.append(node)

    return pending[0]


def _optional_str(record: Mapping[str, Any], keys: Sequence[str], index: Optional[int]) -> Optional[str]:
    value = _get(record, *keys)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidConnectionError(f"'{keys[0]}' must be a string", index=index)
    return value or None


def parse_connection(record: Any, index: Optional[int] = None) -> RawConnection:
    if not isinstance(record, Mapping):
        raise InvalidConnectionError("expected an object", index=index)
    source = record.get("source")
    target = record.get("target")
    if not isinstance(source, str) or not source:
        raise InvalidConnectionError("'source' must be a non-empty string", index=index)
    if not isinstance(target, str) or not target:
        raise InvalidConnectionError("'target' must be a non-empty string", index=index)
    name = record.get("name", "")
    if name is None:
        name = ""
    if not isinstance(name, str):
        raise InvalidConnectionError("'name' must be a string", index=index)
    return RawConnection(
        source=source,
        target=target,
        name=name,
        source_operation=_optional_str(record, _SOURCE_OPERATION_KEYS, index),
        target_operation=_optional_str(record, _TARGET_OPERATION_KEYS, index),
    )


def parse_connections(raw: Any) -> Tuple[RawConnection, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise InvalidConnectionError("connections must be a list")
    return tuple(parse_connection(record, index) for index, record in enumerate(raw))


def parse_snapshot(raw: Any) -> Snapshot:
    if not isinstance(raw, Mapping):
        raise InputError("snapshot must be an object with 'tree' and 'connections'")
    if "tree" not in raw:
        raise InputError("snapshot is missing 'tree'")
    return Snapshot(tree=parse_tree(raw["tree"]), connections=parse_connections(raw.get("connections")))


def load_snapshot(path: Path) -> Snapshot:
    if not path.exists():
        raise InputError(f"Snapshot file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except RecursionError as e:
        raise InputError(f"Snapshot nesting too deep to parse: {path}") from e
    except (ValueError, yaml.YAMLError) as e:
        raise InputError(f"Failed to parse snapshot {path}: {e}") from e
    return parse_snapshot(data)


def connection_to_dict(connection: RawConnection) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "source": connection.source,
        "target": connection.target,
        "name": connection.name,
    }
    if connection.source_operation is not None:
        out["sourceOp"] = connection.source_operation
    if connection.target_operation is not None:
        out["targetOp"] = connection.target_operation
    return out


def tree_rows(tree: ConstructNode) -> List[Dict[str, Any]]:
    """Flat pre-order rows of a parsed tree, used for content hashing."""
    rows: List[Dict[str, Any]] = []
    stack: List[Tuple[ConstructNode, Optional[str], str]] = [(tree, None, tree.name)]
    while stack:
        node, parent, key = stack.pop()
        rows.append(
            {
                "path": node.path,
                "parent": parent,
                "key": key,
                "id": node.name,
                "kind": node.kind.value,
                "hidden": node.hidden,
            }
        )
        for child_key, child in reversed(list(node.children.items())):
            stack.append((child, node.path, child_key))
    return rows
