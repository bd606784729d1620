from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from ..normalize.schema import DEFAULT_APP_SCOPE, OPERATION_SEPARATOR, PATH_SEPARATOR, ConstructNode


def strip_operation(path: str) -> str:
    """Drop a ``#operation`` suffix (``a/b#get`` -> ``a/b``)."""
    head, sep, _ = path.partition(OPERATION_SEPARATOR)
    return head if sep and head else path


def find_app_scope(tree: ConstructNode, app_scope: str = DEFAULT_APP_SCOPE) -> ConstructNode:
    """
    Return the application scope node: the wrapper's child named app_scope, or
    the tree root itself when the wrapper has no such child.
    """
    return tree.children.get(app_scope, tree)


@dataclass(frozen=True)
class VisibilityMap:
    """Effective hidden flag per path. Paths never inserted query as visible."""

    hidden: Mapping[str, bool]

    def is_hidden(self, path: str) -> bool:
        return self.hidden.get(strip_operation(path)) is True

    def inherits_hidden(self, path: str) -> bool:
        """
        Like is_hidden, but a path missing from the map takes the flag of its
        nearest ancestor that is present.
        """
        current: Optional[str] = strip_operation(path)
        while current is not None:
            if current in self.hidden:
                return self.hidden[current]
            current = parent_path(current)
        return False

    def __contains__(self, path: object) -> bool:
        return path in self.hidden

    def __iter__(self) -> Iterator[str]:
        return iter(self.hidden)

    def __len__(self) -> int:
        return len(self.hidden)

    def hidden_paths(self) -> List[str]:
        return [path for path, hidden in self.hidden.items() if hidden]


def compute_visibility(tree: ConstructNode, app_scope: str = DEFAULT_APP_SCOPE) -> VisibilityMap:
    scope = find_app_scope(tree, app_scope)
    out: Dict[str, bool] = {}
    stack: List[Tuple[ConstructNode, bool]] = [(scope, False)]
    while stack:
        node, parent_hidden = stack.pop()
        hidden = parent_hidden or node.hidden
        out[node.path] = hidden
        for child in reversed(node.iter_children()):
            stack.append((child, hidden))
    return VisibilityMap(hidden=MappingProxyType(out))


def parent_path(path: str) -> Optional[str]:
    if PATH_SEPARATOR not in path:
        return None
    parent = path.rsplit(PATH_SEPARATOR, 1)[0]
    return parent or None
