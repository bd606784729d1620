from __future__ import annotations

import hashlib
from collections import OrderedDict
from typing import Any, Dict, Optional, Sequence

from ..normalize.schema import ConstructNode, RawConnection
from ..normalize.transform import connection_to_dict, stable_json_dumps, tree_rows
from .builder import MapOptions, MapResult, build_map

DEFAULT_CACHE_SIZE = 16


def _options_for_hash(options: MapOptions) -> Dict[str, Any]:
    return {
        "app_scope": options.app_scope,
        "excluded_operations": sorted(options.excluded_operations),
        "port_aliases": [[rule.kind.value, rule.operation] for rule in options.port_aliases],
    }


def snapshot_hash(
    tree: ConstructNode,
    connections: Sequence[RawConnection],
    options: Optional[MapOptions] = None,
) -> str:
    """
    Stable SHA256 over the content of (tree, connections, options).
    Connection order is part of the content: it decides first-seen order in the output.
    """
    payload = {
        "tree": tree_rows(tree),
        "connections": [connection_to_dict(c) for c in connections],
        "options": _options_for_hash(options or MapOptions()),
    }
    return hashlib.sha256(stable_json_dumps(payload).encode("utf-8")).hexdigest()


class MapCache:
    """Bounded LRU of build results keyed by snapshot content hash."""

    def __init__(self, maxsize: int = DEFAULT_CACHE_SIZE) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self._maxsize = maxsize
        self._entries: "OrderedDict[str, MapResult]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def get_or_build(
        self,
        tree: ConstructNode,
        connections: Sequence[RawConnection],
        options: Optional[MapOptions] = None,
    ) -> MapResult:
        key = snapshot_hash(tree, connections, options)
        cached = self._entries.get(key)
        if cached is not None:
            self._entries.move_to_end(key)
            self.hits += 1
            return cached
        self.misses += 1
        result = build_map(tree, connections, options)
        self._entries[key] = result
        if len(self._entries) > self._maxsize:
            self._entries.popitem(last=False)
        return result
