from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional

from ..graph.builder import MapResult, index_tree, summarize
from ..normalize.schema import OutputPaths, resolve_output_paths
from ..normalize.transform import stable_json_dumps
from ..util.errors import ExportError

Row = Dict[str, Any]


def iter_node_rows(result: MapResult) -> Iterator[Row]:
    """One row per node, sorted by path."""
    nodes_by_path = index_tree(result.tree)
    for path in sorted(result.nodes):
        desc = result.nodes[path]
        kind = result.kinds.get(path)
        node = nodes_by_path.get(path)
        row: Row = {
            "path": path,
            "kind": kind.value if kind is not None else None,
            "kind_tag": node.kind_tag if node is not None else None,
            "hidden": result.is_hidden(path),
        }
        row.update(desc.to_dict())
        yield row


def iter_edge_rows(result: MapResult) -> Iterator[Row]:
    for edge in result.edges:
        yield edge.to_dict()


def _write_jsonl(path: Path, rows: Iterable[Row]) -> int:
    count = 0
    with path.open("w", encoding="utf-8") as f:
        for row in rows:
            f.write(stable_json_dumps(row))
            f.write("\n")
            count += 1
    return count


def write_map(outdir: Path, result: MapResult, *, snapshot_hash: Optional[str] = None) -> OutputPaths:
    """
    Write map_nodes.jsonl, map_edges.jsonl and map_summary.json under outdir.
    """
    paths = resolve_output_paths(outdir)
    try:
        outdir.mkdir(parents=True, exist_ok=True)
        _write_jsonl(paths.nodes_jsonl, iter_node_rows(result))
        _write_jsonl(paths.edges_jsonl, iter_edge_rows(result))
        summary = summarize(result)
        if snapshot_hash:
            summary["snapshot_hash"] = snapshot_hash
        paths.summary_json.write_text(json.dumps(summary, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write map exports to {outdir}: {e}") from e
    return paths
