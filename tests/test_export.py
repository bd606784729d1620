from __future__ import annotations

import json

import pytest

from construct_map.export.graph import iter_edge_rows, iter_node_rows, write_map
from construct_map.graph.builder import build_map
from construct_map.normalize.schema import RawConnection
from construct_map.normalize.transform import parse_tree
from construct_map.util.errors import ExportError


def _result():
    tree = parse_tree(
        {
            "path": "app",
            "children": {
                "Queue": {"resourceKind": "queue"},
                "Fn": {"resourceKind": "function"},
                "Lib": {"hidden": True, "children": {"util": {}}},
            },
        }
    )
    conns = [
        RawConnection(source="app/Fn", target="app/Queue", name="push()", target_operation="push"),
        RawConnection(source="app/Lib/util", target="app/Queue", name="peek()", target_operation="peek"),
    ]
    return build_map(tree, conns)


def test_node_rows_are_sorted_and_carry_kind_and_visibility() -> None:
    rows = list(iter_node_rows(_result()))

    assert [r["path"] for r in rows] == ["app", "app/Fn", "app/Lib", "app/Lib/util", "app/Queue"]
    queue = rows[-1]
    assert queue["kind"] == "queue"
    assert queue["hidden"] is False
    assert queue["type"] == "construct"
    assert [i["name"] for i in queue["inflights"]] == ["push", "peek"]
    assert rows[2]["hidden"] is True
    assert rows[1] == {"path": "app/Fn", "kind": "function", "kind_tag": "function", "hidden": False, "type": "function"}
    assert rows[0]["kind_tag"] is None


def test_edge_rows_follow_bridged_order() -> None:
    rows = list(iter_edge_rows(_result()))

    assert rows == [
        {"id": "app/Fn#invoke#source##app/Queue#push#target", "sources": ["app/Fn#invoke#source"], "targets": ["app/Queue#push#target"]},
        {"id": "app#source##app/Queue#peek#target", "sources": ["app#source"], "targets": ["app/Queue#peek#target"]},
    ]


def test_write_map_files(tmp_path) -> None:
    outdir = tmp_path / "out"
    paths = write_map(outdir, _result(), snapshot_hash="abc123")

    node_lines = paths.nodes_jsonl.read_text(encoding="utf-8").splitlines()
    edge_lines = paths.edges_jsonl.read_text(encoding="utf-8").splitlines()
    assert len(node_lines) == 5
    assert len(edge_lines) == 2
    assert json.loads(node_lines[0])["path"] == "app"

    summary = json.loads(paths.summary_json.read_text(encoding="utf-8"))
    assert summary["snapshot_hash"] == "abc123"
    assert summary["edges"] == 2
    assert summary["hidden_nodes"] == 2


def test_write_map_fails_with_export_error(tmp_path) -> None:
    blocker = tmp_path / "out"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(ExportError):
        write_map(blocker, _result())


def test_node_rows_carry_the_raw_kind_tag() -> None:
    tree = parse_tree(
        {"path": "app", "children": {"Api": {"constructInfo": {"fqn": "@winglang/sdk.cloud.Api"}}, "Lib": {}}}
    )
    rows = {r["path"]: r for r in iter_node_rows(build_map(tree, []))}

    assert rows["app/Api"]["kind"] == "api"
    assert rows["app/Api"]["kind_tag"] == "@winglang/sdk.cloud.Api"
    assert rows["app/Lib"]["kind_tag"] is None
