from __future__ import annotations

from construct_map.graph.builder import MapOptions, build_map, build_map_from_snapshot, index_tree, summarize
from construct_map.graph.ports import PortAliasRule
from construct_map.normalize.schema import NodeRole, RawConnection, ResourceKind
from construct_map.normalize.transform import parse_snapshot, parse_tree


def _snapshot() -> dict:
    return {
        "tree": {
            "id": "root",
            "path": "root",
            "children": {
                "Default": {
                    "id": "Default",
                    "path": "root/Default",
                    "children": {
                        "Api": {
                            "constructInfo": {"fqn": "@winglang/sdk.cloud.Api"},
                            "children": {
                                "get": {"display": {"hidden": True}},
                                "Handler": {"constructInfo": {"fqn": "@winglang/sdk.cloud.Function"}},
                            },
                        },
                        "Store": {
                            "children": {
                                "Bucket": {"resourceKind": "bucket"},
                                "Counter": {"resourceKind": "counter", "display": {"hidden": True}},
                            }
                        },
                        "Worker": {"resourceKind": "function"},
                        "Ids": {"resourceKind": "autoid"},
                    },
                }
            },
        },
        "connections": [
            {"source": "root/Default/Api/get", "target": "root/Default/Worker", "name": "invoke()", "targetOp": "invoke"},
            {"source": "root/Default/Api/Handler", "target": "root/Default/Worker", "name": "invokeAsync()", "targetOp": "invokeAsync"},
            {"source": "root/Default/Worker", "target": "root/Default/Store/Bucket", "name": "put()", "targetOp": "put"},
            {"source": "root/Default/Worker", "target": "root/Default/Store/Counter", "name": "inc()", "targetOp": "inc"},
            {"source": "root/Default/Worker", "target": "root/Default/Store/Bucket", "name": "put()", "targetOp": "put"},
        ],
    }


def test_end_to_end_build() -> None:
    result = build_map_from_snapshot(parse_snapshot(_snapshot()))

    # invokeAsync is excluded; the hidden route bridges to the Api; duplicate put merges
    assert [(c.source.id, c.target.id, c.target.operation) for c in result.connections] == [
        ("root/Default/Api", "root/Default/Worker", "invoke"),
        ("root/Default/Worker", "root/Default/Store/Bucket", "put"),
        ("root/Default/Worker", "root/Default/Store", "inc"),
    ]

    assert result.roles["root/Default/Api"] is NodeRole.CONSTRUCT
    assert result.roles["root/Default/Api/Handler"] is NodeRole.FUNCTION
    assert result.roles["root/Default/Worker"] is NodeRole.FUNCTION
    assert result.roles["root/Default/Ids"] is NodeRole.AUTO_ID
    assert result.roles["root/Default/Store"] is NodeRole.CONSTRUCT
    assert result.roles["root/Default/Store/Bucket"] is NodeRole.CONSTRUCT

    store = result.nodes["root/Default/Store"].to_dict()
    assert store["inflights"] == [
        {"id": "root/Default/Store#inc", "name": "inc", "sourceOccupied": False, "targetOccupied": True}
    ]

    assert [e.id for e in result.edges] == [
        "root/Default/Api#source##root/Default/Worker#invoke#target",
        "root/Default/Worker#invoke#source##root/Default/Store/Bucket#put#target",
        "root/Default/Worker#invoke#source##root/Default/Store#inc#target",
    ]
    assert [n.path for n in result.root_nodes] == [
        "root/Default/Api",
        "root/Default/Store",
        "root/Default/Worker",
        "root/Default/Ids",
    ]
    assert result.is_hidden("root/Default/Store/Counter")
    assert result.kinds["root/Default/Store/Bucket"] is ResourceKind.BUCKET


def test_scenario_hidden_source_bridges_to_root() -> None:
    tree = parse_tree(
        {"path": "Root", "children": {"A": {"hidden": True, "children": {"B": {"hidden": False}}}, "Other": {}}}
    )
    result = build_map(tree, [RawConnection(source="Root/A", target="Root/Other")])

    assert len(result.connections) == 1
    assert result.connections[0].source.id == "Root"
    assert result.connections[0].target.id == "Root/Other"
    assert [e.id for e in result.edges] == ["Root#source##Root/Other#target"]


def test_scenario_exact_duplicates_render_once() -> None:
    tree = parse_tree({"path": "app", "children": {"X": {}, "Y": {}}})
    conns = [
        RawConnection(source="app/X", target="app/Y", target_operation="get"),
        RawConnection(source="app/X", target="app/Y", target_operation="get"),
    ]
    result = build_map(tree, conns)

    assert len(result.connections) == 1
    assert len(result.edges) == 1


def test_scenario_function_operations_share_a_port() -> None:
    tree = parse_tree({"path": "app", "children": {"caller": {}, "F": {"resourceKind": "function"}}})
    conns = [
        RawConnection(source="app/caller", target="app/F", target_operation="invoke"),
        RawConnection(source="app/caller", target="app/F", target_operation="invokeAsync"),
    ]
    result = build_map(tree, conns, MapOptions(excluded_operations=frozenset()))

    assert len(result.connections) == 2
    assert [e.target_port for e in result.edges] == ["app/F#invoke#target"]


def test_scenario_container_versus_construct() -> None:
    tree = parse_tree(
        {
            "path": "app",
            "children": {
                "Group": {"children": {"a": {}, "b": {}}},
                "Shell": {"children": {"a": {"hidden": True}, "b": {"hidden": True}}},
            },
        }
    )
    result = build_map(tree, [])

    assert result.roles["app/Group"] is NodeRole.CONTAINER
    assert result.nodes["app/Group"].children == ("app/Group/a", "app/Group/b")
    assert result.roles["app/Shell"] is NodeRole.CONSTRUCT


def test_bridged_endpoints_are_visible_nodes_and_inflights_are_complete() -> None:
    result = build_map_from_snapshot(parse_snapshot(_snapshot()))

    for c in result.connections:
        for endpoint in (c.source, c.target):
            assert not result.is_hidden(endpoint.id)
            assert endpoint.id in result.nodes
        assert c.source.id != c.target.id
        if c.target.operation:
            desc = result.nodes[c.target.id]
            if desc.role is NodeRole.CONSTRUCT:
                assert c.target.operation in [i.name for i in desc.inflights]


def test_build_is_deterministic() -> None:
    first = build_map_from_snapshot(parse_snapshot(_snapshot())).to_dict()
    second = build_map_from_snapshot(parse_snapshot(_snapshot())).to_dict()

    assert first == second
    assert first["hidden"] == ["root/Default/Api/get", "root/Default/Store/Counter"]


def test_paths_missing_from_the_tree_do_not_fail_the_build() -> None:
    tree = parse_tree(
        {"path": "app", "children": {"Svc": {"hidden": True}, "Db": {}}}
    )
    conns = [
        RawConnection(source="app/Svc/lambda", target="app/Db", target_operation="query"),
        RawConnection(source="app/Ghost", target="app/Db", target_operation="scan"),
    ]
    result = build_map(tree, conns)

    assert [(c.source.id, c.source.kind) for c in result.connections] == [
        ("app", ResourceKind.UNKNOWN),
        ("app/Ghost", ResourceKind.UNKNOWN),
    ]
    assert [i.name for i in result.nodes["app/Db"].inflights] == ["query", "scan"]


def test_custom_alias_rules_and_app_scope() -> None:
    tree = parse_tree(
        {
            "path": "root",
            "children": {
                "main": {"children": {"q": {"resourceKind": "queue"}, "p": {}}},
            },
        }
    )
    conns = [
        RawConnection(source="root/main/p", target="root/main/q", target_operation="push"),
        RawConnection(source="root/main/p", target="root/main/q", target_operation="pushBatch"),
    ]
    opts = MapOptions(app_scope="main", port_aliases=(PortAliasRule(ResourceKind.QUEUE, "push"),))
    result = build_map(tree, conns, opts)

    assert [n.path for n in result.root_nodes] == ["root/main/q", "root/main/p"]
    assert [e.target_port for e in result.edges] == ["root/main/q#push#target"]
    assert [i.name for i in result.nodes["root/main/q"].inflights] == ["push", "pushBatch"]


def test_deep_tree_builds_without_recursion() -> None:
    depth = 2000
    raw: dict = {"path": "app", "children": {}}
    node = raw
    for i in range(depth):
        child: dict = {"hidden": i == depth // 2}
        node["children"] = {f"n{i}": child}
        node = child
    tree = parse_tree(raw)

    leaf = max(index_tree(tree), key=len)
    result = build_map(tree, [RawConnection(source=leaf, target="app", target_operation="ping")])

    assert len(index_tree(tree)) == depth + 1
    assert result.is_hidden(leaf)
    assert result.connections[0].source.id.count("/") == depth // 2
    assert result.edges[0].target_port == "app#ping#target"


def test_summarize_counts() -> None:
    result = build_map_from_snapshot(parse_snapshot(_snapshot()))
    summary = summarize(result)

    assert summary["nodes"] == len(result.nodes)
    assert summary["hidden_nodes"] == 2
    assert summary["bridged_connections"] == 3
    assert summary["edges"] == 3
    assert summary["roles"]["function"] == 2
    assert summary["roles"]["scheduler"] == 0
    assert sum(summary["roles"].values()) == len(result.nodes)
