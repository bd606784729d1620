from __future__ import annotations

from typing import Optional

from construct_map.graph.inflights import inflights_by_node, node_inflights
from construct_map.normalize.schema import BridgedConnection, Endpoint


def _conn(source: str, target: str, source_op: Optional[str] = None, target_op: Optional[str] = None):
    return BridgedConnection(
        source=Endpoint(id=source, operation=source_op),
        target=Endpoint(id=target, operation=target_op),
    )


CONNECTIONS = [
    _conn("app/fn", "app/bucket", source_op="handle", target_op="put"),
    _conn("app/fn", "app/bucket", source_op="handle", target_op="get"),
    _conn("app/bucket", "app/queue", source_op="onCreate", target_op="push"),
    _conn("app/queue", "app/bucket", source_op="consume", target_op="put"),
    _conn("app/bucket", "app/topic", source_op="put", target_op="publish"),
    _conn("app/api", "app/bucket"),
]


def test_target_operations_come_first_then_source_only_operations() -> None:
    inflights = node_inflights("app/bucket", CONNECTIONS)

    assert [i.name for i in inflights] == ["put", "get", "onCreate"]
    assert [i.id for i in inflights] == ["app/bucket#put", "app/bucket#get", "app/bucket#onCreate"]


def test_occupancy_flags() -> None:
    by_name = {i.name: i for i in node_inflights("app/bucket", CONNECTIONS)}

    assert by_name["put"].target_occupied and by_name["put"].source_occupied
    assert by_name["get"].target_occupied and not by_name["get"].source_occupied
    assert by_name["onCreate"].source_occupied and not by_name["onCreate"].target_occupied


def test_node_without_incident_connections_has_no_inflights() -> None:
    assert node_inflights("app/other", CONNECTIONS) == []
    assert node_inflights("app/api", CONNECTIONS) == []


def test_inflights_by_node_matches_per_node_aggregation() -> None:
    table = inflights_by_node(CONNECTIONS)

    assert "app/api" not in table
    for path in ("app/fn", "app/bucket", "app/queue", "app/topic"):
        assert list(table[path]) == node_inflights(path, CONNECTIONS)


def test_one_record_per_node_and_operation() -> None:
    table = inflights_by_node(CONNECTIONS)
    for c in CONNECTIONS:
        for endpoint in (c.source, c.target):
            if endpoint.operation is None:
                continue
            names = [i.name for i in table[endpoint.id]]
            assert names.count(endpoint.operation) == 1
