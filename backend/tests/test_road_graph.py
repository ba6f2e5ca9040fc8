from __future__ import annotations

import pytest

from responder_router.geo import haversine_km
from responder_router.road_graph import (
    RoadGraph,
    build_static_graph,
    clone_edges,
    edge_set,
    incident_node_name,
    insert_node,
    is_incident_node,
    move_node,
    nearest_nodes,
    remove_node,
)
from responder_router.router_errors import RouterError


def _tables() -> tuple[dict[str, list[float]], dict[str, list[str]]]:
    coordinates = {
        "defaultStartNode": [13.629, 123.240],
        "W1": [13.630, 123.241],
        "W2": [13.628, 123.239],
        "W3": [13.632, 123.236],
    }
    connections = {
        "defaultStartNode": ["W1", "W2"],
        "W1": ["W2", "W3"],
    }
    return coordinates, connections


def test_static_graph_is_symmetric_with_haversine_weights() -> None:
    coordinates, connections = _tables()
    graph = build_static_graph(coordinates, connections)

    for node, nbrs in graph.edges.items():
        for nxt, weight in nbrs.items():
            assert graph.edges[nxt][node] == weight
            expected = haversine_km(*coordinates[node], *coordinates[nxt])
            assert weight == pytest.approx(expected)

    # W3 is only listed as a neighbour of W1 but still gets the mirrored edge.
    assert set(graph.edges["W3"]) == {"W1"}
    assert graph.edge_count() == 8


def test_static_graph_fails_fast_on_missing_coordinate() -> None:
    coordinates, connections = _tables()
    connections["W2"] = ["Nowhere"]

    with pytest.raises(RouterError) as exc_info:
        build_static_graph(coordinates, connections)

    assert exc_info.value.reason_code == "graph_node_coordinate_missing"
    assert exc_info.value.details == {"node": "Nowhere", "referenced_by": "W2"}


def test_static_graph_keeps_isolated_waypoints() -> None:
    coordinates, connections = _tables()
    coordinates["Lonely"] = [13.7, 123.3]
    graph = build_static_graph(coordinates, connections)
    assert graph.edges["Lonely"] == {}


def test_insert_node_links_k_nearest_bidirectionally() -> None:
    graph = build_static_graph(*_tables())
    neighbours = insert_node(graph, "INCIDENT_a", (13.6295, 123.2405), k=2)

    names = [name for name, _ in neighbours]
    assert names == ["W1", "defaultStartNode"]
    for name, dist in neighbours:
        assert graph.edges["INCIDENT_a"][name] == dist
        assert graph.edges[name]["INCIDENT_a"] == dist
    assert graph.coordinates["INCIDENT_a"] == (13.6295, 123.2405)


def test_insert_node_breaks_distance_ties_by_name() -> None:
    graph = RoadGraph(
        edges={"B": {}, "A": {}, "C": {}},
        coordinates={"B": (0.0, 0.001), "A": (0.0, -0.001), "C": (0.0, 0.01)},
    )
    neighbours = insert_node(graph, "INCIDENT_tie", (0.0, 0.0), k=1)
    assert [name for name, _ in neighbours] == ["A"]


def test_insert_node_never_links_to_other_incidents() -> None:
    graph = build_static_graph(*_tables())
    insert_node(graph, "INCIDENT_a", (13.6295, 123.2405), k=3)
    neighbours = insert_node(graph, "INCIDENT_b", (13.6295, 123.2405), k=3)

    assert all(not is_incident_node(name) for name, _ in neighbours)
    assert "INCIDENT_a" not in graph.edges["INCIDENT_b"]


def test_reinserting_same_name_replaces_node() -> None:
    graph = build_static_graph(*_tables())
    insert_node(graph, "INCIDENT_a", (13.6295, 123.2405), k=3)
    insert_node(graph, "INCIDENT_a", (13.6321, 123.2361), k=1)

    assert graph.incident_nodes() == ["INCIDENT_a"]
    assert list(graph.edges["INCIDENT_a"]) == ["W3"]
    assert "INCIDENT_a" not in graph.edges["defaultStartNode"]


def test_insert_then_remove_restores_edge_set() -> None:
    graph = build_static_graph(*_tables())
    before = edge_set(graph.edges)
    coords_before = dict(graph.coordinates)

    insert_node(graph, "INCIDENT_x", (13.6295, 123.2405), k=3)
    assert edge_set(graph.edges) != before
    assert remove_node(graph, "INCIDENT_x") is True

    assert edge_set(graph.edges) == before
    assert graph.coordinates == coords_before


def test_remove_node_is_idempotent() -> None:
    graph = build_static_graph(*_tables())
    before = edge_set(graph.edges)
    assert remove_node(graph, "INCIDENT_missing") is False
    assert remove_node(graph, "INCIDENT_missing") is False
    assert edge_set(graph.edges) == before


def test_move_node_updates_coordinate_only() -> None:
    graph = build_static_graph(*_tables())
    insert_node(graph, "INCIDENT_m", (13.6295, 123.2405), k=2)
    edges_before = dict(graph.edges["INCIDENT_m"])

    assert move_node(graph, "INCIDENT_m", (13.640, 123.250)) is True
    assert graph.coordinates["INCIDENT_m"] == (13.640, 123.250)
    assert graph.edges["INCIDENT_m"] == edges_before
    assert move_node(graph, "INCIDENT_unknown", (13.0, 123.0)) is False


def test_clone_edges_is_independent() -> None:
    graph = build_static_graph(*_tables())
    scratch = clone_edges(graph.edges)
    scratch["W1"].pop("W2")
    scratch.pop("W3")

    assert "W2" in graph.edges["W1"]
    assert "W3" in graph.edges


def test_nearest_nodes_and_names() -> None:
    graph = build_static_graph(*_tables())
    ranked = nearest_nodes(graph, (13.632, 123.236), k=2)
    assert ranked[0] == ("W3", 0.0)
    assert len(ranked) == 2
    assert incident_node_name("42") == "INCIDENT_42"
    assert is_incident_node("INCIDENT_42")
    assert not is_incident_node("defaultStartNode")
