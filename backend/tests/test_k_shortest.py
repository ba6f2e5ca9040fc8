from __future__ import annotations

import copy
from math import inf

import pytest

from responder_router.k_shortest import (
    NO_PATH,
    PathResult,
    path_cost,
    shortest_path,
    yen_k_shortest_paths,
    yen_k_shortest_paths_with_stats,
)


def _undirected(*edges: tuple[str, str, float]) -> dict[str, dict[str, float]]:
    graph: dict[str, dict[str, float]] = {}
    for a, b, w in edges:
        graph.setdefault(a, {})[b] = w
        graph.setdefault(b, {})[a] = w
    return graph


def _diamond() -> dict[str, dict[str, float]]:
    return _undirected(
        ("A", "B", 1.0),
        ("B", "D", 1.5),
        ("A", "C", 2.0),
        ("C", "D", 2.5),
    )


def _grid() -> dict[str, dict[str, float]]:
    return _undirected(
        ("S", "A", 1.0),
        ("S", "B", 2.0),
        ("A", "B", 0.5),
        ("A", "C", 2.0),
        ("B", "C", 1.0),
        ("B", "D", 3.0),
        ("C", "D", 1.0),
        ("C", "T", 4.0),
        ("D", "T", 1.0),
    )


def test_dijkstra_takes_cheaper_side_of_diamond() -> None:
    result = shortest_path(_diamond(), "A", "D")
    assert result == PathResult(nodes=("A", "B", "D"), cost=2.5)
    assert result.found


def test_dijkstra_unreachable_returns_infinite_empty_path() -> None:
    graph = _undirected(("A", "B", 1.0), ("C", "D", 1.0))
    result = shortest_path(graph, "A", "D")
    assert result.cost == inf
    assert result.nodes == ()
    assert not result.found
    assert shortest_path(graph, "A", "Missing") == NO_PATH
    assert shortest_path(graph, "Missing", "A") == NO_PATH


def test_dijkstra_start_equals_goal() -> None:
    assert shortest_path(_diamond(), "C", "C") == PathResult(nodes=("C",), cost=0.0)


def test_dijkstra_does_not_mutate_graph() -> None:
    graph = _grid()
    snapshot = copy.deepcopy(graph)
    shortest_path(graph, "S", "T")
    assert graph == snapshot


def test_path_cost_rejects_missing_edges() -> None:
    graph = _diamond()
    assert path_cost(graph, ("A", "B", "D")) == pytest.approx(2.5)
    assert path_cost(graph, ("A", "D")) is None
    assert path_cost(graph, ("A",)) == 0.0


def test_yen_orders_paths_and_starts_with_dijkstra() -> None:
    graph = _grid()
    paths, stats = yen_k_shortest_paths_with_stats(edges=graph, start="S", goal="T", k=4)

    assert len(paths) == 4
    assert paths[0] == shortest_path(graph, "S", "T")
    assert paths[0].nodes == ("S", "A", "B", "C", "D", "T")
    costs = [p.cost for p in paths]
    assert costs == sorted(costs)
    assert len({p.nodes for p in paths}) == len(paths)
    assert stats["spur_searches"] > 0
    assert stats["termination_reason"] == "k_paths_collected"


def test_yen_paths_are_loopless_and_use_real_edges() -> None:
    graph = _grid()
    for path in yen_k_shortest_paths(edges=graph, start="S", goal="T", k=8):
        assert len(set(path.nodes)) == len(path.nodes)
        assert path.nodes[0] == "S" and path.nodes[-1] == "T"
        assert path_cost(graph, path.nodes) == pytest.approx(path.cost)


def test_yen_rejects_candidates_that_skip_missing_edges() -> None:
    # Every spur search here dead-ends; a candidate stitched from the root and
    # a bare goal node would claim an A->D edge that does not exist.
    graph = _undirected(("A", "B", 1.0), ("B", "D", 1.0))
    paths = yen_k_shortest_paths(edges=graph, start="A", goal="D", k=3)

    assert [p.nodes for p in paths] == [("A", "B", "D")]
    for path in paths:
        for src, dst in zip(path.nodes, path.nodes[1:]):
            assert dst in graph[src]


def test_yen_uses_original_weights_for_directed_quirks() -> None:
    # Asymmetric weights: the candidate cost must come from the graph as given.
    graph = {
        "S": {"A": 1.0, "B": 1.0},
        "A": {"T": 5.0},
        "B": {"T": 2.0},
        "T": {},
    }
    paths = yen_k_shortest_paths(edges=graph, start="S", goal="T", k=2)
    assert [(p.nodes, p.cost) for p in paths] == [(("S", "B", "T"), 3.0), (("S", "A", "T"), 6.0)]


def test_yen_stops_early_when_pool_exhausted() -> None:
    paths, stats = yen_k_shortest_paths_with_stats(edges=_diamond(), start="A", goal="D", k=5)
    assert [p.nodes for p in paths] == [("A", "B", "D"), ("A", "C", "D")]
    assert stats["termination_reason"] == "candidate_pool_exhausted"


def test_yen_returns_empty_when_unreachable_or_k_invalid() -> None:
    graph = _undirected(("A", "B", 1.0), ("C", "D", 1.0))
    paths, stats = yen_k_shortest_paths_with_stats(edges=graph, start="A", goal="D", k=3)
    assert paths == ()
    assert stats["termination_reason"] == "no_initial_path"

    paths, stats = yen_k_shortest_paths_with_stats(edges=_diamond(), start="A", goal="D", k=0)
    assert paths == ()
    assert stats["termination_reason"] == "invalid_k"


def test_yen_does_not_mutate_graph() -> None:
    graph = _grid()
    snapshot = copy.deepcopy(graph)
    yen_k_shortest_paths(edges=graph, start="S", goal="T", k=5)
    assert graph == snapshot
