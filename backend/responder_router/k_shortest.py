from __future__ import annotations

import heapq
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from math import inf, isfinite

from .road_graph import clone_edges

EdgeMap = Mapping[str, Mapping[str, float]]


@dataclass(frozen=True)
class PathResult:
    nodes: tuple[str, ...]
    cost: float

    @property
    def found(self) -> bool:
        return bool(self.nodes) and isfinite(self.cost)


NO_PATH = PathResult(nodes=(), cost=inf)


def shortest_path(edges: EdgeMap, start: str, goal: str) -> PathResult:
    """Dijkstra from ``start`` to ``goal`` over a name -> {neighbour: km} map.

    Uses a linear scan for the next node, which is plenty for a few dozen
    waypoints. An unreachable goal yields ``NO_PATH`` rather than raising.
    """
    if start == goal:
        return PathResult(nodes=(start,), cost=0.0)
    if start not in edges:
        return NO_PATH

    dist: dict[str, float] = {node: inf for node in edges}
    dist[start] = 0.0
    prev: dict[str, str] = {}
    unvisited = set(edges)

    while unvisited:
        current = min(unvisited, key=lambda node: (dist[node], node))
        if dist[current] == inf or current == goal:
            break
        unvisited.discard(current)
        for nxt, weight in edges[current].items():
            if nxt not in unvisited:
                continue
            alt = dist[current] + float(weight)
            if alt < dist[nxt]:
                dist[nxt] = alt
                prev[nxt] = current

    if dist.get(goal, inf) == inf:
        return NO_PATH

    path = [goal]
    while path[-1] != start:
        path.append(prev[path[-1]])
    path.reverse()
    return PathResult(nodes=tuple(path), cost=dist[goal])


def path_cost(edges: EdgeMap, nodes: Sequence[str]) -> float | None:
    """Sum of edge weights along ``nodes``, or None if any hop is not an edge."""
    total = 0.0
    for src, dst in zip(nodes, nodes[1:]):
        weight = edges.get(src, {}).get(dst)
        if weight is None:
            return None
        total += float(weight)
    return total


def _spur_graph(
    edges: EdgeMap,
    *,
    accepted: Sequence[PathResult],
    root_path: tuple[str, ...],
) -> dict[str, dict[str, float]]:
    spur_idx = len(root_path) - 1
    spur_node = root_path[-1]
    scratch = clone_edges(edges)

    # Block the next hop of every accepted path that shares this root.
    for path in accepted:
        if len(path.nodes) > spur_idx + 1 and path.nodes[: spur_idx + 1] == root_path:
            scratch.get(spur_node, {}).pop(path.nodes[spur_idx + 1], None)

    # Keep the spur search off the prefix it would otherwise loop back through.
    for node in root_path[:-1]:
        scratch.pop(node, None)
        for nbrs in scratch.values():
            nbrs.pop(node, None)
    return scratch


def yen_k_shortest_paths_with_stats(
    *,
    edges: EdgeMap,
    start: str,
    goal: str,
    k: int,
) -> tuple[tuple[PathResult, ...], dict[str, int | str]]:
    stats: dict[str, int | str] = {
        "spur_searches": 0,
        "generated_candidates": 0,
        "rejected_candidates": 0,
        "duplicate_candidates": 0,
        "termination_reason": "k_paths_collected",
    }
    if k <= 0:
        stats["termination_reason"] = "invalid_k"
        return (), stats

    first = shortest_path(edges, start, goal)
    if not first.found:
        stats["termination_reason"] = "no_initial_path"
        return (), stats

    accepted: list[PathResult] = [first]
    accepted_seen: set[tuple[str, ...]] = {first.nodes}
    candidates: list[tuple[float, tuple[str, ...]]] = []
    candidate_seen: set[tuple[str, ...]] = set()
    expanded = 0

    while len(accepted) < k:
        # Spur off every accepted path exactly once; a duplicate pop below
        # retries the same rank without regenerating the pool.
        while expanded < len(accepted):
            previous = accepted[expanded].nodes
            expanded += 1
            for spur_idx in range(len(previous) - 1):
                root_path = previous[: spur_idx + 1]
                scratch = _spur_graph(edges, accepted=accepted, root_path=root_path)
                stats["spur_searches"] = int(stats["spur_searches"]) + 1
                spur = shortest_path(scratch, root_path[-1], goal)
                if not spur.found:
                    continue

                total_nodes = (*root_path[:-1], *spur.nodes)
                total_cost = path_cost(edges, total_nodes)
                if len(total_nodes) < 2 or total_cost is None:
                    stats["rejected_candidates"] = int(stats["rejected_candidates"]) + 1
                    continue
                if total_nodes in candidate_seen:
                    continue
                candidate_seen.add(total_nodes)
                heapq.heappush(candidates, (total_cost, total_nodes))
                stats["generated_candidates"] = int(stats["generated_candidates"]) + 1

        if not candidates:
            stats["termination_reason"] = "candidate_pool_exhausted"
            break
        best_cost, best_nodes = heapq.heappop(candidates)
        if best_nodes in accepted_seen:
            stats["duplicate_candidates"] = int(stats["duplicate_candidates"]) + 1
            continue
        accepted.append(PathResult(nodes=best_nodes, cost=best_cost))
        accepted_seen.add(best_nodes)

    return tuple(accepted), stats


def yen_k_shortest_paths(
    *,
    edges: EdgeMap,
    start: str,
    goal: str,
    k: int,
) -> tuple[PathResult, ...]:
    paths, _stats = yen_k_shortest_paths_with_stats(edges=edges, start=start, goal=goal, k=k)
    return paths
