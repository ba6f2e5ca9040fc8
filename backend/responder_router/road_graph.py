from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from .geo import haversine_km
from .router_errors import RouterError

INCIDENT_NODE_PREFIX = "INCIDENT_"

Coordinate = tuple[float, float]
Adjacency = dict[str, dict[str, float]]


@dataclass
class RoadGraph:
    """Adjacency map of named nodes plus the coordinate table behind it.

    Mutate only through ``insert_node`` / ``remove_node``; the incident
    manager owns the instance and serialises access to it.
    """

    edges: Adjacency = field(default_factory=dict)
    coordinates: dict[str, Coordinate] = field(default_factory=dict)

    def copy(self) -> "RoadGraph":
        return RoadGraph(edges=clone_edges(self.edges), coordinates=dict(self.coordinates))

    def has_node(self, name: str) -> bool:
        return name in self.edges or name in self.coordinates

    def incident_nodes(self) -> list[str]:
        return sorted(name for name in self.coordinates if is_incident_node(name))

    def edge_count(self) -> int:
        return sum(len(nbrs) for nbrs in self.edges.values())


def incident_node_name(incident_id: str) -> str:
    return f"{INCIDENT_NODE_PREFIX}{incident_id}"


def is_incident_node(name: str) -> bool:
    return str(name).startswith(INCIDENT_NODE_PREFIX)


def clone_edges(edges: Mapping[str, Mapping[str, float]]) -> Adjacency:
    # Fully independent two-level copy; scratch graphs may be mutated freely.
    return {node: dict(nbrs) for node, nbrs in edges.items()}


def edge_set(edges: Mapping[str, Mapping[str, float]]) -> set[tuple[str, str, float]]:
    return {(node, nxt, weight) for node, nbrs in edges.items() for nxt, weight in nbrs.items()}


def _coordinate(coordinates: Mapping[str, Coordinate], name: str, *, referenced_by: str | None = None) -> Coordinate:
    coord = coordinates.get(name)
    if coord is None:
        raise RouterError(
            reason_code="graph_node_coordinate_missing",
            message=f"no coordinate for waypoint '{name}'",
            details={"node": name, "referenced_by": referenced_by},
        )
    return coord


def _node_distance_km(a: Coordinate, b: Coordinate) -> float:
    return haversine_km(a[0], a[1], b[0], b[1])


def build_static_graph(
    coordinates: Mapping[str, Iterable[float]],
    connections: Mapping[str, Iterable[str]],
) -> RoadGraph:
    """Build the fixed waypoint graph with every connection mirrored both ways."""
    coords: dict[str, Coordinate] = {}
    for name, raw in coordinates.items():
        lat, lon = (float(v) for v in raw)
        coords[str(name)] = (lat, lon)

    edges: Adjacency = {}
    for node, neighbours in connections.items():
        node_coord = _coordinate(coords, node)
        edges.setdefault(node, {})
        for nxt in neighbours:
            if nxt == node:
                continue
            weight = _node_distance_km(node_coord, _coordinate(coords, nxt, referenced_by=node))
            edges[node][nxt] = weight
            edges.setdefault(nxt, {})[node] = weight

    # Isolated waypoints are still valid route targets.
    for name in coords:
        edges.setdefault(name, {})
    return RoadGraph(edges=edges, coordinates=coords)


def nearest_nodes(graph: RoadGraph, coord: Coordinate, *, k: int, exclude: str | None = None) -> list[tuple[str, float]]:
    """Up to ``k`` nearest non-incident nodes ordered by (distance, name)."""
    ranked: list[tuple[float, str]] = []
    for name, other in graph.coordinates.items():
        if name == exclude or is_incident_node(name):
            continue
        ranked.append((_node_distance_km(coord, other), name))
    ranked.sort()
    return [(name, dist) for dist, name in ranked[: max(0, int(k))]]


def insert_node(graph: RoadGraph, name: str, coord: Coordinate, *, k: int = 3) -> list[tuple[str, float]]:
    """Add ``name`` at ``coord`` and link it both ways to its ``k`` nearest waypoints.

    An existing node of the same name is removed first, so re-inserting never
    leaves stale edges behind. Returns the chosen neighbours.
    """
    remove_node(graph, name)
    point = (float(coord[0]), float(coord[1]))
    neighbours = nearest_nodes(graph, point, k=k, exclude=name)
    graph.coordinates[name] = point
    graph.edges[name] = {nxt: dist for nxt, dist in neighbours}
    for nxt, dist in neighbours:
        graph.edges.setdefault(nxt, {})[name] = dist
    return neighbours


def remove_node(graph: RoadGraph, name: str) -> bool:
    """Drop ``name``, its coordinate and every edge into it. No-op if absent."""
    present = graph.has_node(name)
    graph.edges.pop(name, None)
    graph.coordinates.pop(name, None)
    for nbrs in graph.edges.values():
        nbrs.pop(name, None)
    return present


def move_node(graph: RoadGraph, name: str, coord: Coordinate) -> bool:
    """Update a node's coordinate in place. Edges keep their original weights."""
    if name not in graph.coordinates:
        return False
    graph.coordinates[name] = (float(coord[0]), float(coord[1]))
    return True
