from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable
from typing import Any

from .graph_assets import WaypointTables
from .k_shortest import yen_k_shortest_paths_with_stats
from .logging_utils import log_event
from .models import GraphSummary, Incident, RouteOption, RouteResponse
from .road_graph import (
    RoadGraph,
    build_static_graph,
    incident_node_name,
    insert_node,
    is_incident_node,
    move_node,
    remove_node,
)
from .router_errors import RouterError
from .settings import settings


def filter_reason(incident: Incident, *, denylist: frozenset[str]) -> str | None:
    """Why an incident must not become a graph node, or None if it may."""
    if not incident.id:
        return "missing_id"
    username = (incident.username or "").strip().lower()
    if not username:
        return "missing_username"
    # Whole-name match only: "test" is dropped, "testimony" is not.
    if username in denylist:
        return "denylisted_username"
    if incident.location is None:
        return "missing_location"
    return None


def route_label(rank: int) -> str:
    return "Shortest Path" if rank == 0 else f"Alternative Path {rank}"


class IncidentNodeManager:
    """Keeps incident nodes in the road graph in step with the incident feed.

    Owns the graph store. Every mutation and every route computation runs
    under one re-entrant lock, so a route search never sees a graph that an
    incident event has only half updated.
    """

    def __init__(
        self,
        static_graph: RoadGraph,
        *,
        start_node: str | None = None,
        neighbor_count: int | None = None,
        alternatives: int | None = None,
        username_denylist: Iterable[str] | None = None,
    ) -> None:
        self.start_node = start_node or settings.default_start_node
        if self.start_node not in static_graph.coordinates:
            raise RouterError(
                reason_code="graph_node_coordinate_missing",
                message=f"Start waypoint '{self.start_node}' is not in the waypoint table.",
                details={"node": self.start_node},
            )
        self.neighbor_count = max(1, int(neighbor_count or settings.incident_neighbor_count))
        self.alternatives = max(1, int(alternatives or settings.route_alternatives))
        if username_denylist is None:
            self.username_denylist = settings.username_denylist
        else:
            self.username_denylist = frozenset(str(item).strip().lower() for item in username_denylist)

        self._static = static_graph.copy()
        self._graph = static_graph.copy()
        self._incidents: dict[str, Incident] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_tables(cls, tables: WaypointTables, **kwargs: Any) -> "IncidentNodeManager":
        graph = build_static_graph(tables.coordinates, tables.connections)
        log_event(
            "graph_built",
            source=tables.source,
            node_count=len(graph.coordinates),
            edge_count=graph.edge_count(),
        )
        return cls(graph, **kwargs)

    # -- read side ---------------------------------------------------------

    def graph_view(self) -> RoadGraph:
        with self._lock:
            return self._graph.copy()

    def incidents(self) -> list[Incident]:
        with self._lock:
            return [self._incidents[key] for key in sorted(self._incidents)]

    def summary(self) -> GraphSummary:
        with self._lock:
            incident_nodes = self._graph.incident_nodes()
            return GraphSummary(
                default_start_node=self.start_node,
                node_count=len(self._graph.coordinates),
                static_node_count=len(self._static.coordinates),
                edge_count=self._graph.edge_count(),
                incident_nodes=incident_nodes,
            )

    # -- feed reconciliation ----------------------------------------------

    def _accept(self, incident: Incident, *, source: str) -> bool:
        reason = filter_reason(incident, denylist=self.username_denylist)
        if reason is None:
            return True
        log_event(
            "incident_filtered",
            level=logging.DEBUG,
            source=source,
            incident_id=incident.id,
            reason=reason,
        )
        return False

    def apply_snapshot(self, incidents: Iterable[Incident]) -> int:
        """Replace every incident node with one per incident in ``incidents``."""
        accepted: dict[str, Incident] = {}
        for incident in incidents:
            if self._accept(incident, source="snapshot"):
                accepted[str(incident.id)] = incident

        with self._lock:
            # Built on the side and swapped in, so readers see old or new, never a mix.
            rebuilt = self._static.copy()
            for incident_id, incident in accepted.items():
                insert_node(rebuilt, incident_node_name(incident_id), incident.location, k=self.neighbor_count)  # type: ignore[arg-type]
            self._graph = rebuilt
            self._incidents = accepted
        log_event("incident_snapshot_applied", incident_count=len(accepted))
        return len(accepted)

    def _insert_locked(self, incident_id: str, location: tuple[float, float]) -> None:
        neighbours = insert_node(
            self._graph,
            incident_node_name(incident_id),
            location,
            k=self.neighbor_count,
        )
        log_event(
            "incident_inserted",
            incident_id=incident_id,
            neighbours=[name for name, _ in neighbours],
        )

    def on_created(self, incident: Incident) -> bool:
        if not self._accept(incident, source="sos-alert"):
            return False
        incident_id = str(incident.id)
        with self._lock:
            # Replace-then-insert keeps at-least-once delivery idempotent.
            self._insert_locked(incident_id, incident.location)  # type: ignore[arg-type]
            self._incidents[incident_id] = incident
        return True

    def on_updated(self, incident: Incident) -> bool:
        """Move a known incident node. Its edges keep their creation-time weights."""
        if not incident.id or incident.location is None:
            return False
        incident_id = str(incident.id)
        with self._lock:
            known = self._incidents.get(incident_id)
            if known is None or not move_node(self._graph, incident_node_name(incident_id), incident.location):
                return False
            self._incidents[incident_id] = known.model_copy(
                update={
                    "latitude": incident.latitude,
                    "longitude": incident.longitude,
                    "address": incident.address if incident.address is not None else known.address,
                    "last_updated": incident.last_updated or known.last_updated,
                }
            )
        log_event("incident_moved", incident_id=incident_id, location=list(incident.location))
        return True

    def on_removed(self, incident_id: str | None) -> bool:
        if not incident_id:
            return False
        key = str(incident_id)
        with self._lock:
            self._incidents.pop(key, None)
            removed = remove_node(self._graph, incident_node_name(key))
        if removed:
            log_event("incident_removed", incident_id=key)
        return removed

    # -- route queries -----------------------------------------------------

    def routes_for_incident(
        self,
        incident_id: str,
        *,
        location: tuple[float, float] | None = None,
        k: int | None = None,
    ) -> RouteResponse:
        """Routes from the start waypoint to an incident, inserting its node if needed.

        A location that differs from the node's current one supersedes it: the
        node is re-inserted there with fresh nearest-waypoint edges.
        """
        key = str(incident_id)
        node = incident_node_name(key)
        with self._lock:
            current = self._graph.coordinates.get(node)
            if location is not None and current != location:
                self._insert_locked(key, location)
                known = self._incidents.get(key)
                if known is None:
                    known = Incident(id=key)
                self._incidents[key] = known.model_copy(
                    update={"latitude": location[0], "longitude": location[1]}
                )
            elif current is None:
                known = self._incidents.get(key)
                if known is None or known.location is None:
                    raise RouterError(
                        reason_code="incident_unknown",
                        message=f"Incident '{key}' is not active and no location was given.",
                        details={"incident_id": key},
                    )
                self._insert_locked(key, known.location)
            return self._routes_locked(node, k=k)

    def routes_to_node(self, name: str, *, k: int | None = None) -> RouteResponse:
        with self._lock:
            if name not in self._graph.coordinates or is_incident_node(name):
                raise RouterError(
                    reason_code="route_node_unknown",
                    message=f"Unknown waypoint '{name}'.",
                    details={"node": name},
                )
            return self._routes_locked(name, k=k)

    def _routes_locked(self, target: str, *, k: int | None) -> RouteResponse:
        t0 = time.perf_counter()
        want = max(1, int(k or self.alternatives))
        paths, stats = yen_k_shortest_paths_with_stats(
            edges=self._graph.edges,
            start=self.start_node,
            goal=target,
            k=want,
        )
        routes = [
            RouteOption(
                label=route_label(rank),
                path=list(path.nodes),
                distance_km=path.cost,
                coordinates=[self._graph.coordinates[name] for name in path.nodes],
            )
            for rank, path in enumerate(paths)
        ]
        log_event(
            "route_request",
            start=self.start_node,
            target=target,
            requested=want,
            route_count=len(routes),
            termination_reason=stats["termination_reason"],
            duration_ms=round((time.perf_counter() - t0) * 1000, 2),
        )
        return RouteResponse(start=self.start_node, target=target, routes=routes, diagnostics=stats)

