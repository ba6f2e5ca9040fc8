from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from responder_router.graph_assets import load_waypoint_tables_from
from responder_router.k_shortest import shortest_path
from responder_router.road_graph import build_static_graph
from responder_router.router_errors import RouterError
from responder_router.settings import settings


def validate(*, asset_path: Path, start_node: str) -> dict[str, Any]:
    tables = load_waypoint_tables_from(asset_path)
    graph = build_static_graph(tables.coordinates, tables.connections)
    if start_node not in graph.coordinates:
        raise RuntimeError(f"Start waypoint '{start_node}' is not in {asset_path}")

    asymmetric = sorted(
        f"{node}->{nxt}"
        for node, nbrs in graph.edges.items()
        for nxt, weight in nbrs.items()
        if graph.edges.get(nxt, {}).get(node) != weight
    )
    isolated = sorted(node for node, nbrs in graph.edges.items() if not nbrs)
    unreachable = sorted(
        node
        for node in graph.coordinates
        if node != start_node and not shortest_path(graph.edges, start_node, node).found
    )
    weights = [weight for nbrs in graph.edges.values() for weight in nbrs.values()]
    return {
        "asset_path": str(asset_path),
        "start_node": start_node,
        "nodes": len(graph.coordinates),
        "edges": graph.edge_count() // 2,
        "longest_edge_km": round(max(weights), 4) if weights else 0.0,
        "isolated": isolated,
        "unreachable": unreachable,
        "asymmetric": asymmetric,
        "valid": not (isolated or unreachable or asymmetric),
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Validate the static waypoint table used for responder routing.")
    parser.add_argument(
        "--asset",
        type=Path,
        default=Path(settings.waypoint_asset_path),
        help="Waypoint asset JSON path.",
    )
    parser.add_argument("--start", default=settings.default_start_node, help="Canonical responder origin.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        report = validate(asset_path=args.asset, start_node=str(args.start))
    except (RouterError, RuntimeError) as exc:
        print(json.dumps({"valid": False, "error": str(exc)}, indent=2))
        return 1
    print(json.dumps(report, indent=2))
    return 0 if report["valid"] else 1


if __name__ == "__main__":
    sys.exit(main())
