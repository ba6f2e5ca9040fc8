from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from responder_router.graph_assets import load_waypoint_tables_from
from responder_router.incidents import IncidentNodeManager
from responder_router.router_errors import RouterError
from responder_router.settings import settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Print responder routes from the start waypoint as JSON.")
    parser.add_argument("--asset", type=Path, default=Path(settings.waypoint_asset_path))
    parser.add_argument("--target", required=True, help="Waypoint name, or an incident id with --incident-lat/--incident-lng.")
    parser.add_argument("--incident-lat", type=float, default=None)
    parser.add_argument("--incident-lng", type=float, default=None)
    parser.add_argument("--k", type=int, default=settings.route_alternatives)
    return parser


def run_query(args: argparse.Namespace) -> dict[str, Any]:
    manager = IncidentNodeManager.from_tables(load_waypoint_tables_from(args.asset))
    k = max(1, int(args.k))
    if args.incident_lat is not None and args.incident_lng is not None:
        response = manager.routes_for_incident(
            str(args.target),
            location=(float(args.incident_lat), float(args.incident_lng)),
            k=k,
        )
    else:
        response = manager.routes_to_node(str(args.target), k=k)
    return response.model_dump(mode="json")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        payload = run_query(args)
    except RouterError as exc:
        print(json.dumps(exc.to_detail(), indent=2))
        return 1
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
