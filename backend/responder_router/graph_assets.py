from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from .router_errors import RouterError
from .settings import settings


@dataclass(frozen=True)
class WaypointTables:
    coordinates: dict[str, tuple[float, float]]
    connections: dict[str, tuple[str, ...]]
    source: str


def _parse_coordinates(raw: Any, *, source: str) -> dict[str, tuple[float, float]]:
    if not isinstance(raw, dict) or not raw:
        raise RouterError(
            reason_code="graph_asset_invalid",
            message="Waypoint asset has no 'coordinates' object.",
            details={"source": source},
        )
    out: dict[str, tuple[float, float]] = {}
    for name, value in raw.items():
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise RouterError(
                reason_code="graph_asset_invalid",
                message=f"Waypoint '{name}' must be a [lat, lng] pair.",
                details={"source": source, "node": name},
            )
        try:
            lat, lon = float(value[0]), float(value[1])
        except (TypeError, ValueError) as exc:
            raise RouterError(
                reason_code="graph_asset_invalid",
                message=f"Waypoint '{name}' has non-numeric coordinates.",
                details={"source": source, "node": name},
            ) from exc
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
            raise RouterError(
                reason_code="graph_asset_invalid",
                message=f"Waypoint '{name}' is outside valid lat/lng bounds.",
                details={"source": source, "node": name},
            )
        out[str(name)] = (lat, lon)
    return out


def _parse_connections(raw: Any, *, source: str) -> dict[str, tuple[str, ...]]:
    if not isinstance(raw, dict):
        raise RouterError(
            reason_code="graph_asset_invalid",
            message="Waypoint asset has no 'connections' object.",
            details={"source": source},
        )
    out: dict[str, tuple[str, ...]] = {}
    for name, neighbours in raw.items():
        if not isinstance(neighbours, list) or not all(isinstance(item, str) for item in neighbours):
            raise RouterError(
                reason_code="graph_asset_invalid",
                message=f"Connections for '{name}' must be a list of waypoint names.",
                details={"source": source, "node": name},
            )
        out[str(name)] = tuple(neighbours)
    return out


def parse_waypoint_tables(payload: Any, *, source: str = "<memory>") -> WaypointTables:
    if not isinstance(payload, dict):
        raise RouterError(
            reason_code="graph_asset_invalid",
            message="Waypoint asset payload is not a JSON object.",
            details={"source": source},
        )
    return WaypointTables(
        coordinates=_parse_coordinates(payload.get("coordinates"), source=source),
        connections=_parse_connections(payload.get("connections", {}), source=source),
        source=source,
    )


def load_waypoint_tables_from(path: str | Path) -> WaypointTables:
    asset = Path(path)
    try:
        payload = json.loads(asset.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise RouterError(
            reason_code="graph_asset_unavailable",
            message=f"Waypoint asset not found: {asset}",
            details={"source": str(asset)},
        ) from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise RouterError(
            reason_code="graph_asset_invalid",
            message=f"Waypoint asset could not be read: {asset}",
            details={"source": str(asset), "error": type(exc).__name__},
        ) from exc
    return parse_waypoint_tables(payload, source=str(asset))


@lru_cache(maxsize=1)
def load_waypoint_tables() -> WaypointTables:
    return load_waypoint_tables_from(settings.waypoint_asset_path)
