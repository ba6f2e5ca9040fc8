from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "graph_asset_unavailable",
        "graph_asset_invalid",
        "graph_node_coordinate_missing",
        "route_node_unknown",
        "incident_unknown",
        "incident_location_missing",
        "feed_event_unsupported",
        "feed_snapshot_unavailable",
    }
)

# Reason code -> HTTP status used by the API layer.
HTTP_STATUS_BY_REASON: dict[str, int] = {
    "graph_asset_unavailable": 503,
    "graph_asset_invalid": 503,
    "graph_node_coordinate_missing": 503,
    "route_node_unknown": 404,
    "incident_unknown": 404,
    "incident_location_missing": 422,
    "feed_event_unsupported": 422,
    "feed_snapshot_unavailable": 502,
}


@dataclass
class RouterError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_REASON.get(normalize_reason_code(self.reason_code), 500)

    def to_detail(self) -> dict[str, Any]:
        return {
            "reason_code": normalize_reason_code(self.reason_code),
            "message": self.message,
            "details": dict(self.details or {}),
        }


def normalize_reason_code(reason_code: str, *, default: str = "graph_asset_invalid") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default
