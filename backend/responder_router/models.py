from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

FeedEventName = Literal["snapshot", "sos-alert", "sos-updated", "sos-cancelled", "sos-resolved"]
FEED_EVENT_NAMES: frozenset[str] = frozenset(
    {"snapshot", "sos-alert", "sos-updated", "sos-cancelled", "sos-resolved"}
)


class Incident(BaseModel):
    """An active SOS incident as delivered by the alert feed.

    The feed spells the identifier ``_id`` in snapshots and ``id`` in push
    events; both are accepted. Missing fields are tolerated here and filtered
    later, so a malformed alert never rejects a whole snapshot.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = Field(default=None, validation_alias=AliasChoices("id", "_id"))
    username: str | None = None
    fullname: str | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    address: str | None = None
    timestamp: datetime | None = None
    last_updated: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("lastUpdated", "last_updated"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: object) -> object:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @property
    def location(self) -> tuple[float, float] | None:
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)


class FeedEvent(BaseModel):
    event: str
    data: dict[str, Any] | list[dict[str, Any]] = Field(default_factory=dict)


class SnapshotRequest(BaseModel):
    incidents: list[Incident] = Field(default_factory=list)


class ReconcileResponse(BaseModel):
    event: str
    applied: bool
    incident_count: int


class IncidentListResponse(BaseModel):
    incidents: list[Incident]


class RouteOption(BaseModel):
    label: str
    path: list[str]
    distance_km: float = Field(..., ge=0)
    coordinates: list[tuple[float, float]]


class RouteResponse(BaseModel):
    start: str
    target: str
    routes: list[RouteOption]
    diagnostics: dict[str, int | str] = Field(default_factory=dict)


class GraphSummary(BaseModel):
    default_start_node: str
    node_count: int
    static_node_count: int
    edge_count: int
    incident_nodes: list[str]
