from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import Annotated

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .graph_assets import load_waypoint_tables
from .incident_feed import IncidentFeed
from .incidents import IncidentNodeManager
from .logging_utils import log_event
from .models import (
    FeedEvent,
    GraphSummary,
    IncidentListResponse,
    ReconcileResponse,
    RouteResponse,
    SnapshotRequest,
)
from .router_errors import RouterError
from .settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A broken waypoint table must stop startup rather than serve wrong routes.
    manager = IncidentNodeManager.from_tables(load_waypoint_tables())
    feed = IncidentFeed(manager)
    app.state.manager = manager
    app.state.feed = feed

    tasks = [asyncio.create_task(feed.run_worker())]
    client: httpx.AsyncClient | None = None
    if settings.incident_feed_url:
        client = httpx.AsyncClient(timeout=httpx.Timeout(settings.incident_feed_timeout_s, connect=5.0))
        tasks.append(
            asyncio.create_task(
                feed.run_refresh(
                    client,
                    url=settings.incident_feed_url,
                    token=settings.incident_feed_token,
                    interval_s=settings.incident_feed_refresh_s,
                )
            )
        )
        log_event("incident_feed_polling", url=settings.incident_feed_url, interval_s=settings.incident_feed_refresh_s)
    yield
    for task in tasks:
        task.cancel()
    for task in tasks:
        with contextlib.suppress(asyncio.CancelledError):
            await task
    if client is not None:
        await client.aclose()


app = FastAPI(title="Responder Router", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def incident_manager(request: Request) -> IncidentNodeManager:
    manager: IncidentNodeManager | None = getattr(request.app.state, "manager", None)  # type: ignore[attr-defined]
    if manager is None:
        raise HTTPException(status_code=503, detail="routing graph not initialised")
    return manager


def incident_feed(request: Request) -> IncidentFeed:
    feed: IncidentFeed | None = getattr(request.app.state, "feed", None)  # type: ignore[attr-defined]
    if feed is None:
        raise HTTPException(status_code=503, detail="incident feed not initialised")
    return feed


ManagerDep = Annotated[IncidentNodeManager, Depends(incident_manager)]
FeedDep = Annotated[IncidentFeed, Depends(incident_feed)]


def _http_error(exc: RouterError) -> HTTPException:
    return HTTPException(status_code=exc.http_status, detail=exc.to_detail())


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/graph", response_model=GraphSummary)
def graph_summary(manager: ManagerDep) -> GraphSummary:
    return manager.summary()


@app.get("/incidents", response_model=IncidentListResponse)
def list_incidents(manager: ManagerDep) -> IncidentListResponse:
    return IncidentListResponse(incidents=manager.incidents())


@app.put("/incidents", response_model=ReconcileResponse)
async def replace_incidents(req: SnapshotRequest, feed: FeedDep) -> ReconcileResponse:
    event = FeedEvent(
        event="snapshot",
        data=[incident.model_dump(mode="json") for incident in req.incidents],
    )
    return await feed.submit(event)


@app.post("/incidents/events", response_model=ReconcileResponse)
async def incident_event(event: FeedEvent, feed: FeedDep) -> ReconcileResponse:
    try:
        return await feed.submit(event)
    except RouterError as e:
        raise _http_error(e) from e


@app.get("/routes/incidents/{incident_id}", response_model=RouteResponse)
def routes_to_incident(
    incident_id: str,
    manager: ManagerDep,
    lat: Annotated[float | None, Query(ge=-90, le=90)] = None,
    lng: Annotated[float | None, Query(ge=-180, le=180)] = None,
    k: Annotated[int | None, Query(ge=1, le=10)] = None,
) -> RouteResponse:
    if (lat is None) != (lng is None):
        raise HTTPException(status_code=422, detail="lat and lng must be given together")
    location = (lat, lng) if lat is not None and lng is not None else None
    try:
        return manager.routes_for_incident(incident_id, location=location, k=k)
    except RouterError as e:
        raise _http_error(e) from e


@app.get("/routes/nodes/{node_name}", response_model=RouteResponse)
def routes_to_node(
    node_name: str,
    manager: ManagerDep,
    k: Annotated[int | None, Query(ge=1, le=10)] = None,
) -> RouteResponse:
    try:
        return manager.routes_to_node(node_name, k=k)
    except RouterError as e:
        raise _http_error(e) from e
