from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from .incidents import IncidentNodeManager
from .logging_utils import log_event
from .models import FEED_EVENT_NAMES, FeedEvent, Incident, ReconcileResponse
from .router_errors import RouterError


def _alert_items(payload: Any) -> list[Any]:
    # Accept the alert API envelope ({"data": {"alerts": [...]}}) as well as bare lists.
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []
    if isinstance(payload.get("incidents"), list):
        return payload["incidents"]
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("alerts"), list):
        return data["alerts"]
    if isinstance(payload.get("alerts"), list):
        return payload["alerts"]
    return []


def parse_active_incidents(payload: Any) -> list[Incident]:
    incidents: list[Incident] = []
    for item in _alert_items(payload):
        try:
            incidents.append(Incident.model_validate(item))
        except ValidationError:
            log_event("incident_filtered", level=logging.DEBUG, source="snapshot", reason="invalid_payload")
            continue
    return incidents


async def fetch_active_incidents(
    client: httpx.AsyncClient,
    *,
    url: str,
    token: str = "",
) -> list[Incident]:
    headers = {"accept": "application/json"}
    if token:
        headers["authorization"] = f"Bearer {token}"
    try:
        response = await client.get(url, headers=headers)
        response.raise_for_status()
        payload = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise RouterError(
            reason_code="feed_snapshot_unavailable",
            message=f"Active incident list could not be fetched: {type(exc).__name__}",
            details={"url": url},
        ) from exc
    return parse_active_incidents(payload)


class IncidentFeed:
    """Applies feed events to the incident manager strictly one at a time.

    Pushed events and periodic snapshots both go through ``submit``; a single
    worker drains the queue, so a snapshot wipe never overlaps an incremental
    update.
    """

    def __init__(self, manager: IncidentNodeManager) -> None:
        self.manager = manager
        self._queue: asyncio.Queue[tuple[FeedEvent, asyncio.Future[ReconcileResponse]]] | None = None

    def apply(self, event: FeedEvent) -> ReconcileResponse:
        name = str(event.event or "").strip().lower()
        if name not in FEED_EVENT_NAMES:
            raise RouterError(
                reason_code="feed_event_unsupported",
                message=f"Unsupported feed event '{event.event}'.",
                details={"event": event.event},
            )

        if name == "snapshot":
            applied = True
            self.manager.apply_snapshot(parse_active_incidents(event.data))
        elif isinstance(event.data, dict):
            try:
                incident = Incident.model_validate(event.data)
            except ValidationError:
                log_event("incident_filtered", level=logging.DEBUG, source=name, reason="invalid_payload")
                incident = None
            if incident is None:
                applied = False
            elif name == "sos-alert":
                applied = self.manager.on_created(incident)
            elif name == "sos-updated":
                applied = self.manager.on_updated(incident)
            else:
                # Cancelled and resolved both retire the incident.
                applied = self.manager.on_removed(incident.id)
        else:
            applied = False

        log_event("feed_event_dispatched", feed_event=name, applied=applied)
        return ReconcileResponse(
            event=name,
            applied=applied,
            incident_count=len(self.manager.incidents()),
        )

    async def submit(self, event: FeedEvent) -> ReconcileResponse:
        if self._queue is None:
            # No worker running (e.g. scripts); apply inline.
            return self.apply(event)
        future: asyncio.Future[ReconcileResponse] = asyncio.get_running_loop().create_future()
        await self._queue.put((event, future))
        return await future

    async def run_worker(self) -> None:
        self._queue = asyncio.Queue()
        try:
            while True:
                event, future = await self._queue.get()
                try:
                    result = self.apply(event)
                except Exception as exc:  # re-raised in the submitting request
                    if not future.done():
                        future.set_exception(exc)
                else:
                    if not future.done():
                        future.set_result(result)
                finally:
                    self._queue.task_done()
        finally:
            self._queue = None

    async def refresh_once(self, client: httpx.AsyncClient, *, url: str, token: str = "") -> ReconcileResponse | None:
        try:
            incidents = await fetch_active_incidents(client, url=url, token=token)
        except RouterError as exc:
            # Keep the current graph; the next poll may succeed.
            log_event(
                "incident_snapshot_fetch_failed",
                level=logging.WARNING,
                reason_code=exc.reason_code,
                detail=exc.message,
            )
            return None
        payload = [incident.model_dump(mode="json") for incident in incidents]
        return await self.submit(FeedEvent(event="snapshot", data=payload))

    async def run_refresh(
        self,
        client: httpx.AsyncClient,
        *,
        url: str,
        token: str = "",
        interval_s: float = 30.0,
    ) -> None:
        while True:
            await self.refresh_once(client, url=url, token=token)
            await asyncio.sleep(max(1.0, float(interval_s)))
