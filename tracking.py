"""
Carrier tracking payload parsing and event timeline reconstruction.

Carrier payloads arrive as a JSON string or an already-decoded object of
arbitrary shape. They are parsed once into one of three variants:

- EventListPayload: an explicit, non-empty ``events`` array
- StatusPayload: no events but a current ``status``
- UnknownPayload: anything else, including malformed JSON

Nothing in this module raises on bad input.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ValidationError

from formatting import parse_datetime
from moogship_models import Shipment, ShipmentStatus

logger = logging.getLogger(__name__)

ORIGIN_LOCATION = "Istanbul, Turkey"


class RawEvent(BaseModel):
    timestamp: Optional[Any] = None
    status: Optional[str] = None
    location: Optional[str] = None


class EventListPayload(BaseModel):
    kind: Literal["events"] = "events"
    events: List[RawEvent]


class StatusPayload(BaseModel):
    kind: Literal["status"] = "status"
    status: str
    statusDescription: Optional[str] = None
    statusTime: Optional[Any] = None
    location: Optional[str] = None


class UnknownPayload(BaseModel):
    kind: Literal["unknown"] = "unknown"
    malformed: bool = False
    reason: str = ""


TrackingPayload = Union[EventListPayload, StatusPayload, UnknownPayload]


class TrackingEvent(BaseModel):
    date: Optional[datetime] = None
    status: str
    location: str


def parse_tracking_payload(raw: Any) -> Optional[TrackingPayload]:
    """Classify a raw tracking payload. Returns None when there is no payload at all."""
    if raw is None or raw == "":
        return None

    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Malformed tracking payload: {str(e)}")
            return UnknownPayload(malformed=True, reason=str(e))

    if not isinstance(data, dict):
        return UnknownPayload(reason=f"unexpected payload type {type(data).__name__}")

    try:
        events = data.get("events")
        if isinstance(events, list) and events:
            return EventListPayload(events=[RawEvent.model_validate(e) for e in events if isinstance(e, dict)])

        if data.get("status"):
            return StatusPayload.model_validate({**data, "status": str(data["status"])})
    except ValidationError as e:
        logger.warning(f"Tracking payload failed validation: {str(e)}")
        return UnknownPayload(malformed=True, reason=str(e))

    return UnknownPayload(reason="no events or status")


def _sort_events(events: List[TrackingEvent]) -> List[TrackingEvent]:
    """Newest first; events without a date go last."""
    dated = [e for e in events if e.date is not None]
    undated = [e for e in events if e.date is None]
    return sorted(dated, key=lambda e: e.date, reverse=True) + undated


def _destination(shipment: Shipment) -> str:
    return f"{shipment.receiverCity}, {shipment.receiverCountry}"


def _synthesized_events(shipment: Shipment, now: datetime) -> List[TrackingEvent]:
    created = parse_datetime(shipment.createdAt)
    if created is None:
        return [TrackingEvent(date=now, status="Shipment registered", location="System")]

    events = [TrackingEvent(date=created, status="Package accepted", location=ORIGIN_LOCATION)]

    if shipment.status not in (ShipmentStatus.PENDING.value, ShipmentStatus.REJECTED.value):
        events.append(TrackingEvent(date=created + timedelta(hours=6), status="Package processed",
                                    location=ORIGIN_LOCATION))

    if shipment.status in (ShipmentStatus.IN_TRANSIT.value, ShipmentStatus.DELIVERED.value):
        events.append(TrackingEvent(date=created + timedelta(hours=24), status="In transit",
                                    location="International shipment"))
        events.append(TrackingEvent(date=created + timedelta(hours=72), status="Arrived at destination facility",
                                    location=_destination(shipment)))

    if shipment.status == ShipmentStatus.DELIVERED.value:
        events.append(TrackingEvent(date=now, status="Delivered", location=_destination(shipment)))

    return events


def reconstruct_events(shipment: Shipment, now: Optional[datetime] = None) -> List[TrackingEvent]:
    """Best-effort tracking timeline for a shipment, newest first."""
    now = now or datetime.now(timezone.utc)
    payload = parse_tracking_payload(shipment.trackingInfo)

    if isinstance(payload, EventListPayload):
        events = [
            TrackingEvent(date=parse_datetime(e.timestamp), status=e.status or "Unknown",
                          location=e.location or "Unknown location")
            for e in payload.events
        ]
        # Carrier events with unreadable timestamps are dropped
        return _sort_events([e for e in events if e.date is not None])

    if isinstance(payload, StatusPayload):
        events = [TrackingEvent(
            date=parse_datetime(payload.statusTime) or now,
            status=payload.statusDescription or payload.status,
            location=payload.location or _destination(shipment),
        )]
        created = parse_datetime(shipment.createdAt)
        if created is not None:
            events.append(TrackingEvent(date=created, status="Package accepted", location=ORIGIN_LOCATION))
        return _sort_events(events)

    if isinstance(payload, UnknownPayload) and payload.malformed:
        return []

    return _sort_events(_synthesized_events(shipment, now))
