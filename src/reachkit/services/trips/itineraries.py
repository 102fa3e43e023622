"""Decode OTP plan responses into trip records."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from ...models.domain import Point
from ..routing.models import OK, RawResult, TripRecord

logger = logging.getLogger(__name__)


def _minutes(seconds: Any) -> Optional[float]:
    if seconds is None:
        return None
    return round(float(seconds) / 60.0, 2)


def _timestamp(milliseconds: Any) -> Optional[str]:
    if milliseconds is None:
        return None
    return datetime.fromtimestamp(float(milliseconds) / 1000.0, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def parse_itinerary(result: RawResult, origin: Point, destination: Point) -> TripRecord:
    """Summarise the first itinerary of a plan response (times in minutes, distance in km).

    Any failure yields a record carrying only the status so the pair still
    appears in the output table.
    """

    if not result.ok:
        return TripRecord(origin=origin.name, destination=destination.name, status=result.status)
    try:
        data = json.loads(result.payload or "")
        itineraries = (data.get("plan") or {}).get("itineraries") or []
    except (json.JSONDecodeError, AttributeError, TypeError) as exc:
        logger.warning(f"Unreadable plan response for {origin.name} -> {destination.name}: {exc}")
        return TripRecord(origin=origin.name, destination=destination.name, status="PARSE_ERROR")
    if not itineraries:
        return TripRecord(origin=origin.name, destination=destination.name, status="NO_ITINERARY")

    itinerary = itineraries[0]
    legs = itinerary.get("legs") or []
    distance_m = sum(float(leg.get("distance") or 0.0) for leg in legs)
    transfers = itinerary.get("transfers")
    return TripRecord(
        origin=origin.name,
        destination=destination.name,
        status=OK,
        start_time=_timestamp(itinerary.get("startTime")),
        end_time=_timestamp(itinerary.get("endTime")),
        distance_km=round(distance_m / 1000.0, 2) if legs else None,
        duration_mins=_minutes(itinerary.get("duration")),
        walk_time_mins=_minutes(itinerary.get("walkTime")),
        transit_time_mins=_minutes(itinerary.get("transitTime")),
        waiting_time_mins=_minutes(itinerary.get("waitingTime")),
        transfers=int(transfers) if transfers is not None else None,
    )
