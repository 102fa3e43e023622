"""Per-origin journey summaries to a single destination, joined onto origin areas."""

from __future__ import annotations

import copy
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from ...models.domain import Point, TravelParams
from ..batch import BatchItem, BatchRunner, BatchSummary, ItemState
from ..isochrones.aggregator import validate_points
from ..routing.models import OK, RoutingClient
from .itineraries import parse_itinerary

CHOROPLETH_FIELDS = [
    "name",
    "status",
    "duration",
    "waitingtime",
    "transfers",
    "duration_cat",
    "waitingtime_cat",
    "transfers_cat",
]


@dataclass(slots=True)
class ChoroplethRow:
    name: str
    status: str
    duration: Optional[float] = None
    waitingtime: Optional[float] = None
    transfers: Optional[int] = None
    duration_cat: Optional[str] = None
    waitingtime_cat: Optional[str] = None
    transfers_cat: Optional[str] = None


@dataclass(slots=True)
class ChoroplethResult:
    rows: list[ChoroplethRow]
    feature_collection: dict
    summary: BatchSummary
    unmatched_areas: list[str] = field(default_factory=list)

    def as_records(self) -> list[dict]:
        return [asdict(row) for row in self.rows]


def categorise_minutes(value: float, cutoff: float) -> str:
    return f"Over {cutoff:g} minutes" if value > cutoff else f"Under {cutoff:g} minutes"


def categorise_transfers(value: int, cutoff: int) -> str:
    return f"Over {cutoff} transfer(s)" if value >= cutoff else f"Under {cutoff} transfer(s)"


def build_choropleth(
    client: RoutingClient,
    origins: Sequence[Point],
    origin_areas: Sequence[dict],
    destination: Point,
    query_time: datetime,
    params: TravelParams,
    *,
    duration_cutoff: float = 60,
    waiting_cutoff: float = 10,
    transfer_cutoff: int = 1,
    name_property: str = "name",
    cancel_event: threading.Event | None = None,
) -> ChoroplethResult:
    validate_points(origins, "origin")
    rows: list[ChoroplethRow] = []

    def process(item: BatchItem[Point]) -> None:
        origin = item.value
        item.advance(ItemState.REQUESTING)
        record = parse_itinerary(client.plan(origin, destination, query_time, params), origin, destination)
        if record.status != OK or record.duration_mins is None:
            rows.append(ChoroplethRow(name=origin.name, status=record.status))
            item.advance(ItemState.FAILED, record.status)
            return
        item.advance(ItemState.PARSED)
        waiting = record.waiting_time_mins or 0.0
        transfers = record.transfers or 0
        rows.append(
            ChoroplethRow(
                name=origin.name,
                status=record.status,
                duration=record.duration_mins,
                waitingtime=waiting,
                transfers=transfers,
                duration_cat=categorise_minutes(record.duration_mins, duration_cutoff),
                waitingtime_cat=categorise_minutes(waiting, waiting_cutoff),
                transfers_cat=categorise_transfers(transfers, transfer_cutoff),
            )
        )
        item.advance(ItemState.AGGREGATED)

    summary = BatchRunner("connections", cancel_event=cancel_event).run(origins, process)

    by_name = {row.name: row for row in rows}
    features = []
    unmatched = []
    for feature in origin_areas:
        joined = copy.deepcopy(feature)
        properties = joined.setdefault("properties", {}) or {}
        joined["properties"] = properties
        area_name = str(properties.get(name_property, ""))
        row = by_name.get(area_name)
        if row is None:
            unmatched.append(area_name)
        for key in CHOROPLETH_FIELDS[1:]:
            properties[key] = getattr(row, key) if row is not None else None
        features.append(joined)

    return ChoroplethResult(
        rows=rows,
        feature_collection={"type": "FeatureCollection", "features": features},
        summary=summary,
        unmatched_areas=unmatched,
    )
