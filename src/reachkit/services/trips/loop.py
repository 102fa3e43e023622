"""Point-to-point travel time loop over origin/destination pairs."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence

from ...config import settings
from ...data.points_repository import select_row
from ...errors import ConfigurationError
from ...models.domain import Point, TravelParams
from ...persistence.filesystem import CheckpointWriter
from ..batch import BatchItem, BatchRunner, BatchSummary, ItemState
from ..geospatial import haversine_km
from ..outputs.formatter import trips_to_csv
from ..routing.models import RoutingClient, TripRecord
from .itineraries import parse_itinerary

logger = logging.getLogger(__name__)


class JourneyLoop(str, Enum):
    ALL_PAIRS = "all_pairs"
    ALL_ORIGINS_TO_ONE = "all_origins_to_one"
    ONE_ORIGIN_TO_ALL = "one_origin_to_all"
    NEAREST = "nearest"


class PairFilter:
    """Decides which origin/destination calls are worth making."""

    def __init__(self, max_distance_km: Optional[float] = None) -> None:
        self.max_distance_km = max_distance_km
        self._seen: set[tuple[str, str]] = set()

    def drop_reason(self, origin: Point, destination: Point) -> Optional[str]:
        if self.max_distance_km is not None:
            distance = haversine_km(origin.latitude, origin.longitude, destination.latitude, destination.longitude)
            if distance > self.max_distance_km:
                return f"{origin.name} to {destination.name} is {distance:.1f} km apart (limit {self.max_distance_km:g} km)"
        pair = (origin.name, destination.name)
        if pair in self._seen:
            return f"{origin.name} to {destination.name} has already been processed"
        self._seen.add(pair)
        if origin.name == destination.name:
            return f"origin and destination were the same ({origin.name})"
        return None


@dataclass(slots=True)
class TripLoopResult:
    records: list[TripRecord]
    summary: BatchSummary
    dropped: list[str] = field(default_factory=list)
    query_times: list[datetime] = field(default_factory=list)

    @property
    def failed(self) -> list[TripRecord]:
        return [record for record in self.records if record.status != "OK"]


def nearest_destinations(origin: Point, destinations: Sequence[Point], count: int) -> list[Point]:
    """The ``count`` destinations closest to ``origin`` by great-circle distance, nearest first."""

    ranked = sorted(
        destinations,
        key=lambda destination: haversine_km(
            origin.latitude, origin.longitude, destination.latitude, destination.longitude
        ),
    )
    return ranked[:count]


def build_pairs(
    origins: Sequence[Point],
    destinations: Sequence[Point],
    loop: JourneyLoop,
    *,
    origin_row: int = 1,
    destination_row: int = 1,
    return_journey: bool = False,
    nearest_count: int = 1,
) -> list[tuple[Point, Point]]:
    """Expand the loop mode into ordered (from, to) pairs; return legs follow the outbound ones."""

    if not origins or not destinations:
        raise ConfigurationError("Both origin and destination points are required.")
    if loop == JourneyLoop.NEAREST:
        if nearest_count < 1:
            raise ConfigurationError("nearest_count must be at least 1.")
        if nearest_count > len(destinations):
            raise ConfigurationError(
                f"Cannot pair each origin with {nearest_count} destinations; only {len(destinations)} were provided."
            )
        outbound = [
            (origin, destination)
            for origin in origins
            for destination in nearest_destinations(origin, destinations, nearest_count)
        ]
    else:
        if loop == JourneyLoop.ALL_PAIRS:
            selected_origins, selected_destinations = list(origins), list(destinations)
        elif loop == JourneyLoop.ALL_ORIGINS_TO_ONE:
            selected_origins = list(origins)
            selected_destinations = [select_row(destinations, destination_row, "destination")]
        elif loop == JourneyLoop.ONE_ORIGIN_TO_ALL:
            selected_origins = [select_row(origins, origin_row, "origin")]
            selected_destinations = list(destinations)
        else:
            raise ConfigurationError(f"Unknown journey loop '{loop}'.")
        outbound = [(origin, destination) for destination in selected_destinations for origin in selected_origins]

    if not return_journey:
        return outbound
    return outbound + [(destination, origin) for origin, destination in outbound]


def _checkpoint_interval(checkpoint_every: int | None) -> int:
    if checkpoint_every is None:
        checkpoint_every = settings.checkpoint_every
    if checkpoint_every < 1:
        raise ConfigurationError("checkpoint_every must be at least 1.")
    return checkpoint_every


def _plan_and_record(
    client: RoutingClient,
    item: BatchItem,
    origin: Point,
    destination: Point,
    query_time: datetime,
    params: TravelParams,
) -> TripRecord:
    item.advance(ItemState.REQUESTING)
    record = parse_itinerary(client.plan(origin, destination, query_time, params), origin, destination)
    if record.status == "OK":
        item.advance(ItemState.PARSED)
        item.advance(ItemState.AGGREGATED)
    else:
        item.advance(ItemState.FAILED, record.status)
        logger.warning(f"No journey found from {origin.name} to {destination.name}: {record.status}")
    return record


def run_trip_loop(
    client: RoutingClient,
    origins: Sequence[Point],
    destinations: Sequence[Point],
    query_time: datetime,
    params: TravelParams,
    *,
    loop: JourneyLoop = JourneyLoop.ALL_PAIRS,
    origin_row: int = 1,
    destination_row: int = 1,
    return_journey: bool = False,
    nearest_count: int = 1,
    max_distance_km: Optional[float] = None,
    checkpoint: CheckpointWriter | None = None,
    checkpoint_every: int | None = None,
    cancel_event: threading.Event | None = None,
) -> TripLoopResult:
    pairs = build_pairs(
        origins,
        destinations,
        loop,
        origin_row=origin_row,
        destination_row=destination_row,
        return_journey=return_journey,
        nearest_count=nearest_count,
    )
    checkpoint_every = _checkpoint_interval(checkpoint_every)
    pair_filter = PairFilter(max_distance_km)
    records: list[TripRecord] = []
    dropped: list[str] = []

    def process(item: BatchItem[tuple[Point, Point]]) -> None:
        origin, destination = item.value
        reason = pair_filter.drop_reason(origin, destination)
        if reason:
            dropped.append(reason)
            item.drop(reason)
            return

        records.append(_plan_and_record(client, item, origin, destination, query_time, params))
        if checkpoint is not None and len(records) % checkpoint_every == 0:
            logger.info(f"Large dataset, failsafe, saving {len(records)} trips to {checkpoint.run_dir}")
            checkpoint.write({CheckpointWriter.TRIPS_FILE: trips_to_csv(records, params.modes)})

    summary = BatchRunner("point to point connections", cancel_event=cancel_event).run(pairs, process)
    return TripLoopResult(records=records, summary=summary, dropped=dropped)


def run_trip_series(
    client: RoutingClient,
    origin: Point,
    destination: Point,
    query_times: Sequence[datetime],
    params: TravelParams,
    *,
    checkpoint: CheckpointWriter | None = None,
    checkpoint_every: int | None = None,
    cancel_event: threading.Event | None = None,
) -> TripLoopResult:
    """Plan the same origin/destination journey once per query time.

    ``result.query_times[i]`` is the time requested for ``result.records[i]``.
    """

    if not query_times:
        raise ConfigurationError("At least one query time is required.")
    checkpoint_every = _checkpoint_interval(checkpoint_every)
    records: list[TripRecord] = []
    requested: list[datetime] = []

    def process(item: BatchItem[datetime]) -> None:
        records.append(_plan_and_record(client, item, origin, destination, item.value, params))
        requested.append(item.value)
        if checkpoint is not None and len(records) % checkpoint_every == 0:
            logger.info(f"Large dataset, failsafe, saving {len(records)} trips to {checkpoint.run_dir}")
            checkpoint.write({CheckpointWriter.TRIPS_FILE: trips_to_csv(records, params.modes)})

    summary = BatchRunner(f"{origin.name} to {destination.name} time series", cancel_event=cancel_event).run(
        list(query_times), process
    )
    return TripLoopResult(records=records, summary=summary, query_times=requested)
