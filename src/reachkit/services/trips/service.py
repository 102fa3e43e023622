"""High-level orchestration for point-to-point trip and choropleth requests."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict
from pathlib import Path

from ...data.points_repository import select_row
from ...persistence.filesystem import CheckpointWriter, FileStorage
from ...schemas.analysis import (
    ChoroplethRequest,
    ChoroplethResponse,
    TripModel,
    TripsRequest,
    TripsResponse,
)
from ..isochrones.aggregator import query_times_between
from ..outputs.formatter import rows_to_csv, trips_to_csv
from ..routing.otp_client import OTPClient
from .choropleth import CHOROPLETH_FIELDS, build_choropleth
from .loop import run_trip_loop, run_trip_series

logger = logging.getLogger(__name__)


def process_trips_request(
    payload: TripsRequest,
    *,
    cancel_event: threading.Event | None = None,
) -> TripsResponse:
    origins = [point.to_point() for point in payload.origins]
    destinations = [point.to_point() for point in payload.destinations]
    params = payload.travel.to_params()

    storage: FileStorage | None = None
    run_dir: Path | None = None
    checkpoint: CheckpointWriter | None = None
    if payload.persist:
        storage = FileStorage()
        run_dir = storage.make_run_directory(prefix="trips")
        checkpoint = CheckpointWriter(storage, run_dir)

    query_times = query_times_between(payload.start, payload.end, payload.time_step_minutes)
    with OTPClient() as client:
        if len(query_times) > 1:
            result = run_trip_series(
                client,
                select_row(origins, payload.origin_row, "origin"),
                select_row(destinations, payload.destination_row, "destination"),
                query_times,
                params,
                checkpoint=checkpoint,
                checkpoint_every=payload.checkpoint_every,
                cancel_event=cancel_event,
            )
        else:
            result = run_trip_loop(
                client,
                origins,
                destinations,
                payload.start,
                params,
                loop=payload.loop,
                origin_row=payload.origin_row,
                destination_row=payload.destination_row,
                return_journey=payload.return_journey,
                nearest_count=payload.nearest_count,
                max_distance_km=payload.max_distance_km,
                checkpoint=checkpoint,
                checkpoint_every=payload.checkpoint_every,
                cancel_event=cancel_event,
            )

    trips = [TripModel(**asdict(record)) for record in result.records]
    for trip, query_time in zip(trips, result.query_times):
        trip.query_time = query_time
    response = TripsResponse(
        trips=trips,
        dropped=list(result.dropped),
        failed=len(result.failed),
        output_dir=str(run_dir) if run_dir else None,
    )

    if storage is not None and run_dir is not None:
        storage.write_csv(run_dir / "trips.csv", trips_to_csv(result.records, params.modes))
        storage.write_json(
            run_dir / "summary.json",
            {
                "run_label": payload.run_label,
                "loop": "time_series" if result.query_times else payload.loop.value,
                "trips": len(result.records),
                "failed": len(result.failed),
                "dropped": list(result.dropped),
                "cancelled": result.summary.cancelled,
                "elapsed_seconds": round(result.summary.elapsed_seconds, 2),
            },
        )
        logger.info(f"{len(result.records)} trips saved to {run_dir}")

    return response


def process_choropleth_request(
    payload: ChoroplethRequest,
    *,
    cancel_event: threading.Event | None = None,
) -> ChoroplethResponse:
    origins = [point.to_point() for point in payload.origins]

    with OTPClient() as client:
        result = build_choropleth(
            client,
            origins,
            payload.origin_areas,
            payload.destination.to_point(),
            payload.start,
            payload.travel.to_params(),
            duration_cutoff=payload.duration_cutoff,
            waiting_cutoff=payload.waiting_cutoff,
            transfer_cutoff=payload.transfer_cutoff,
            name_property=payload.name_property,
            cancel_event=cancel_event,
        )

    if result.unmatched_areas:
        logger.warning(f"{len(result.unmatched_areas)} origin areas have no matching origin point")

    response = ChoroplethResponse(
        rows=result.as_records(),
        feature_collection=result.feature_collection,
        unmatched_areas=list(result.unmatched_areas),
    )

    if payload.persist:
        storage = FileStorage()
        run_dir = storage.make_run_directory(prefix="choropleth")
        storage.write_csv(run_dir / "choropleth.csv", rows_to_csv(response.rows, CHOROPLETH_FIELDS))
        storage.write_json(run_dir / "choropleth.geojson", result.feature_collection)
        response.output_dir = str(run_dir)
        logger.info(f"Choropleth for {len(result.rows)} origins saved to {run_dir}")

    return response
