"""High-level orchestration for reachability matrix and intersection requests."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from ...persistence.filesystem import CheckpointWriter, FileStorage
from ...schemas.analysis import (
    IntersectionRequest,
    IntersectionResponse,
    IntersectionResultModel,
    MatrixRequest,
    MatrixResponse,
)
from ..outputs.formatter import failures_to_csv, geometry_to_feature_collection, matrix_to_csv
from ..routing.otp_client import OTPClient
from .aggregator import MultiOriginAggregator, query_times_between
from .intersection import IntersectionRunResult, MultiOriginIntersector

logger = logging.getLogger(__name__)


def process_matrix_request(
    payload: MatrixRequest,
    *,
    cancel_event: threading.Event | None = None,
) -> MatrixResponse:
    origins = [point.to_point() for point in payload.origins]
    destinations = [point.to_point() for point in payload.destinations]
    query_times = query_times_between(payload.start, payload.end, payload.time_step_minutes)

    storage: FileStorage | None = None
    run_dir: Path | None = None
    checkpoint: CheckpointWriter | None = None
    if payload.persist:
        storage = FileStorage()
        run_dir = storage.make_run_directory(prefix="matrix")
        checkpoint = CheckpointWriter(storage, run_dir)

    with OTPClient() as client:
        aggregator = MultiOriginAggregator(client, checkpoint=checkpoint, cancel_event=cancel_event)
        result = aggregator.run(
            origins,
            destinations,
            query_times if len(query_times) > 1 else query_times[0],
            payload.travel.to_params(),
            checkpoint_every=payload.checkpoint_every,
            cutoffs=payload.cutoffs,
        )

    response = MatrixResponse(
        destinations=list(result.matrix.destination_ids),
        rows=result.matrix.to_table(),
        failures=dict(result.failures.reasons),
        total=result.total,
        excluded=len(result.failures),
        exclusion_message=result.exclusion_message,
        missing_cutoffs=result.missing_cutoffs,
        cancelled=result.summary.cancelled,
        output_dir=str(run_dir) if run_dir else None,
    )

    if storage is not None and run_dir is not None:
        storage.write_csv(run_dir / "matrix.csv", matrix_to_csv(result.matrix))
        storage.write_csv(run_dir / "failures.csv", failures_to_csv(result.failures))
        summary = response.model_dump(mode="json", exclude={"rows"})
        summary["run_label"] = payload.run_label
        summary["elapsed_seconds"] = round(result.summary.elapsed_seconds, 2)
        storage.write_json(run_dir / "summary.json", summary)
        logger.info(f"Reachability matrix with {len(result.matrix)} rows saved to {run_dir}")

    return response


def _intersection_model(result: IntersectionRunResult, cutoff: Optional[int]) -> IntersectionResultModel:
    properties = {
        "query_time": result.query_time.isoformat() if result.query_time else None,
        "cutoff": cutoff,
        "origins": result.total - len(result.failures),
    }
    return IntersectionResultModel(
        query_time=result.query_time,
        empty=result.is_empty,
        polygon=geometry_to_feature_collection(result.polygon, properties),
        all_polygons=geometry_to_feature_collection(result.all_polygons, properties),
        failures=dict(result.failures.reasons),
        exclusion_message=result.exclusion_message,
        degenerate_steps=[str(issue) for issue in result.degenerate],
    )


def process_intersection_request(
    payload: IntersectionRequest,
    *,
    cancel_event: threading.Event | None = None,
) -> IntersectionResponse:
    origins = [point.to_point() for point in payload.origins]
    query_times = query_times_between(payload.start, payload.end, payload.time_step_minutes)
    params = payload.travel.to_params()

    with OTPClient() as client:
        intersector = MultiOriginIntersector(client, cancel_event=cancel_event)
        if len(query_times) == 1:
            results = [intersector.run(origins, query_times[0], params, payload.cutoff)]
        else:
            results = intersector.run_series(origins, query_times, params, payload.cutoff)

    models = [_intersection_model(result, payload.cutoff) for result in results]
    response = IntersectionResponse(results=models)

    if payload.persist:
        storage = FileStorage()
        run_dir = storage.make_run_directory(prefix="intersection")
        for result, model in zip(results, models):
            suffix = f"_{result.query_time:%Y%m%d_%H%M}" if len(results) > 1 and result.query_time else ""
            storage.write_json(run_dir / f"intersection{suffix}.geojson", model.polygon)
            storage.write_json(run_dir / f"all_polygons{suffix}.geojson", model.all_polygons)
        storage.write_json(
            run_dir / "summary.json",
            {
                "run_label": payload.run_label,
                "results": [
                    model.model_dump(mode="json", exclude={"polygon", "all_polygons"}) for model in models
                ],
            },
        )
        response.output_dir = str(run_dir)
        logger.info(f"{len(results)} intersection result(s) saved to {run_dir}")

    return response
