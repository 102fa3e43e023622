"""Drive isochrone requests across many origins into a reachability matrix."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Sequence

from ...config import settings
from ...errors import ConfigurationError, ParseError
from ...models.domain import Point, TravelParams
from ...persistence.filesystem import CheckpointWriter
from ..batch import BatchItem, BatchRunner, BatchSummary, ItemState
from ..geospatial import GeometryService, default_geometry_service
from ..outputs.formatter import failures_to_csv, matrix_to_csv
from ..routing.models import RoutingClient
from .models import FailureSet, ReachabilityMatrix
from .polygons import parse_polygon_set
from .reachability import build_row

logger = logging.getLogger(__name__)


def time_series(start: datetime, end: datetime, step_minutes: int) -> list[datetime]:
    """Query times from ``start`` to ``end`` inclusive, ``step_minutes`` apart."""

    if step_minutes <= 0:
        raise ConfigurationError("Time step must be a positive number of minutes.")
    if end < start:
        raise ConfigurationError("End time must not be before start time.")
    times = []
    current = start
    while current <= end:
        times.append(current)
        current += timedelta(minutes=step_minutes)
    return times


def query_times_between(start: datetime, end: Optional[datetime], step_minutes: Optional[int]) -> list[datetime]:
    """A single ``start`` time, or the series up to ``end`` when both end and step are given."""

    if end is None:
        if step_minutes is not None:
            raise ConfigurationError("A time step was given without an end time.")
        return [start]
    if step_minutes is None:
        raise ConfigurationError("An end time requires time_step_minutes.")
    return time_series(start, end, step_minutes)


def validate_points(points: Sequence[Point], label: str) -> None:
    if not points:
        raise ConfigurationError(f"No {label} points were provided.")
    seen: set[str] = set()
    for point in points:
        if point.name in seen:
            raise ConfigurationError(f"Duplicate {label} name '{point.name}'.")
        seen.add(point.name)


@dataclass(slots=True)
class MatrixRunResult:
    matrix: ReachabilityMatrix
    failures: FailureSet
    summary: BatchSummary
    total: int
    missing_cutoffs: dict[str, list[float]] = field(default_factory=dict)

    @property
    def exclusion_message(self) -> str:
        return self.failures.exclusion_message(self.total)


class MultiOriginAggregator:
    """Builds one ReachabilityRow per origin (and query time) and merges them.

    Origins whose request fails or whose response cannot be parsed are added to
    the FailureSet and contribute no row. Every ``checkpoint_every`` successful
    origins the matrix so far and the failures are flushed through the
    checkpoint writer.
    """

    def __init__(
        self,
        client: RoutingClient,
        *,
        geometry: GeometryService | None = None,
        tolerance: float | None = None,
        checkpoint: CheckpointWriter | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.client = client
        self.geometry = geometry or default_geometry_service
        self.tolerance = settings.simplify_tolerance if tolerance is None else tolerance
        self.checkpoint = checkpoint
        self.cancel_event = cancel_event

    def run(
        self,
        origins: Sequence[Point],
        destinations: Sequence[Point],
        query_time: datetime | Sequence[datetime],
        params: TravelParams,
        checkpoint_every: int | None = None,
        cutoffs: Sequence[int] | None = None,
    ) -> MatrixRunResult:
        validate_points(origins, "origin")
        validate_points(destinations, "destination")
        cutoffs = sorted(cutoffs or settings.default_cutoffs)
        if any(cutoff <= 0 for cutoff in cutoffs):
            raise ConfigurationError("Isochrone cutoffs must be positive minutes.")
        if checkpoint_every is None:
            checkpoint_every = settings.checkpoint_every
        if checkpoint_every < 1:
            raise ConfigurationError("checkpoint_every must be at least 1.")

        query_times = [query_time] if isinstance(query_time, datetime) else list(query_time)
        if not query_times:
            raise ConfigurationError("At least one query time is required.")
        timestamped = len(query_times) > 1
        work = [(origin, when) for origin in origins for when in query_times]

        matrix = ReachabilityMatrix([point.id for point in destinations])
        failures = FailureSet()
        missing: dict[str, list[float]] = {}
        successes = 0

        def process(item: BatchItem[tuple[Point, datetime]]) -> None:
            nonlocal successes
            origin, when = item.value
            key = f"{origin.name} {when:%Y-%m-%d %H:%M}" if timestamped else origin.name

            item.advance(ItemState.REQUESTING)
            result = self.client.isochrone(origin, cutoffs, when, params)
            if not result.ok:
                self._record_failure(item, failures, key, str(result.error), len(work))
                return

            parsed = parse_polygon_set(
                result,
                origin,
                requested_cutoffs=cutoffs,
                query_time=when,
                tolerance=self.tolerance,
                geometry=self.geometry,
            )
            if isinstance(parsed, ParseError):
                self._record_failure(item, failures, key, str(parsed), len(work))
                return
            item.advance(ItemState.PARSED)

            row = build_row(parsed, destinations, geometry=self.geometry, key=key)
            matrix.merge(row)
            item.advance(ItemState.AGGREGATED)
            logger.debug(f"{key}: {row.reachable_count} of {len(destinations)} destinations reachable")
            if parsed.missing_cutoffs:
                missing[key] = parsed.missing_cutoffs

            successes += 1
            if self.checkpoint is not None and successes % checkpoint_every == 0:
                logger.info(f"Large dataset, failsafe, saving {len(matrix)} rows to {self.checkpoint.run_dir}")
                self.checkpoint.write(
                    {
                        CheckpointWriter.MATRIX_FILE: matrix_to_csv(matrix),
                        CheckpointWriter.FAILURES_FILE: failures_to_csv(failures),
                    }
                )

        runner = BatchRunner("isochrones", cancel_event=self.cancel_event)
        summary = runner.run(work, process)

        outcome = MatrixRunResult(
            matrix=matrix,
            failures=failures,
            summary=summary,
            total=len(work),
            missing_cutoffs=missing,
        )
        if failures:
            logger.warning(outcome.exclusion_message)
        return outcome

    @staticmethod
    def _record_failure(
        item: BatchItem,
        failures: FailureSet,
        key: str,
        reason: str,
        total: int,
    ) -> None:
        item.advance(ItemState.FAILED, reason)
        failures.add(key, reason)
        logger.warning(
            f"Removed {key} from analysis as no polygon could be generated from it ({reason}). "
            f"{len(failures)} excluded so far, now {total - len(failures)} not {total}."
        )
