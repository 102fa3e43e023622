"""Common reachability: progressive intersection of isochrones from many origins."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Sequence

from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from ...config import settings
from ...errors import ConfigurationError, GeometryDegenerateError, ParseError
from ...models.domain import Point, TravelParams, resolve_mode
from ..batch import BatchItem, BatchRunner, BatchSummary, ItemState
from ..geospatial import GeometryService, default_geometry_service, empty_polygon, polygonal_part
from ..routing.models import RoutingClient
from .aggregator import validate_points
from .models import FailureSet, PolygonSet
from .polygons import parse_polygon_set

logger = logging.getLogger(__name__)

_TIME_FORMATS = ("%I:%M %p", "%I:%M%p", "%H:%M", "%H:%M:%S")
_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m-%d-%Y", "%d/%m/%Y")


class IntersectionEngine:
    """Running intersection (and union, for display) of one polygon per origin.

    Both accumulators are updated in place one polygon at a time. Intersection
    steps that come back as points, lines or mixed collections keep only their
    polygonal part; once the intersection is empty it stays empty.
    """

    def __init__(self, geometry: GeometryService | None = None) -> None:
        self.geometry = geometry or default_geometry_service
        self._intersection: BaseGeometry | None = None
        self._union: BaseGeometry | None = None
        self.origin_ids: list[str] = []
        self.degenerate: list[GeometryDegenerateError] = []

    def accumulate(self, polygon_set: PolygonSet) -> None:
        polygon = self._footprint(polygon_set)
        self.origin_ids.append(polygon_set.origin.id)

        if self._intersection is None:
            self._intersection = polygon
            self._union = polygon
            return

        self._union = self.geometry.union(self._union, polygon)
        if self._intersection.is_empty:
            return

        raw = self.geometry.intersect(self._intersection, polygon)
        cleaned = polygonal_part(raw)
        if cleaned.is_empty or not isinstance(raw, (Polygon, MultiPolygon)):
            issue = GeometryDegenerateError(step=len(self.origin_ids), geom_type=raw.geom_type)
            self.degenerate.append(issue)
            logger.warning(
                f"Intersection with {polygon_set.origin.name} produced {raw.geom_type}"
                f"{'; no common area remains' if cleaned.is_empty else '; kept polygonal part'}"
            )
        self._intersection = cleaned

    def _footprint(self, polygon_set: PolygonSet) -> BaseGeometry:
        footprint = empty_polygon()
        for cutoff_polygon in polygon_set.polygons:
            footprint = self.geometry.union(footprint, cutoff_polygon.simplified)
        return polygonal_part(footprint)

    def result(self) -> BaseGeometry:
        return empty_polygon() if self._intersection is None else self._intersection

    def all_polygons(self) -> BaseGeometry:
        return empty_polygon() if self._union is None else self._union

    @property
    def is_empty(self) -> bool:
        return self.result().is_empty


@dataclass(slots=True)
class OriginRequest:
    origin: Point
    params: TravelParams
    cutoff: int
    query_time: datetime


@dataclass(slots=True)
class IntersectionRunResult:
    query_time: datetime | None
    polygon: BaseGeometry
    all_polygons: BaseGeometry
    failures: FailureSet
    summary: BatchSummary
    total: int
    degenerate: list[GeometryDegenerateError] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.polygon.is_empty

    @property
    def exclusion_message(self) -> str:
        return self.failures.exclusion_message(self.total)


def _parse_override(value: object, formats: Sequence[str], kind: str, origin: Point):
    text = str(value).strip()
    for fmt in formats:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ConfigurationError(f"Unrecognised {kind} '{text}' for origin '{origin.name}'.")


def resolve_origin_request(
    origin: Point,
    params: TravelParams,
    cutoff: int,
    query_time: datetime,
    *,
    allow_time_override: bool = True,
) -> OriginRequest:
    """Apply per-origin ``mode``/``max_duration``/``time``/``date`` attributes over run defaults."""

    mode = resolve_mode(origin.attribute("mode"), params.modes)
    max_duration = origin.attribute("max_duration")
    if max_duration is not None:
        try:
            cutoff = int(float(max_duration))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid max_duration '{max_duration}' for origin '{origin.name}'.") from exc
    if cutoff <= 0:
        raise ConfigurationError(f"Cutoff for origin '{origin.name}' must be positive.")

    when = query_time
    if allow_time_override:
        day: date = query_time.date()
        clock: time = query_time.time()
        if origin.attribute("date") is not None:
            day = _parse_override(origin.attribute("date"), _DATE_FORMATS, "date", origin).date()
        if origin.attribute("time") is not None:
            clock = _parse_override(origin.attribute("time"), _TIME_FORMATS, "time", origin).time()
        when = datetime.combine(day, clock)

    return OriginRequest(origin=origin, params=params.with_mode(mode), cutoff=cutoff, query_time=when)


class MultiOriginIntersector:
    """Requests one isochrone per origin and intersects them into a common area."""

    def __init__(
        self,
        client: RoutingClient,
        *,
        geometry: GeometryService | None = None,
        tolerance: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.client = client
        self.geometry = geometry or default_geometry_service
        self.tolerance = settings.simplify_tolerance if tolerance is None else tolerance
        self.cancel_event = cancel_event

    def run(
        self,
        origins: Sequence[Point],
        query_time: datetime,
        params: TravelParams,
        cutoff: int | None = None,
        *,
        allow_time_override: bool = True,
    ) -> IntersectionRunResult:
        validate_points(origins, "origin")
        default_cutoff = cutoff or settings.default_intersect_cutoff
        requests = [
            resolve_origin_request(
                origin, params, default_cutoff, query_time, allow_time_override=allow_time_override
            )
            for origin in origins
        ]

        engine = IntersectionEngine(self.geometry)
        failures = FailureSet()

        def process(item: BatchItem[OriginRequest]) -> None:
            request = item.value
            item.advance(ItemState.REQUESTING)
            result = self.client.isochrone(request.origin, [request.cutoff], request.query_time, request.params)
            if not result.ok:
                self._record_failure(item, failures, request.origin.name, str(result.error))
                return
            parsed = parse_polygon_set(
                result,
                request.origin,
                requested_cutoffs=[request.cutoff],
                query_time=request.query_time,
                tolerance=self.tolerance,
                geometry=self.geometry,
            )
            if isinstance(parsed, ParseError):
                self._record_failure(item, failures, request.origin.name, str(parsed))
                return
            item.advance(ItemState.PARSED)
            engine.accumulate(parsed)
            item.advance(ItemState.AGGREGATED)

        summary = BatchRunner("intersections", cancel_event=self.cancel_event).run(requests, process)

        outcome = IntersectionRunResult(
            query_time=query_time,
            polygon=engine.result(),
            all_polygons=engine.all_polygons(),
            failures=failures,
            summary=summary,
            total=len(requests),
            degenerate=list(engine.degenerate),
        )
        if failures:
            logger.warning(outcome.exclusion_message)
        if outcome.is_empty:
            logger.warning(f"No common reachable area across {len(engine.origin_ids)} origins")
        return outcome

    def run_series(
        self,
        origins: Sequence[Point],
        query_times: Sequence[datetime],
        params: TravelParams,
        cutoff: int | None = None,
    ) -> list[IntersectionRunResult]:
        """One intersection per query time; per-origin time/date overrides are ignored."""

        if not query_times:
            raise ConfigurationError("At least one query time is required.")
        return [
            self.run(origins, when, params, cutoff, allow_time_override=False)
            for when in query_times
        ]

    @staticmethod
    def _record_failure(item: BatchItem, failures: FailureSet, key: str, reason: str) -> None:
        item.advance(ItemState.FAILED, reason)
        failures.add(key, reason)
        logger.warning(f"Removed {key} from intersection as no polygon could be generated from it ({reason}).")
