"""Parse OTP isochrone responses into per-cutoff polygon collections."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Sequence

from shapely.errors import ShapelyError
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

from ...config import settings
from ...errors import ParseError
from ...models.domain import Point
from ..geospatial import GeometryService, default_geometry_service, empty_polygon, polygonal_part
from ..routing.models import RawResult
from .models import SECONDS_PER_MINUTE, CutoffPolygon, PolygonSet

logger = logging.getLogger(__name__)


def parse_polygon_set(
    result: RawResult,
    origin: Point,
    *,
    requested_cutoffs: Sequence[float] = (),
    query_time: datetime | None = None,
    tolerance: float | None = None,
    geometry: GeometryService | None = None,
) -> PolygonSet | ParseError:
    """Decode a GeoJSON FeatureCollection into a PolygonSet.

    Each feature's ``time`` property is in seconds and is converted to minutes
    here, once. Features sharing a cutoff are merged. Cutoffs that came back
    without any area are recorded as missing rather than treated as failures.
    Returns a ``ParseError`` value when nothing usable can be decoded.
    """

    geometry = geometry or default_geometry_service
    tolerance = settings.simplify_tolerance if tolerance is None else tolerance

    if not result.payload:
        return ParseError(f"empty response payload for {origin.name}")
    try:
        data = json.loads(result.payload)
    except (json.JSONDecodeError, TypeError) as exc:
        return ParseError(f"malformed GeoJSON for {origin.name}: {exc}")
    if not isinstance(data, dict) or data.get("type") != "FeatureCollection":
        return ParseError(f"expected a FeatureCollection for {origin.name}")

    grouped: dict[float, list[BaseGeometry]] = {}
    for index, feature in enumerate(data.get("features") or []):
        if not isinstance(feature, dict):
            return ParseError(f"feature {index} for {origin.name} is not an object")
        seconds = (feature.get("properties") or {}).get("time")
        if seconds is None:
            logger.warning(f"Ignoring feature {index} for {origin.name}: no 'time' property")
            continue
        if not feature.get("geometry"):
            continue
        try:
            decoded = shape(feature["geometry"])
            minutes = float(seconds) / SECONDS_PER_MINUTE
        except (ShapelyError, ValueError, TypeError, KeyError, IndexError) as exc:
            return ParseError(f"unreadable geometry in feature {index} for {origin.name}: {exc}")
        polygonal = polygonal_part(decoded)
        if polygonal.is_empty:
            continue
        grouped.setdefault(minutes, []).append(polygonal)

    if not grouped:
        return ParseError(f"no polygon could be generated for {origin.name}")

    polygons = []
    for minutes in sorted(grouped):
        merged = empty_polygon()
        try:
            # The union repairs self-intersecting rings before merging.
            for part in grouped[minutes]:
                merged = geometry.union(merged, part)
            simplified = geometry.simplify(merged, tolerance)
        except ShapelyError as exc:
            return ParseError(f"invalid geometry for {origin.name} at {minutes:g} minutes: {exc}")
        if merged.is_empty:
            continue
        polygons.append(
            CutoffPolygon(
                origin_id=origin.id,
                cutoff_minutes=minutes,
                geometry=merged,
                simplified=simplified,
            )
        )
    if not polygons:
        return ParseError(f"no valid polygon could be generated for {origin.name}")

    polygon_set = PolygonSet(
        origin=origin,
        query_time=query_time,
        polygons=tuple(polygons),
        requested_cutoffs=tuple(float(cutoff) for cutoff in requested_cutoffs),
    )
    if polygon_set.missing_cutoffs:
        missing = ", ".join(f"{cutoff:g}" for cutoff in polygon_set.missing_cutoffs)
        logger.info(
            f"Some polygons could not be generated for {origin.name}; "
            f"no area for cutoff(s) {missing} minutes (a cutoff level may be too small)"
        )
    return polygon_set
