"""Point-in-polygon classification of destinations against one origin's isochrones."""

from __future__ import annotations

from typing import Sequence

from ...models.domain import Point
from ..geospatial import GeometryService, default_geometry_service
from .models import UNREACHABLE, PolygonSet, ReachabilityRow


def row_key(polygon_set: PolygonSet, timestamped: bool = False) -> str:
    if timestamped and polygon_set.query_time is not None:
        return f"{polygon_set.origin.name} {polygon_set.query_time:%Y-%m-%d %H:%M}"
    return polygon_set.origin.name


def build_row(
    polygon_set: PolygonSet,
    destinations: Sequence[Point],
    *,
    geometry: GeometryService | None = None,
    key: str | None = None,
) -> ReachabilityRow:
    """Assign every destination the smallest cutoff whose polygon contains it.

    Every cutoff polygon is tested; the polygons are not assumed to be nested,
    so a destination inside the 30 minute polygon is reported as 30 even when a
    larger cutoff's polygon misses it. Destinations inside no polygon are
    ``UNREACHABLE``.
    """

    geometry = geometry or default_geometry_service
    coordinates = [(point.longitude, point.latitude) for point in destinations]
    best = [UNREACHABLE] * len(destinations)

    for cutoff_polygon in polygon_set.ascending():
        inside = geometry.contains(cutoff_polygon.geometry, coordinates)
        for index, contained in enumerate(inside):
            if contained and cutoff_polygon.cutoff_minutes < best[index]:
                best[index] = cutoff_polygon.cutoff_minutes

    return ReachabilityRow(
        key=key or row_key(polygon_set),
        origin_id=polygon_set.origin.id,
        times={point.id: value for point, value in zip(destinations, best)},
        query_time=polygon_set.query_time,
    )
