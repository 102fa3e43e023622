"""Geospatial helper functions and the geometry service used by the pipelines."""

from __future__ import annotations

import math
from typing import Protocol, Sequence

import numpy as np
import shapely
from shapely.geometry import GeometryCollection, MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def empty_polygon() -> Polygon:
    return Polygon()


def polygonal_part(geometry: BaseGeometry | None) -> BaseGeometry:
    """Return only the polygonal component of a geometry.

    Intersections of touching or disjoint shapes come back as points, lines or
    mixed collections. Those artifacts are dropped; when nothing polygonal is
    left the result is the empty polygon.
    """

    if geometry is None or geometry.is_empty:
        return empty_polygon()
    if isinstance(geometry, (Polygon, MultiPolygon)):
        return geometry
    if isinstance(geometry, GeometryCollection):
        parts = [polygonal_part(part) for part in geometry.geoms]
        parts = [part for part in parts if not part.is_empty]
        if not parts:
            return empty_polygon()
        return unary_union(parts)
    return empty_polygon()


class GeometryService(Protocol):
    """Narrow capability set the isochrone pipelines depend on."""

    def simplify(self, geometry: BaseGeometry, tolerance: float) -> BaseGeometry: ...

    def intersect(self, left: BaseGeometry, right: BaseGeometry) -> BaseGeometry: ...

    def union(self, left: BaseGeometry, right: BaseGeometry) -> BaseGeometry: ...

    def contains(self, geometry: BaseGeometry, coordinates: Sequence[tuple[float, float]]) -> list[bool]: ...


class ShapelyGeometryService:
    """GeometryService backed by shapely/GEOS.

    Coordinates are (lon, lat) pairs. Points lying on a polygon boundary count
    as contained.
    """

    def simplify(self, geometry: BaseGeometry, tolerance: float) -> BaseGeometry:
        if geometry.is_empty or tolerance <= 0:
            return self._valid(geometry)
        return self._valid(geometry.simplify(tolerance, preserve_topology=True))

    def intersect(self, left: BaseGeometry, right: BaseGeometry) -> BaseGeometry:
        if left.is_empty or right.is_empty:
            return empty_polygon()
        return self._valid(left).intersection(self._valid(right))

    def union(self, left: BaseGeometry, right: BaseGeometry) -> BaseGeometry:
        if left.is_empty:
            return self._valid(right)
        if right.is_empty:
            return self._valid(left)
        return unary_union([self._valid(left), self._valid(right)])

    def contains(self, geometry: BaseGeometry, coordinates: Sequence[tuple[float, float]]) -> list[bool]:
        if not coordinates:
            return []
        if geometry.is_empty:
            return [False] * len(coordinates)
        xy = np.asarray(coordinates, dtype=float)
        shapely.prepare(geometry)
        return shapely.intersects_xy(geometry, xy[:, 0], xy[:, 1]).tolist()

    @staticmethod
    def _valid(geometry: BaseGeometry) -> BaseGeometry:
        if geometry.is_empty or geometry.is_valid:
            return geometry
        return polygonal_part(shapely.make_valid(geometry))


default_geometry_service = ShapelyGeometryService()
