"""Data access helpers for loading origin/destination points and origin areas."""

from __future__ import annotations

import csv
import io
import json
import logging
from pathlib import Path
from typing import Any, Optional, Sequence

from ..errors import ConfigurationError
from ..models.domain import Point
from ..services.geocoding import PostcodeGeocoder

logger = logging.getLogger(__name__)


def _coerce_float(value: Optional[str], column: str, row_number: int) -> Optional[float]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return float(str(value).replace(",", ""))
    except ValueError as exc:
        raise ConfigurationError(f"Unable to parse {column} '{value}' on row {row_number}") from exc


def load_points(source: Path, geocoder: PostcodeGeocoder | None = None) -> tuple[Point, ...]:
    """Load named points from a CSV with ``name`` plus ``lat``/``lon`` or ``postcode`` columns.

    Column names are matched case-insensitively. Rows whose postcode cannot be
    resolved are dropped with a warning. Points come back sorted by name.
    """

    if not source.exists():
        raise FileNotFoundError(f"Point file not found: {source}")
    text = source.read_text(encoding="utf-8-sig")
    return read_points_csv(text, source=str(source), geocoder=geocoder)


def read_points_csv(
    text: str,
    *,
    source: str = "input",
    geocoder: PostcodeGeocoder | None = None,
) -> tuple[Point, ...]:
    reader = csv.DictReader(io.StringIO(text, newline=""))
    if not reader.fieldnames:
        raise ConfigurationError(f"Point file '{source}' is missing a header row.")
    columns = [name.strip().lower() for name in reader.fieldnames if name]
    rows = [{key.strip().lower(): value for key, value in row.items() if key} for row in reader]
    return build_points(rows, columns, source=source, geocoder=geocoder)


def build_points(
    rows: Sequence[dict[str, Any]],
    columns: Sequence[str],
    *,
    source: str = "input",
    geocoder: PostcodeGeocoder | None = None,
) -> tuple[Point, ...]:
    """Validate columns and turn lower-cased row dicts into sorted, uniquely named points."""

    if "name" not in columns:
        raise ConfigurationError(f"No 'name' column present in {source}.")
    use_coordinates = "lat" in columns
    if use_coordinates and "lon" not in columns:
        raise ConfigurationError(f"No longitudinal 'lon' column present in {source}.")
    if not use_coordinates:
        if "postcode" not in columns:
            raise ConfigurationError(
                f"Neither 'lat'/'lon' nor 'postcode' columns found in {source}; "
                "provide coordinates (best) or a postcode for each location."
            )
        logger.info(f"No 'lat' column in {source}; converting postcodes to coordinates")
        geocoder = geocoder or PostcodeGeocoder()

    points: list[Point] = []
    for row_number, row in enumerate(rows, start=1):
        name = str(row.get("name") or "").strip()
        if not name:
            raise ConfigurationError(f"Row {row_number} in {source} has no name.")
        if use_coordinates:
            lat = _coerce_float(row.get("lat"), "lat", row_number)
            lon = _coerce_float(row.get("lon"), "lon", row_number)
            if lat is None or lon is None:
                raise ConfigurationError(f"Row {row_number} ('{name}') in {source} is missing coordinates.")
        else:
            located = geocoder.lookup(str(row.get("postcode") or ""))
            if located is None:
                logger.warning(f"Postcode for '{name}' cannot be converted to coordinates; removed from {source}")
                continue
            lat, lon = located
        attributes = {key: value for key, value in row.items() if key not in {"name", "lat", "lon"}}
        points.append(Point(name=name, latitude=lat, longitude=lon, attributes=attributes))

    points.sort(key=lambda point: point.name)
    seen: set[str] = set()
    for point in points:
        if point.name in seen:
            raise ConfigurationError(f"Duplicate point name '{point.name}' in {source}.")
        seen.add(point.name)
    return tuple(points)


def select_row(points: Sequence[Point], row: int, label: str) -> Point:
    """Pick a point by 1-based row number."""

    if row < 1 or row > len(points):
        raise ConfigurationError(f"Row {row} is not in the {label} file ({len(points)} rows).")
    return points[row - 1]


def load_polygon_features(source: Path) -> list[dict]:
    """Read a GeoJSON FeatureCollection of named origin areas."""

    if not source.exists():
        raise FileNotFoundError(f"GeoJSON file not found: {source}")
    return parse_polygon_features(source.read_text(encoding="utf-8"), str(source))


def parse_polygon_features(text: str, source: str = "input") -> list[dict]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"'{source}' is not valid GeoJSON: {exc}") from exc
    if not isinstance(data, dict) or data.get("type") != "FeatureCollection":
        raise ConfigurationError(f"'{source}' is not a GeoJSON FeatureCollection.")
    features = data.get("features") or []
    logger.info(f"GeoJSON data successfully loaded: {len(features)} features from {source}")
    return features
