"""Utilities to serialize analysis results into CSV/GeoJSON artifacts."""

from __future__ import annotations

import csv
import io
from dataclasses import asdict
from typing import Any, Iterable, Optional, Sequence

from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from ..isochrones.models import FailureSet, ReachabilityMatrix
from ..routing.models import TripRecord


def _cell(value: Optional[float]) -> str:
    return "" if value is None else f"{value:g}"


def matrix_to_csv(matrix: ReachabilityMatrix) -> str:
    """Rows are origins, columns are destination names, cells are minutes (empty = unreachable)."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["origin", *matrix.destination_ids])
    for key, row in matrix.to_table().items():
        writer.writerow([key, *(_cell(row[destination]) for destination in matrix.destination_ids)])
    return buffer.getvalue()


def failures_to_csv(failures: FailureSet) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["origin", "reason"])
    for key, reason in failures.reasons.items():
        writer.writerow([key, reason])
    return buffer.getvalue()


def geometry_to_feature_collection(geometry: BaseGeometry, properties: dict[str, Any] | None = None) -> dict:
    """Wrap a geometry as a single-feature GeoJSON FeatureCollection (empty geometry -> no features)."""

    features = []
    if not geometry.is_empty:
        features.append({"type": "Feature", "properties": properties or {}, "geometry": mapping(geometry)})
    return {"type": "FeatureCollection", "features": features}


def trip_fieldnames(modes: str) -> list[str]:
    walk_column = "walk_time_mins"
    if modes.strip().upper() == "CAR":
        walk_column = "drive_time_mins"
    elif modes.strip().upper() == "BICYCLE":
        walk_column = "cycle_time_mins"
    return [
        "origin",
        "destination",
        "status",
        "start_time",
        "end_time",
        "distance_km",
        "duration_mins",
        walk_column,
        "transit_time_mins",
        "waiting_time_mins",
        "transfers",
    ]


def trips_to_csv(records: Iterable[TripRecord], modes: str) -> str:
    fieldnames = trip_fieldnames(modes)
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=fieldnames, lineterminator="\n")
    writer.writeheader()
    for record in records:
        row = asdict(record)
        row[fieldnames[7]] = row.pop("walk_time_mins")
        writer.writerow({key: "" if value is None else value for key, value in row.items()})
    return buffer.getvalue()


def rows_to_csv(rows: Sequence[dict[str, Any]], fieldnames: Sequence[str]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(fieldnames), extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({key: "" if row.get(key) is None else row.get(key) for key in fieldnames})
    return buffer.getvalue()
