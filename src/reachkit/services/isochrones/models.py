"""Isochrone domain models: cutoff polygons, reachability rows and failures."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional, Sequence

from shapely.geometry.base import BaseGeometry

from ...models.domain import Point

UNREACHABLE = math.inf
SECONDS_PER_MINUTE = 60.0


@dataclass(frozen=True, slots=True)
class CutoffPolygon:
    origin_id: str
    cutoff_minutes: float
    geometry: BaseGeometry
    simplified: BaseGeometry


@dataclass(frozen=True, slots=True)
class PolygonSet:
    """All cutoff polygons returned for one origin at one query time."""

    origin: Point
    query_time: Optional[datetime]
    polygons: tuple[CutoffPolygon, ...]
    requested_cutoffs: tuple[float, ...] = ()

    @property
    def cutoffs(self) -> list[float]:
        return [polygon.cutoff_minutes for polygon in self.polygons]

    @property
    def missing_cutoffs(self) -> list[float]:
        present = set(self.cutoffs)
        return [cutoff for cutoff in self.requested_cutoffs if cutoff not in present]

    def ascending(self) -> list[CutoffPolygon]:
        return sorted(self.polygons, key=lambda polygon: polygon.cutoff_minutes)


@dataclass(slots=True)
class ReachabilityRow:
    """Minimum reachable cutoff (minutes) per destination for one origin."""

    key: str
    origin_id: str
    times: dict[str, float]
    query_time: Optional[datetime] = None

    def minutes(self, destination_id: str) -> Optional[float]:
        value = self.times.get(destination_id, UNREACHABLE)
        if value is None or math.isinf(value) or math.isnan(value):
            return None
        return value

    @property
    def reachable_count(self) -> int:
        return sum(1 for value in self.times.values() if math.isfinite(value))


class ReachabilityMatrix:
    """Sparse origin x destination table of minimum travel times, built by merging rows."""

    def __init__(self, destination_ids: Sequence[str]) -> None:
        self.destination_ids = list(destination_ids)
        self._known = set(self.destination_ids)
        self._rows: dict[str, ReachabilityRow] = {}

    def merge(self, row: ReachabilityRow) -> None:
        if row.key in self._rows:
            raise ValueError(f"Row '{row.key}' has already been merged.")
        unknown = set(row.times) - self._known
        if unknown:
            raise ValueError(f"Row '{row.key}' references unknown destinations: {sorted(unknown)}")
        self._rows[row.key] = row

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, key: object) -> bool:
        return key in self._rows

    @property
    def row_keys(self) -> list[str]:
        return list(self._rows)

    def to_table(self) -> dict[str, dict[str, Optional[float]]]:
        """Final form: every destination column present, unreachable cells as None."""

        return {
            key: {destination_id: row.minutes(destination_id) for destination_id in self.destination_ids}
            for key, row in self._rows.items()
        }


@dataclass(slots=True)
class FailureSet:
    """Origins (or origin/time keys) that produced no usable polygon."""

    reasons: dict[str, str] = field(default_factory=dict)

    def add(self, key: str, reason: str) -> None:
        self.reasons[key] = reason

    def __contains__(self, key: object) -> bool:
        return key in self.reasons

    def __len__(self) -> int:
        return len(self.reasons)

    def __iter__(self) -> Iterator[str]:
        return iter(self.reasons)

    def exclusion_message(self, total: int, noun: str = "origins") -> str:
        percentage = (100.0 * len(self) / total) if total else 0.0
        return f"{len(self)} out of {total} {noun} excluded ({round(percentage, 1):g}%)"
