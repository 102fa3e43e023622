"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Sequence

from ...errors import RequestError
from ...models.domain import Point, TravelParams

OK = "OK"


@dataclass(slots=True)
class RawResult:
    """Status plus opaque payload of a single routing request."""

    status: str
    payload: Optional[str] = None
    message: str = ""
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == OK

    @property
    def error(self) -> Optional[RequestError]:
        if self.ok:
            return None
        return RequestError(self.status, self.message)


@dataclass(slots=True)
class TripRecord:
    """Summary of the first itinerary returned for one origin/destination call."""

    origin: str
    destination: str
    status: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    distance_km: Optional[float] = None
    duration_mins: Optional[float] = None
    walk_time_mins: Optional[float] = None
    transit_time_mins: Optional[float] = None
    waiting_time_mins: Optional[float] = None
    transfers: Optional[int] = None


class RoutingClient(Protocol):
    """Anything that can answer isochrone and plan requests like ``OTPClient``."""

    def isochrone(
        self,
        origin: Point,
        cutoffs_minutes: Sequence[int],
        query_time: datetime,
        params: TravelParams,
    ) -> RawResult: ...

    def plan(
        self,
        origin: Point,
        destination: Point,
        query_time: datetime,
        params: TravelParams,
    ) -> RawResult: ...
