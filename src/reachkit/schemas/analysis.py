"""Pydantic request/response models for analysis endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ..config import settings
from ..models.domain import Point, TravelParams
from ..services.trips.loop import JourneyLoop


class PointModel(BaseModel):
    name: str = Field(..., min_length=1)
    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)
    attributes: dict[str, Any] = Field(
        default_factory=dict,
        description="Optional per-point overrides: mode, max_duration, time, date.",
    )

    def to_point(self) -> Point:
        return Point(name=self.name, latitude=self.lat, longitude=self.lon, attributes=dict(self.attributes))

    @classmethod
    def from_point(cls, point: Point) -> "PointModel":
        return cls(name=point.name, lat=point.latitude, lon=point.longitude, attributes=dict(point.attributes))


class TravelParamsModel(BaseModel):
    modes: str = Field(default_factory=lambda: settings.default_modes)
    max_walk_distance: float = Field(default_factory=lambda: settings.max_walk_distance, ge=0.0)
    walk_reluctance: float = Field(default_factory=lambda: settings.walk_reluctance, ge=0.0, le=20.0)
    walk_speed: float = Field(default_factory=lambda: settings.walk_speed, gt=0.0)
    bike_speed: float = Field(default_factory=lambda: settings.bike_speed, gt=0.0)
    min_transfer_time: int = Field(default_factory=lambda: settings.min_transfer_time, ge=0)
    max_transfers: int = Field(default_factory=lambda: settings.max_transfers, ge=0)
    wheelchair: bool = False
    arrive_by: bool = False

    def to_params(self) -> TravelParams:
        return TravelParams(**self.model_dump())


class _RunOptions(BaseModel):
    start: datetime = Field(..., description="Query date and time.")
    travel: TravelParamsModel = Field(default_factory=TravelParamsModel)
    persist: bool = Field(default=True, description="Whether to persist outputs to files.")
    run_label: Optional[str] = Field(default=None, description="Friendly name for persisted outputs.")


class _TimeSeriesOptions(_RunOptions):
    end: Optional[datetime] = Field(default=None, description="Last query time of a time series.")
    time_step_minutes: Optional[int] = Field(default=None, gt=0)


class MatrixRequest(_TimeSeriesOptions):
    origins: list[PointModel]
    destinations: list[PointModel]
    cutoffs: Optional[list[int]] = Field(default=None, description="Isochrone cutoffs in minutes.")
    checkpoint_every: Optional[int] = Field(default=None, ge=1)

    @field_validator("cutoffs")
    @classmethod
    def validate_cutoffs(cls, value: Optional[list[int]]) -> Optional[list[int]]:
        if value is not None and any(cutoff <= 0 for cutoff in value):
            raise ValueError("cutoffs must be positive minutes")
        return value


class MatrixResponse(BaseModel):
    destinations: list[str]
    rows: dict[str, dict[str, Optional[float]]]
    failures: dict[str, str]
    total: int
    excluded: int
    exclusion_message: str
    missing_cutoffs: dict[str, list[float]]
    cancelled: bool = False
    output_dir: Optional[str] = None


class IntersectionRequest(_TimeSeriesOptions):
    origins: list[PointModel]
    cutoff: Optional[int] = Field(default=None, gt=0, description="Cutoff in minutes unless overridden per origin.")


class IntersectionResultModel(BaseModel):
    query_time: Optional[datetime]
    empty: bool
    polygon: dict
    all_polygons: dict
    failures: dict[str, str]
    exclusion_message: str
    degenerate_steps: list[str]


class IntersectionResponse(BaseModel):
    results: list[IntersectionResultModel]
    output_dir: Optional[str] = None


class TripsRequest(_TimeSeriesOptions):
    origins: list[PointModel]
    destinations: list[PointModel]
    loop: JourneyLoop = JourneyLoop.ALL_PAIRS
    origin_row: int = Field(default=1, ge=1)
    destination_row: int = Field(default=1, ge=1)
    return_journey: bool = False
    nearest_count: int = Field(default=1, ge=1, description="Destinations kept per origin by the nearest loop.")
    max_distance_km: Optional[float] = Field(default=None, gt=0.0)
    checkpoint_every: Optional[int] = Field(default=None, ge=1)


class TripModel(BaseModel):
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
    query_time: Optional[datetime] = Field(default=None, description="Requested time, set for time series.")


class TripsResponse(BaseModel):
    trips: list[TripModel]
    dropped: list[str]
    failed: int
    output_dir: Optional[str] = None


class ChoroplethRequest(_RunOptions):
    origins: list[PointModel]
    origin_areas: list[dict] = Field(..., description="GeoJSON features of origin areas.")
    destination: PointModel
    duration_cutoff: float = Field(default=60, gt=0)
    waiting_cutoff: float = Field(default=10, ge=0)
    transfer_cutoff: int = Field(default=1, ge=0)
    name_property: str = "name"


class ChoroplethResponse(BaseModel):
    rows: list[dict]
    feature_collection: dict
    unmatched_areas: list[str]
    output_dir: Optional[str] = None


class PointsUploadResponse(BaseModel):
    file_name: str
    points: list[PointModel]


class AreasUploadResponse(BaseModel):
    file_name: str
    features: list[dict]
