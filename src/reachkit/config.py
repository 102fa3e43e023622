"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="REACH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Reachkit Accessibility API"
    log_level: str = Field(default="INFO", description="Root log level for the API process.")
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for run outputs.")
    otp_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OpenTripPlanner server (e.g., http://localhost:8080).",
    )
    otp_router: str = Field(default="default", description="OTP router identifier.")
    otp_request_timeout_seconds: float = Field(default=120.0, gt=0.0)
    otp_connect_timeout_seconds: float = Field(default=10.0, gt=0.0)
    default_cutoffs: tuple[int, ...] = Field(
        default=(30, 60, 90),
        description="Default isochrone cutoffs (minutes) for reachability matrices.",
    )
    default_intersect_cutoff: int = Field(default=60, ge=1)
    simplify_tolerance: float = Field(
        default=0.001,
        ge=0.0,
        description="Simplification tolerance (degrees) applied before set operations.",
    )
    checkpoint_every: int = Field(default=100, ge=1)

    default_modes: str = "WALK,TRANSIT"
    max_walk_distance: float = Field(default=1000.0, ge=0.0, description="Metres.")
    walk_reluctance: float = Field(default=2.0, ge=0.0, le=20.0)
    walk_speed: float = Field(default=1.5, gt=0.0, description="Metres per second.")
    bike_speed: float = Field(default=5.0, gt=0.0, description="Metres per second.")
    min_transfer_time: int = Field(default=1, ge=0, description="Minutes.")
    max_transfers: int = Field(default=5, ge=0)

    postcode_primary_url: str = "http://api.getthedata.com/postcode"
    postcode_fallback_url: str = "http://api.postcodes.io/postcodes"
    geocoder_timeout_seconds: float = Field(default=10.0, gt=0.0)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=("http://localhost:5173", "http://127.0.0.1:5173"),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            return tuple(item.strip() for item in value.split(",") if item.strip())
        return tuple()

    @field_validator("default_cutoffs", mode="before")
    @classmethod
    def _parse_int_tuple_from_env(cls, value: Any) -> tuple[int, ...]:
        """Parse integer tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(int(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(int(item) for item in parsed)
            except (json.JSONDecodeError, TypeError, ValueError):
                pass
            return tuple(int(item.strip()) for item in value.split(",") if item.strip())
        return tuple()

    @property
    def otp_router_url(self) -> Optional[str]:
        if not self.otp_base_url:
            return None
        return f"{self.otp_base_url.rstrip('/')}/otp/routers/{self.otp_router}"


settings = Settings()
