"""Domain models for input points and travel parameters."""

from dataclasses import dataclass, field, replace
from typing import Any, Optional

from ..config import settings

# Friendly transport labels accepted in point files, mapped to OTP mode strings.
MODE_LABELS = {
    "public transport": "TRANSIT,WALK",
    "driving": "CAR",
    "train": "RAIL,WALK",
    "bus": "BUS,WALK",
    "walking": "WALK",
    "cycling": "BICYCLE",
}


def resolve_mode(value: Optional[str], default: str) -> str:
    """Translate a friendly mode label into an OTP mode string."""

    if not value:
        return default
    return MODE_LABELS.get(value.strip().lower(), default)


@dataclass(frozen=True, slots=True)
class Point:
    """A named location read from an origin or destination file."""

    name: str
    latitude: float
    longitude: float
    attributes: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def id(self) -> str:
        return self.name

    @property
    def lat_lon(self) -> str:
        return f"{self.latitude},{self.longitude}"

    def attribute(self, key: str) -> Optional[Any]:
        value = self.attributes.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value


@dataclass(frozen=True, slots=True)
class TravelParams:
    """Routing parameters shared by every request in a run."""

    modes: str = field(default_factory=lambda: settings.default_modes)
    max_walk_distance: float = field(default_factory=lambda: settings.max_walk_distance)
    walk_reluctance: float = field(default_factory=lambda: settings.walk_reluctance)
    walk_speed: float = field(default_factory=lambda: settings.walk_speed)
    bike_speed: float = field(default_factory=lambda: settings.bike_speed)
    min_transfer_time: int = field(default_factory=lambda: settings.min_transfer_time)
    max_transfers: int = field(default_factory=lambda: settings.max_transfers)
    wheelchair: bool = False
    arrive_by: bool = False

    def with_mode(self, modes: str) -> "TravelParams":
        return replace(self, modes=modes)

    def to_query(self) -> dict[str, str]:
        """Render as OTP query parameters (minTransferTime is sent in seconds)."""

        return {
            "mode": self.modes.replace(" ", ""),
            "maxWalkDistance": f"{self.max_walk_distance:g}",
            "walkReluctance": f"{self.walk_reluctance:g}",
            "walkSpeed": f"{self.walk_speed:g}",
            "bikeSpeed": f"{self.bike_speed:g}",
            "minTransferTime": str(int(self.min_transfer_time * 60)),
            "maxTransfers": str(self.max_transfers),
            "wheelchair": str(self.wheelchair).lower(),
            "arriveBy": str(self.arrive_by).lower(),
        }
