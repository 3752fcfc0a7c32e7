"""
Observer location and pass search filters.

This module provides the value objects describing where the user is
observing from and which passes they are interested in.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import logging

from .utils import parse_datetime, to_naive_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObserverLocation:
    """
    Ground observer position.

    Latitude and longitude are geodetic degrees; altitude is meters above
    the ellipsoid and defaults to sea level.
    """

    lat: float  # degrees, -90 to +90
    lng: float  # degrees, -180 to +180
    name: Optional[str] = None
    altitude_m: float = 0.0

    def __post_init__(self) -> None:
        """Validate coordinates after initialization."""
        if not -90 <= self.lat <= 90:
            raise ValueError(f"Invalid latitude: {self.lat}. Must be between -90 and 90 degrees.")

        if not -180 <= self.lng <= 180:
            raise ValueError(f"Invalid longitude: {self.lng}. Must be between -180 and 180 degrees.")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "name": self.name,
            "altitude_m": self.altitude_m,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ObserverLocation":
        return cls(
            lat=float(data["lat"]),
            lng=float(data["lng"]),
            name=data.get("name"),
            altitude_m=float(data.get("altitude_m", 0.0)),
        )

    def __str__(self) -> str:
        label = f"{self.name} " if self.name else ""
        return f"{label}({self.lat:.4f}°, {self.lng:.4f}°)"


@dataclass(frozen=True)
class SearchFilters:
    """
    Pass search window and acceptance criteria.

    Times are UTC; timezone-aware values are converted to naive UTC.
    """

    start_time: datetime
    end_time: datetime
    location: ObserverLocation
    min_elevation_deg: float = 10.0
    consider_daylight: bool = False

    def __post_init__(self) -> None:
        # Frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "start_time", to_naive_utc(self.start_time))
        object.__setattr__(self, "end_time", to_naive_utc(self.end_time))

        if self.start_time > self.end_time:
            raise ValueError(
                f"start_time ({self.start_time}) must not be after end_time ({self.end_time})"
            )
        if not -90 <= self.min_elevation_deg <= 90:
            raise ValueError(
                f"Invalid min_elevation_deg: {self.min_elevation_deg}. Must be between -90 and 90 degrees."
            )

    @classmethod
    def for_duration(
        cls,
        location: ObserverLocation,
        start_time: datetime,
        duration_hours: float,
        min_elevation_deg: float = 10.0,
        consider_daylight: bool = False,
    ) -> "SearchFilters":
        """Build filters covering ``duration_hours`` from ``start_time``."""
        return cls(
            start_time=start_time,
            end_time=start_time + timedelta(hours=duration_hours),
            location=location,
            min_elevation_deg=min_elevation_deg,
            consider_daylight=consider_daylight,
        )

    @property
    def duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "location": self.location.to_dict(),
            "min_elevation_deg": self.min_elevation_deg,
            "consider_daylight": self.consider_daylight,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchFilters":
        start = data["start_time"]
        end = data["end_time"]
        return cls(
            start_time=start if isinstance(start, datetime) else _parse_iso(start),
            end_time=end if isinstance(end, datetime) else _parse_iso(end),
            location=ObserverLocation.from_dict(data["location"]),
            min_elevation_deg=float(data.get("min_elevation_deg", 10.0)),
            consider_daylight=bool(data.get("consider_daylight", False)),
        )


def _parse_iso(value: str) -> datetime:
    try:
        return to_naive_utc(datetime.fromisoformat(value.rstrip("Z")))
    except ValueError:
        return parse_datetime(value)
