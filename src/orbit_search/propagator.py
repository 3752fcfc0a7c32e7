"""
Time-stepped pass propagation.

This module steps a validated TLE across a search window and produces the
raw track point stream consumed by the pass segmenter.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import logging
import math

from .observer import ObserverLocation, SearchFilters
from .orbit import OrbitalMechanics, look_angles_from_geodetic
from .sunlight import is_daylight
from .tle import TleRecord
from .utils import central_angle_deg

logger = logging.getLogger(__name__)

DEFAULT_STEP_SECONDS = 30.0


@dataclass
class TrackPoint:
    """One propagated sample of a satellite as seen from an observer."""

    time: datetime
    elevation_deg: float
    azimuth_deg: float
    range_km: float
    lat: float
    lng: float
    is_daylight: bool
    is_segment_break: bool = False
    effective_angle_deg: float = 0.0
    altitude_km: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time.isoformat(),
            "elevation_deg": round(self.elevation_deg, 3),
            "azimuth_deg": round(self.azimuth_deg, 3),
            "range_km": round(self.range_km, 3),
            "lat": round(self.lat, 5),
            "lng": round(self.lng, 5),
            "is_daylight": self.is_daylight,
            "is_segment_break": self.is_segment_break,
            "effective_angle_deg": round(self.effective_angle_deg, 3),
            "altitude_km": round(self.altitude_km, 3),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackPoint":
        return cls(
            time=datetime.fromisoformat(data["time"]),
            elevation_deg=float(data["elevation_deg"]),
            azimuth_deg=float(data["azimuth_deg"]),
            range_km=float(data["range_km"]),
            lat=float(data["lat"]),
            lng=float(data["lng"]),
            is_daylight=bool(data["is_daylight"]),
            is_segment_break=bool(data.get("is_segment_break", False)),
            effective_angle_deg=float(data.get("effective_angle_deg", 0.0)),
            altitude_km=float(data.get("altitude_km", 0.0)),
        )


def effective_angle(elevation_deg: float, great_circle_deg: float) -> float:
    """
    Elevation attenuated by ground distance from the observer.

    distanceFactor = max(0, 1 - greatCircleDeg / 90)
    """
    distance_factor = max(0.0, 1.0 - great_circle_deg / 90.0)
    return elevation_deg * distance_factor


class PassPropagator:
    """
    Propagates a satellite over a time window at a fixed cadence.

    The orbital-mechanics capability is injected; orbit-predictor is used
    when none is given.
    """

    def __init__(
        self,
        step_seconds: float = DEFAULT_STEP_SECONDS,
        mechanics: Optional[OrbitalMechanics] = None,
    ) -> None:
        if step_seconds <= 0:
            raise ValueError(f"step_seconds must be > 0, got {step_seconds}")

        self.step_seconds = step_seconds
        if mechanics is None:
            from .orbit import OrbitPredictorMechanics

            mechanics = OrbitPredictorMechanics()
        self.mechanics = mechanics

    def propagate(
        self, tle: TleRecord, observer: ObserverLocation, filters: SearchFilters
    ) -> List[TrackPoint]:
        """
        Produce track points from ``filters.start_time`` to ``filters.end_time``.

        Args:
            tle: Validated TLE record
            observer: Ground observer
            filters: Search window (end inclusive)

        Returns:
            Time-ordered list of TrackPoint objects

        Raises:
            InvalidTLEError: If the capability cannot build a record for the TLE
        """
        record = self.mechanics.build(tle)

        points: List[TrackPoint] = []
        skipped = 0
        step = timedelta(seconds=self.step_seconds)
        current = filters.start_time

        while current <= filters.end_time:
            point = self._sample(record, observer, current)
            if point is None:
                skipped += 1
            else:
                points.append(point)
            current += step

        logger.info(
            f"Propagated {tle.norad_id} over {filters.start_time} - {filters.end_time}: "
            f"{len(points)} points ({skipped} skipped)"
        )
        return points

    def _sample(
        self, record: Any, observer: ObserverLocation, timestamp: datetime
    ) -> Optional[TrackPoint]:
        try:
            state = self.mechanics.propagate_at(record, timestamp)
            if state is None or not state.is_finite():
                logger.warning(f"No valid state vector at {timestamp}, skipping step")
                return None

            lat, lng, alt = self.mechanics.geodetic(record, timestamp)
            angles = look_angles_from_geodetic(observer, lat, lng, alt)
        except Exception as e:
            logger.warning(f"Propagation failed at {timestamp}, skipping step: {e}")
            return None

        if not all(math.isfinite(v) for v in (angles.elevation_deg, angles.azimuth_deg, lat, lng)):
            logger.warning(f"Non-finite look angles at {timestamp}, skipping step")
            return None

        great_circle = central_angle_deg(observer.lat, observer.lng, lat, lng)

        return TrackPoint(
            time=timestamp,
            elevation_deg=angles.elevation_deg,
            azimuth_deg=angles.azimuth_deg % 360.0,
            range_km=angles.range_km,
            lat=lat,
            lng=lng,
            is_daylight=is_daylight(lat, lng, timestamp),
            effective_angle_deg=effective_angle(angles.elevation_deg, great_circle),
            altitude_km=alt,
        )
