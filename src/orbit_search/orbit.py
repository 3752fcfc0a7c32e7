"""
Satellite orbit propagation and look-angle computation.

This module defines the orbital-mechanics capability used by the pass
propagator and its default implementation backed by the orbit-predictor
library (which wraps SGP4).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Optional, Tuple
import logging
import math

import numpy as np

from .observer import ObserverLocation
from .tle import InvalidTLEError, TleRecord
from .utils import EARTH_RADIUS_KM

logger = logging.getLogger(__name__)


@dataclass
class StateVector:
    """Earth-centered inertial position (km) and velocity (km/s)."""

    position: Tuple[float, float, float]
    velocity: Tuple[float, float, float]

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.position)) and np.all(np.isfinite(self.velocity)))


@dataclass
class LookAngles:
    """Topocentric look angles from an observer to a satellite."""

    elevation_deg: float
    azimuth_deg: float  # 0 = North, 90 = East
    range_km: float


def _spherical_ecef(lat: float, lon: float, alt_km: float) -> np.ndarray:
    lat_rad = math.radians(lat)
    lon_rad = math.radians(lon)
    radius = EARTH_RADIUS_KM + alt_km
    return np.array([
        radius * math.cos(lat_rad) * math.cos(lon_rad),
        radius * math.cos(lat_rad) * math.sin(lon_rad),
        radius * math.sin(lat_rad),
    ])


def look_angles_from_geodetic(
    observer: ObserverLocation, sat_lat: float, sat_lon: float, sat_alt_km: float
) -> LookAngles:
    """
    Calculate look angles from an observer to a sub-satellite position.

    Both points are placed on a spherical Earth; elevation is measured
    against the observer's local horizon and azimuth uses spherical
    trigonometry.

    Args:
        observer: Ground observer
        sat_lat: Sub-satellite latitude in degrees
        sat_lon: Sub-satellite longitude in degrees
        sat_alt_km: Satellite altitude above the surface in km

    Returns:
        LookAngles with azimuth normalized to [0, 360)
    """
    ground = _spherical_ecef(observer.lat, observer.lng, observer.altitude_m / 1000.0)
    satellite = _spherical_ecef(sat_lat, sat_lon, sat_alt_km)

    line_of_sight = satellite - ground
    range_km = float(np.linalg.norm(line_of_sight))

    if range_km > 0:
        up = ground / np.linalg.norm(ground)
        sin_elevation = float(np.dot(line_of_sight, up)) / range_km
        elevation = math.degrees(math.asin(max(-1.0, min(1.0, sin_elevation))))
    else:
        elevation = 90.0

    lat_rad = math.radians(observer.lat)
    sat_lat_rad = math.radians(sat_lat)
    dlon = math.radians(sat_lon - observer.lng)

    y = math.sin(dlon) * math.cos(sat_lat_rad)
    x = math.cos(lat_rad) * math.sin(sat_lat_rad) - math.sin(lat_rad) * math.cos(
        sat_lat_rad
    ) * math.cos(dlon)
    azimuth = math.degrees(math.atan2(y, x)) % 360.0
    # -0.0 % 360 and rounding can both land on 360.0
    if azimuth >= 360.0:
        azimuth = 0.0

    return LookAngles(elevation_deg=elevation, azimuth_deg=azimuth, range_km=range_km)


class OrbitalMechanics(ABC):
    """
    Orbital-mechanics capability.

    Implementations turn a validated TleRecord into an opaque internal
    record once, then answer per-instant queries against it.
    """

    @abstractmethod
    def build(self, tle: TleRecord) -> Any:
        """
        Build the internal propagation record for a TLE.

        Raises:
            InvalidTLEError: If no record can be built from the element set
        """

    @abstractmethod
    def propagate_at(self, record: Any, timestamp: datetime) -> Optional[StateVector]:
        """ECI state at ``timestamp``, or None when no valid vector exists."""

    @abstractmethod
    def geodetic(self, record: Any, timestamp: datetime) -> Tuple[float, float, float]:
        """Sub-satellite (latitude, longitude, altitude_km) at ``timestamp``."""


class OrbitPredictorMechanics(OrbitalMechanics):
    """OrbitalMechanics backed by orbit-predictor's TLEPredictor."""

    def build(self, tle: TleRecord) -> Any:
        from orbit_predictor.sources import get_predictor_from_tle_lines

        try:
            return get_predictor_from_tle_lines(tle.lines)
        except Exception as e:
            logger.error(f"Failed to build predictor for {tle}: {e}")
            raise InvalidTLEError(f"Cannot propagate TLE {tle.norad_id}: {e}") from e

    def propagate_at(self, record: Any, timestamp: datetime) -> Optional[StateVector]:
        position, velocity = record.propagate_eci(timestamp)
        state = StateVector(
            position=tuple(float(v) for v in position),
            velocity=tuple(float(v) for v in velocity),
        )
        return state if state.is_finite() else None

    def geodetic(self, record: Any, timestamp: datetime) -> Tuple[float, float, float]:
        lat, lon, alt = record.get_position(timestamp).position_llh
        return float(lat), float(lon), float(alt)


class SatelliteOrbit:
    """
    Represents a satellite orbit with TLE-based propagation capabilities.

    Thin convenience wrapper pairing a TleRecord with an OrbitalMechanics
    implementation for ad-hoc position and ground track queries.
    """

    def __init__(
        self, tle: TleRecord, mechanics: Optional[OrbitalMechanics] = None
    ) -> None:
        """
        Initialize satellite orbit from a TLE record.

        Args:
            tle: Validated TLE record
            mechanics: Orbital-mechanics capability (orbit-predictor by default)

        Raises:
            InvalidTLEError: If the TLE cannot be propagated
        """
        self.tle = tle
        self.satellite_name = tle.name or tle.norad_id
        self.mechanics = mechanics or OrbitPredictorMechanics()
        self.record = self.mechanics.build(tle)
        logger.info(f"Successfully loaded orbit for satellite: {self.satellite_name}")

    def get_position(self, timestamp: datetime) -> Tuple[float, float, float]:
        """
        Get satellite position at specific timestamp.

        Args:
            timestamp: UTC datetime for position calculation

        Returns:
            Tuple of (latitude, longitude, altitude_km)
        """
        return self.mechanics.geodetic(self.record, timestamp)

    def get_ground_track(
        self,
        start_time: datetime,
        end_time: datetime,
        time_step_minutes: float = 1.0,
    ) -> List[Tuple[datetime, float, float, float]]:
        """
        Generate ground track points over time period.

        Args:
            start_time: Start time for ground track (UTC)
            end_time: End time for ground track (UTC)
            time_step_minutes: Time step between points in minutes

        Returns:
            List of tuples: (timestamp, latitude, longitude, altitude_km)
        """
        if time_step_minutes <= 0:
            raise ValueError(f"time_step_minutes must be > 0, got {time_step_minutes}")

        ground_track = []
        current_time = start_time
        time_step = timedelta(minutes=time_step_minutes)

        while current_time <= end_time:
            try:
                lat, lon, alt = self.get_position(current_time)
                ground_track.append((current_time, lat, lon, alt))
            except Exception as e:
                logger.warning(f"Skipping position calculation at {current_time}: {e}")
            current_time += time_step

        logger.debug(f"Generated ground track with {len(ground_track)} points")
        return ground_track

    def get_orbital_period(self) -> timedelta:
        """
        Orbital period derived from the mean motion on TLE line 2.

        Returns:
            Orbital period as timedelta
        """
        mean_motion = float(self.tle.line2[52:63])
        return timedelta(minutes=1440.0 / mean_motion)

    def __repr__(self) -> str:
        return f"SatelliteOrbit(name='{self.satellite_name}', period={self.get_orbital_period()})"
