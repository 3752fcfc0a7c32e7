"""
Solar geometry and day/night classification.

This module provides the low-precision solar ephemeris used to decide
whether a point on (or above) the Earth is in daylight.

:func:`is_daylight` is the canonical day/night predicate: every pipeline
decision goes through it. :func:`is_daylight_by_subsolar_longitude` is a
coarser longitude-only approximation kept for map overlays; near the
terminator the two may disagree.
"""

import math
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from .utils import EARTH_RADIUS_KM, normalize_longitude, to_naive_utc, utc_hours

# Constants
J2000 = datetime(2000, 1, 1, 12, 0, 0)
# Apparent sunrise/sunset altitude: refraction plus solar disk radius
DAYLIGHT_ALTITUDE_DEG = -0.833
SUBSOLAR_TOLERANCE_DEG = 90.0


def days_since_j2000(timestamp: datetime) -> float:
    """Days elapsed since the J2000.0 epoch (2000-01-01 12:00 UTC)."""
    delta = to_naive_utc(timestamp) - J2000
    return delta.total_seconds() / 86400.0


def solar_declination_deg(timestamp: datetime) -> float:
    """
    Calculate the solar declination.

    Uses the mean longitude plus equation-of-center correction and an
    obliquity of 23.439° with a small secular drift.

    Args:
        timestamp: UTC datetime

    Returns:
        Declination in degrees (positive = northern hemisphere)
    """
    days = days_since_j2000(timestamp)

    # Mean longitude and mean anomaly
    L = 280.46646 + 0.9856474 * days
    g = math.radians(357.52911 + 0.9856003 * days)

    # Ecliptic longitude
    lambda_sun = math.radians(L + 1.915 * math.sin(g) + 0.020 * math.sin(2 * g))

    # Obliquity of ecliptic
    epsilon = math.radians(23.439 - 0.0000004 * days)

    return math.degrees(math.asin(math.sin(epsilon) * math.sin(lambda_sun)))


def subsolar_longitude_deg(timestamp: datetime) -> float:
    """
    Greenwich hour angle of the mean sun, ``(utcHours - 12) * 15``.

    This is the map-overlay longitude reference; the geographic longitude
    directly under the sun is its negation (see :func:`subsolar_point`).

    Args:
        timestamp: UTC datetime

    Returns:
        Angle in degrees, normalized to [-180, 180]
    """
    return normalize_longitude((utc_hours(timestamp) - 12.0) * 15.0)


def subsolar_point(timestamp: datetime) -> Tuple[float, float]:
    """
    Geographic point directly beneath the sun.

    Returns:
        Tuple of (latitude, longitude) in degrees
    """
    return (
        solar_declination_deg(timestamp),
        normalize_longitude(-subsolar_longitude_deg(timestamp)),
    )


def solar_hour_angle_deg(longitude: float, timestamp: datetime) -> float:
    """Local hour angle of the sun in degrees, normalized to [-180, 180]."""
    return normalize_longitude((utc_hours(timestamp) - 12.0) * 15.0 + longitude)


def solar_altitude_deg(latitude: float, longitude: float, timestamp: datetime) -> float:
    """
    Get the sun altitude angle at a location.

    sin(alt) = sin(lat)·sin(dec) + cos(lat)·cos(dec)·cos(hourAngle)

    Args:
        latitude: Latitude in degrees
        longitude: Longitude in degrees
        timestamp: UTC datetime

    Returns:
        Sun altitude in degrees (positive = above horizon, negative = below)
    """
    lat_rad = math.radians(latitude)
    dec_rad = math.radians(solar_declination_deg(timestamp))
    hour_angle_rad = math.radians(solar_hour_angle_deg(longitude, timestamp))

    sin_altitude = (
        math.sin(lat_rad) * math.sin(dec_rad)
        + math.cos(lat_rad) * math.cos(dec_rad) * math.cos(hour_angle_rad)
    )
    return math.degrees(math.asin(max(-1.0, min(1.0, sin_altitude))))


def solar_position(
    latitude: float, longitude: float, timestamp: datetime
) -> Tuple[float, float]:
    """
    Sun azimuth and altitude as seen from a location.

    Args:
        latitude: Latitude in degrees
        longitude: Longitude in degrees
        timestamp: UTC datetime

    Returns:
        Tuple of (azimuth_deg in [0, 360), altitude_deg)
    """
    altitude = solar_altitude_deg(latitude, longitude, timestamp)

    lat_rad = math.radians(latitude)
    dec_rad = math.radians(solar_declination_deg(timestamp))
    hour_angle_rad = math.radians(solar_hour_angle_deg(longitude, timestamp))
    alt_rad = math.radians(altitude)

    denominator = math.cos(lat_rad) * math.cos(alt_rad)
    if abs(denominator) < 1e-12:
        # Observer at a pole or sun at zenith: azimuth is undefined
        return 0.0, altitude

    cos_azimuth = (math.sin(dec_rad) - math.sin(lat_rad) * math.sin(alt_rad)) / denominator
    sin_azimuth = math.sin(hour_angle_rad) * math.cos(dec_rad) / math.cos(alt_rad)

    # Hour angle grows westward, so the sun sits west of south for H > 0
    azimuth = math.degrees(math.atan2(-sin_azimuth, cos_azimuth)) % 360.0
    return azimuth, altitude


def is_daylight(latitude: float, longitude: float, timestamp: datetime) -> bool:
    """
    Check whether a location is in daylight.

    Daylight means a solar altitude above -0.833°, which accounts for
    atmospheric refraction and the radius of the solar disk.

    Args:
        latitude: Latitude in degrees
        longitude: Longitude in degrees
        timestamp: UTC datetime

    Returns:
        True if the sun is (apparently) above the horizon
    """
    return solar_altitude_deg(latitude, longitude, timestamp) > DAYLIGHT_ALTITUDE_DEG


def is_daylight_by_subsolar_longitude(
    latitude: float,
    longitude: float,
    timestamp: datetime,
    tolerance_deg: float = SUBSOLAR_TOLERANCE_DEG,
) -> bool:
    """
    Longitude-only day/night approximation used for ground-track overlays.

    A point counts as daylit when its longitude lies within
    ``tolerance_deg`` of the subsolar longitude. Latitude and season are
    ignored, so this disagrees with :func:`is_daylight` near the terminator
    and at high latitudes; never use it for pass decisions.
    """
    _, sun_longitude = subsolar_point(timestamp)
    return abs(normalize_longitude(longitude - sun_longitude)) <= tolerance_deg


def is_satellite_sunlit(
    latitude: float, longitude: float, altitude_km: float, timestamp: datetime
) -> bool:
    """
    Check whether a satellite above a sub-satellite point is illuminated.

    The satellite sees the sun while the solar altitude at its sub-point is
    above minus the horizon depression angle for its orbital height.

    Args:
        latitude: Sub-satellite latitude in degrees
        longitude: Sub-satellite longitude in degrees
        altitude_km: Satellite height above the surface in km
        timestamp: UTC datetime
    """
    ratio = EARTH_RADIUS_KM / (EARTH_RADIUS_KM + max(0.0, altitude_km))
    depression_deg = math.degrees(math.acos(ratio))
    return (
        solar_altitude_deg(latitude, longitude, timestamp)
        > DAYLIGHT_ALTITUDE_DEG - depression_deg
    )


def sunrise_sunset(
    day: date, latitude: float, longitude: float
) -> Optional[Tuple[datetime, datetime]]:
    """
    Approximate sunrise and sunset times for a location.

    Args:
        day: Calendar date (UTC)
        latitude: Latitude in degrees
        longitude: Longitude in degrees

    Returns:
        Tuple of (sunrise, sunset) UTC datetimes, or None during polar day
        or polar night
    """
    noon = datetime(day.year, day.month, day.day, 12, 0, 0)
    dec_rad = math.radians(solar_declination_deg(noon))
    lat_rad = math.radians(latitude)

    denominator = math.cos(lat_rad) * math.cos(dec_rad)
    if abs(denominator) < 1e-12:
        return None

    cos_hour_angle = (
        math.sin(math.radians(DAYLIGHT_ALTITUDE_DEG)) - math.sin(lat_rad) * math.sin(dec_rad)
    ) / denominator
    if cos_hour_angle > 1 or cos_hour_angle < -1:
        return None

    hours_diff = math.degrees(math.acos(cos_hour_angle)) / 15.0
    midnight = datetime(day.year, day.month, day.day)

    sunrise = midnight + timedelta(hours=12.0 - hours_diff - longitude / 15.0)
    sunset = midnight + timedelta(hours=12.0 + hours_diff - longitude / 15.0)
    return sunrise, sunset


def terminator(timestamp: datetime, resolution_deg: float = 1.0) -> List[Tuple[float, float]]:
    """
    Day/night boundary as a closed polygon of (lat, lng) points.

    The sunrise edge runs south to north, followed by the sunset edge
    north to south. Latitudes in polar day or night have no boundary point.

    Args:
        timestamp: UTC datetime
        resolution_deg: Latitude spacing between boundary points

    Returns:
        List of (latitude, longitude) tuples in degrees
    """
    if resolution_deg <= 0:
        raise ValueError(f"resolution_deg must be > 0, got {resolution_deg}")

    declination, sun_longitude = subsolar_point(timestamp)
    dec_rad = math.radians(declination)
    sin_threshold = math.sin(math.radians(DAYLIGHT_ALTITUDE_DEG))

    sunrise_edge: List[Tuple[float, float]] = []
    sunset_edge: List[Tuple[float, float]] = []

    steps = int(math.floor(180.0 / resolution_deg))
    for i in range(steps + 1):
        lat = -90.0 + i * resolution_deg
        lat_rad = math.radians(lat)
        denominator = math.cos(lat_rad) * math.cos(dec_rad)
        if abs(denominator) < 1e-12:
            continue

        cos_hour_angle = (sin_threshold - math.sin(lat_rad) * math.sin(dec_rad)) / denominator
        if cos_hour_angle > 1 or cos_hour_angle < -1:
            continue

        hour_angle = math.degrees(math.acos(cos_hour_angle))
        sunrise_edge.append((lat, normalize_longitude(sun_longitude - hour_angle)))
        sunset_edge.append((lat, normalize_longitude(sun_longitude + hour_angle)))

    sunset_edge.reverse()
    return sunrise_edge + sunset_edge
