"""
Coarse geometric visibility pre-filter.

Screens observer/satellite combinations with a closed-form latitude bound
before any propagation is done.

The filter is one-sided on purpose: it may accept satellites that never
produce a visible pass (false positives, resolved later by full
propagation), but it must never reject one that does. Only the latitude
bound rejects; do not tighten the accept branches without propagation
evidence.
"""

from dataclasses import dataclass
from typing import Iterable, List, Tuple
import logging
import math

from .observer import ObserverLocation
from .tle import InvalidTLEError, TleRecord
from .utils import EARTH_RADIUS_KM

logger = logging.getLogger(__name__)

DEFAULT_MIN_ELEVATION_DEG = 10.0
DEFAULT_REFRACTION_DEG = 0.25
POLAR_INCLINATION_DEG = 80.0

# Earth gravitational parameter (km^3/s^2)
MU_EARTH = 398600.4418


@dataclass
class OrbitalElementsSummary:
    """Inclination and circular-orbit height estimated from a TLE."""

    inclination_deg: float
    height_km: float


def calculate_visibility_radius(
    height_km: float,
    min_elevation_deg: float = DEFAULT_MIN_ELEVATION_DEG,
    refraction_deg: float = DEFAULT_REFRACTION_DEG,
) -> float:
    """
    Ground half-angle from which a circular orbit clears a minimum elevation.

    centralAngle = acos(R / (R + h) · cos(e)) − e, with e = minElev − refraction

    Args:
        height_km: Orbit height above the surface
        min_elevation_deg: Minimum elevation the observer requires
        refraction_deg: Atmospheric refraction allowance

    Returns:
        Visibility radius in degrees of central angle
    """
    e = math.radians(min_elevation_deg - refraction_deg)
    ratio = EARTH_RADIUS_KM / (EARTH_RADIUS_KM + max(0.0, height_km)) * math.cos(e)
    return math.degrees(math.acos(max(-1.0, min(1.0, ratio))) - e)


def extract_orbital_elements(line2: str) -> OrbitalElementsSummary:
    """
    Read inclination and estimate height from TLE line 2.

    Args:
        line2: Second TLE line

    Returns:
        OrbitalElementsSummary

    Raises:
        InvalidTLEError: If the inclination or mean motion fields are unreadable
    """
    try:
        inclination = float(line2[8:16])
        mean_motion = float(line2[52:63])
    except ValueError as e:
        raise InvalidTLEError(f"Cannot read orbital elements from line 2: {e}") from e

    if mean_motion <= 0:
        raise InvalidTLEError(f"Invalid mean motion: {mean_motion}")

    # Kepler's third law: a = (mu / n^2)^(1/3), n in rad/s
    n_rad_s = mean_motion * 2.0 * math.pi / 86400.0
    semi_major_axis = (MU_EARTH / n_rad_s ** 2) ** (1.0 / 3.0)
    height = semi_major_axis - EARTH_RADIUS_KM
    return OrbitalElementsSummary(inclination_deg=inclination, height_km=height)


def is_possibly_visible(
    observer_lat: float,
    observer_lng: float,
    elements: OrbitalElementsSummary,
    min_elevation_deg: float = DEFAULT_MIN_ELEVATION_DEG,
    refraction_deg: float = DEFAULT_REFRACTION_DEG,
) -> bool:
    """
    Whether a satellite could ever pass over an observer.

    Returns False only when the observer's latitude lies beyond the
    orbit's ground-track latitude band widened by the visibility radius.
    Near-polar orbits (inclination above 80°) are always accepted; every
    other case is accepted optimistically.

    Args:
        observer_lat: Observer latitude in degrees
        observer_lng: Observer longitude in degrees (unused by the bound)
        elements: Orbital elements summary
        min_elevation_deg: Minimum elevation of interest
        refraction_deg: Refraction allowance

    Returns:
        False if no visible pass is geometrically possible
    """
    radius = calculate_visibility_radius(elements.height_km, min_elevation_deg, refraction_deg)

    if abs(observer_lat) > elements.inclination_deg + radius:
        return False
    if elements.inclination_deg > POLAR_INCLINATION_DEG:
        return True
    # Longitude coverage is left to propagation
    return True


class VisibilityPreFilter:
    """
    Batch screening of candidate satellites for an observer.

    See the module docstring for the one-sided acceptance contract.
    """

    def __init__(
        self,
        min_elevation_deg: float = DEFAULT_MIN_ELEVATION_DEG,
        refraction_deg: float = DEFAULT_REFRACTION_DEG,
    ) -> None:
        self.min_elevation_deg = min_elevation_deg
        self.refraction_deg = refraction_deg

    def is_possibly_visible(self, observer: ObserverLocation, tle: TleRecord) -> bool:
        elements = extract_orbital_elements(tle.line2)
        return is_possibly_visible(
            observer.lat,
            observer.lng,
            elements,
            min_elevation_deg=self.min_elevation_deg,
            refraction_deg=self.refraction_deg,
        )

    def screen(
        self, observer: ObserverLocation, records: Iterable[TleRecord]
    ) -> Tuple[List[TleRecord], List[TleRecord]]:
        """
        Split candidates into (accepted, rejected).

        Records whose elements cannot be read are accepted so that
        propagation reports the real error.
        """
        accepted: List[TleRecord] = []
        rejected: List[TleRecord] = []

        for record in records:
            try:
                visible = self.is_possibly_visible(observer, record)
            except InvalidTLEError as e:
                logger.warning(f"Pre-filter could not read {record}: {e}")
                visible = True
            (accepted if visible else rejected).append(record)

        logger.info(
            f"Pre-filter for {observer}: {len(accepted)} accepted, {len(rejected)} rejected"
        )
        return accepted, rejected
