"""
Tests for the coarse visibility pre-filter.
"""

import math

import pytest

from orbit_search.observer import ObserverLocation
from orbit_search.prefilter import (
    OrbitalElementsSummary,
    VisibilityPreFilter,
    calculate_visibility_radius,
    extract_orbital_elements,
    is_possibly_visible,
)
from orbit_search.tle import InvalidTLEError, TleRecord

ISS_LINE1 = "1 25544U 98067A   08264.51782528 -.00002182  00000-0 -11606-4 0  2927"
ISS_LINE2 = "2 25544  51.6416 247.4627 0006703 130.5360 325.0288 15.72125391563537"


def _with_inclination(inclination: str) -> TleRecord:
    """ISS element set with a replaced inclination field (8 columns)."""
    line2 = ISS_LINE2[:8] + inclination + ISS_LINE2[16:]
    return TleRecord.from_lines(ISS_LINE1, line2, verify_checksum=False)


class TestVisibilityRadius:
    """Tests for calculate_visibility_radius."""

    def test_iss_height(self) -> None:
        assert calculate_visibility_radius(420.0) == pytest.approx(12.64, abs=0.05)

    def test_horizon_radius(self) -> None:
        expected = math.degrees(math.acos(6371.0 / (6371.0 + 800.0)))
        assert calculate_visibility_radius(800.0, 0.0, 0.0) == pytest.approx(expected)

    def test_grows_with_height(self) -> None:
        assert calculate_visibility_radius(400.0) < calculate_visibility_radius(800.0)
        assert calculate_visibility_radius(800.0) < calculate_visibility_radius(35786.0)

    def test_shrinks_with_elevation(self) -> None:
        assert calculate_visibility_radius(500.0, 30.0) < calculate_visibility_radius(500.0, 10.0)

    def test_refraction_widens(self) -> None:
        assert calculate_visibility_radius(500.0, 10.0, 1.0) > calculate_visibility_radius(500.0, 10.0, 0.0)


class TestExtractOrbitalElements:
    """Tests for extract_orbital_elements."""

    def test_iss(self) -> None:
        elements = extract_orbital_elements(ISS_LINE2)
        assert elements.inclination_deg == pytest.approx(51.6416)
        assert 300.0 < elements.height_km < 450.0

    def test_geostationary_height(self) -> None:
        line2 = ISS_LINE2[:52] + " 1.00270000" + ISS_LINE2[63:]
        assert extract_orbital_elements(line2).height_km == pytest.approx(35786.0, abs=50.0)

    def test_unreadable_fields(self) -> None:
        with pytest.raises(InvalidTLEError):
            extract_orbital_elements("2 25544  xx.xxxx")

    def test_zero_mean_motion(self) -> None:
        line2 = ISS_LINE2[:52] + " 0.00000000" + ISS_LINE2[63:]
        with pytest.raises(InvalidTLEError):
            extract_orbital_elements(line2)


class TestIsPossiblyVisible:
    """Tests for the latitude bound."""

    def test_observer_inside_band(self) -> None:
        elements = OrbitalElementsSummary(inclination_deg=51.6, height_km=420.0)
        assert is_possibly_visible(35.68, 139.77, elements) is True

    def test_observer_just_beyond_inclination_is_accepted(self) -> None:
        # Within the visibility radius of the northernmost ground track
        elements = OrbitalElementsSummary(inclination_deg=51.6, height_km=420.0)
        assert is_possibly_visible(60.0, 0.0, elements) is True

    def test_observer_far_beyond_band_is_rejected(self) -> None:
        elements = OrbitalElementsSummary(inclination_deg=51.6, height_km=420.0)
        assert is_possibly_visible(80.0, 0.0, elements) is False
        assert is_possibly_visible(-75.0, 0.0, elements) is False

    def test_higher_elevation_narrows_band(self) -> None:
        elements = OrbitalElementsSummary(inclination_deg=51.6, height_km=420.0)
        assert is_possibly_visible(62.0, 0.0, elements, min_elevation_deg=5.0) is True
        assert is_possibly_visible(62.0, 0.0, elements, min_elevation_deg=40.0) is False

    def test_polar_orbit_always_accepted(self) -> None:
        elements = OrbitalElementsSummary(inclination_deg=97.4, height_km=500.0)
        for lat in (-90.0, -45.0, 0.0, 45.0, 89.0, 90.0):
            assert is_possibly_visible(lat, 0.0, elements) is True

    def test_equatorial_orbit(self) -> None:
        elements = OrbitalElementsSummary(inclination_deg=0.1, height_km=35786.0)
        assert is_possibly_visible(0.0, 0.0, elements) is True
        assert is_possibly_visible(85.0, 0.0, elements) is False


class TestVisibilityPreFilter:
    """Tests for batch screening."""

    def test_screen_splits_candidates(self) -> None:
        iss = TleRecord.from_lines(ISS_LINE1, ISS_LINE2)
        polar = _with_inclination(" 97.4000")
        observer = ObserverLocation(lat=78.2, lng=15.6, name="Longyearbyen")

        accepted, rejected = VisibilityPreFilter().screen(observer, [iss, polar])

        assert accepted == [polar]
        assert rejected == [iss]

    def test_mid_latitude_accepts_iss(self) -> None:
        iss = TleRecord.from_lines(ISS_LINE1, ISS_LINE2)
        tokyo = ObserverLocation(lat=35.68, lng=139.77)
        assert VisibilityPreFilter().is_possibly_visible(tokyo, iss) is True

    def test_unreadable_elements_are_accepted(self) -> None:
        broken = _with_inclination("  xx.xxx")
        observer = ObserverLocation(lat=89.0, lng=0.0)

        accepted, rejected = VisibilityPreFilter().screen(observer, [broken])

        assert accepted == [broken]
        assert rejected == []

    def test_configured_elevation_is_used(self) -> None:
        iss = TleRecord.from_lines(ISS_LINE1, ISS_LINE2)
        observer = ObserverLocation(lat=60.0, lng=0.0)
        assert VisibilityPreFilter(min_elevation_deg=0.0).is_possibly_visible(observer, iss) is True
        assert VisibilityPreFilter(min_elevation_deg=45.0).is_possibly_visible(observer, iss) is False
