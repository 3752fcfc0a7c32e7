"""
Tests for solar geometry and day/night classification.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from orbit_search.sunlight import (
    DAYLIGHT_ALTITUDE_DEG,
    days_since_j2000,
    is_daylight,
    is_daylight_by_subsolar_longitude,
    is_satellite_sunlit,
    solar_altitude_deg,
    solar_declination_deg,
    solar_position,
    subsolar_longitude_deg,
    subsolar_point,
    sunrise_sunset,
    terminator,
)

GREENWICH = (51.4769, 0.0)


class TestSolarDeclination:
    """Tests for solar_declination_deg."""

    def test_june_solstice(self) -> None:
        assert solar_declination_deg(datetime(2024, 6, 21, 12)) == pytest.approx(23.44, abs=0.2)

    def test_december_solstice(self) -> None:
        assert solar_declination_deg(datetime(2024, 12, 21, 12)) == pytest.approx(-23.44, abs=0.2)

    def test_march_equinox(self) -> None:
        assert abs(solar_declination_deg(datetime(2024, 3, 20, 12))) < 1.0

    def test_j2000_epoch(self) -> None:
        assert days_since_j2000(datetime(2000, 1, 1, 12)) == 0.0
        assert days_since_j2000(datetime(2000, 1, 2, 12)) == 1.0

    def test_aware_datetime(self) -> None:
        naive = datetime(2024, 6, 21, 12)
        aware = datetime(2024, 6, 21, 14, tzinfo=timezone(timedelta(hours=2)))
        assert solar_declination_deg(aware) == pytest.approx(solar_declination_deg(naive))


class TestSubsolarLongitude:
    """Tests for the subsolar longitude and point."""

    def test_noon_is_greenwich(self) -> None:
        assert subsolar_longitude_deg(datetime(2024, 3, 20, 12)) == 0.0

    def test_quarter_days(self) -> None:
        assert subsolar_longitude_deg(datetime(2024, 3, 20, 18)) == pytest.approx(90.0)
        assert subsolar_longitude_deg(datetime(2024, 3, 20, 6)) == pytest.approx(-90.0)

    def test_normalized(self) -> None:
        value = subsolar_longitude_deg(datetime(2024, 3, 20, 0, 30))
        assert -180.0 <= value <= 180.0

    def test_subsolar_point_sits_under_the_sun(self) -> None:
        t = datetime(2024, 3, 20, 18)
        lat, lng = subsolar_point(t)
        assert lng == pytest.approx(-90.0)
        assert solar_altitude_deg(lat, lng, t) == pytest.approx(90.0, abs=1e-4)


class TestSolarAltitude:
    """Tests for solar_altitude_deg and solar_position."""

    def test_greenwich_summer_morning(self) -> None:
        azimuth, altitude = solar_position(*GREENWICH, datetime(2024, 6, 21, 8))
        assert altitude == pytest.approx(36.6, abs=1.0)
        assert 90.0 < azimuth < 110.0

    def test_afternoon_sun_in_the_west(self) -> None:
        azimuth, altitude = solar_position(*GREENWICH, datetime(2024, 6, 21, 16))
        assert altitude > 0
        assert 250.0 < azimuth < 270.0

    def test_noon_sun_due_south_in_northern_hemisphere(self) -> None:
        azimuth, _ = solar_position(45.0, 0.0, datetime(2024, 3, 20, 12))
        assert azimuth == pytest.approx(180.0, abs=0.5)

    def test_azimuth_range(self) -> None:
        start = datetime(2024, 6, 21)
        for hour in range(24):
            azimuth, altitude = solar_position(35.68, 139.77, start + timedelta(hours=hour))
            assert 0.0 <= azimuth < 360.0
            assert -90.0 <= altitude <= 90.0

    def test_midnight_below_horizon(self) -> None:
        assert solar_altitude_deg(0.0, 0.0, datetime(2024, 3, 20, 0)) < -80.0


class TestIsDaylight:
    """Tests for the canonical day/night predicate."""

    def test_noon_and_midnight(self) -> None:
        assert is_daylight(0.0, 0.0, datetime(2024, 3, 20, 12)) is True
        assert is_daylight(0.0, 0.0, datetime(2024, 3, 20, 0)) is False

    def test_threshold_includes_refraction(self) -> None:
        assert DAYLIGHT_ALTITUDE_DEG == pytest.approx(-0.833)

    def test_polar_summer_and_winter(self) -> None:
        midnight = datetime(2024, 6, 21, 0)
        assert is_daylight(85.0, 0.0, midnight) is True
        assert is_daylight(-85.0, 0.0, midnight) is False

    def test_subsolar_approximation(self) -> None:
        t = datetime(2024, 3, 20, 12)
        assert is_daylight_by_subsolar_longitude(0.0, 0.0, t) is True
        assert is_daylight_by_subsolar_longitude(0.0, 180.0, t) is False

        evening = datetime(2024, 3, 20, 18)
        assert is_daylight_by_subsolar_longitude(0.0, -90.0, evening) is True
        assert is_daylight_by_subsolar_longitude(0.0, 90.0, evening) is False

    def test_subsolar_approximation_ignores_latitude(self) -> None:
        # Polar night at noon longitude still counts as day for the overlay
        t = datetime(2024, 12, 21, 12)
        assert is_daylight_by_subsolar_longitude(85.0, 0.0, t) is True
        assert is_daylight(85.0, 0.0, t) is False

    def test_subsolar_tolerance(self) -> None:
        t = datetime(2024, 3, 20, 12)
        assert is_daylight_by_subsolar_longitude(0.0, 60.0, t, tolerance_deg=45.0) is False
        assert is_daylight_by_subsolar_longitude(0.0, 40.0, t, tolerance_deg=45.0) is True


class TestSatelliteSunlit:
    """Tests for is_satellite_sunlit."""

    def test_satellite_above_dark_ground_is_lit(self) -> None:
        t = datetime(2024, 3, 20, 12)
        # Sun is about 10 degrees below the horizon at 100E
        assert is_daylight(0.0, 100.0, t) is False
        assert is_satellite_sunlit(0.0, 100.0, 400.0, t) is True

    def test_ground_level_matches_daylight(self) -> None:
        t = datetime(2024, 3, 20, 12)
        assert is_satellite_sunlit(0.0, 100.0, 0.0, t) is False

    def test_deep_shadow(self) -> None:
        assert is_satellite_sunlit(0.0, 180.0, 400.0, datetime(2024, 3, 20, 12)) is False


class TestSunriseSunset:
    """Tests for sunrise_sunset."""

    def test_equator_at_equinox(self) -> None:
        result = sunrise_sunset(date(2024, 3, 20), 0.0, 0.0)
        assert result is not None
        sunrise, sunset = result
        assert abs((sunrise - datetime(2024, 3, 20, 6)).total_seconds()) < 20 * 60
        assert abs((sunset - datetime(2024, 3, 20, 18)).total_seconds()) < 20 * 60
        assert sunrise < sunset

    def test_longitude_shifts_times(self) -> None:
        west = sunrise_sunset(date(2024, 3, 20), 0.0, -90.0)
        east = sunrise_sunset(date(2024, 3, 20), 0.0, 0.0)
        assert west is not None and east is not None
        assert (west[0] - east[0]).total_seconds() == pytest.approx(6 * 3600)

    def test_polar_night(self) -> None:
        assert sunrise_sunset(date(2024, 12, 21), 80.0, 0.0) is None

    def test_polar_day(self) -> None:
        assert sunrise_sunset(date(2024, 6, 21), 80.0, 0.0) is None

    def test_summer_days_are_longer(self) -> None:
        summer = sunrise_sunset(date(2024, 6, 21), *GREENWICH)
        winter = sunrise_sunset(date(2024, 12, 21), *GREENWICH)
        assert summer is not None and winter is not None
        assert (summer[1] - summer[0]) > (winter[1] - winter[0])


class TestTerminator:
    """Tests for the day/night boundary polygon."""

    def test_points_lie_on_the_threshold(self) -> None:
        t = datetime(2024, 3, 20, 12)
        points = terminator(t, resolution_deg=5.0)
        assert points
        for lat, lng in points:
            assert solar_altitude_deg(lat, lng, t) == pytest.approx(DAYLIGHT_ALTITUDE_DEG, abs=1e-6)

    def test_edges_ordered(self) -> None:
        points = terminator(datetime(2024, 3, 20, 12), resolution_deg=10.0)
        half = len(points) // 2
        sunrise_lats = [lat for lat, _ in points[:half]]
        sunset_lats = [lat for lat, _ in points[half:]]
        assert sunrise_lats == sorted(sunrise_lats)
        assert sunset_lats == sorted(sunset_lats, reverse=True)

    def test_polar_latitudes_dropped_near_solstice(self) -> None:
        points = terminator(datetime(2024, 6, 21, 12), resolution_deg=1.0)
        assert all(abs(lat) < 90.0 - 23.0 + 1.0 for lat, _ in points)

    def test_invalid_resolution(self) -> None:
        with pytest.raises(ValueError):
            terminator(datetime(2024, 3, 20, 12), resolution_deg=0.0)
