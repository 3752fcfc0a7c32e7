"""
Pytest configuration and shared fixtures.

This file is automatically loaded by pytest and provides:
- Custom markers for test categorization
- Shared fixtures for common test setup
- A scripted orbital-mechanics capability for propagation tests
"""

import math
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Tuple

import pytest
from _pytest.config import Config
from _pytest.python import Function

# Add project root (backend) and src to path for imports
_project_root = Path(__file__).parent.parent
sys.path.insert(0, str(_project_root))
sys.path.insert(0, str(_project_root / "src"))

from orbit_search.orbit import OrbitalMechanics, StateVector  # noqa: E402
from orbit_search.tle import InvalidTLEError, TleRecord  # noqa: E402


ISS_LINE1 = "1 25544U 98067A   08264.51782528 -.00002182  00000-0 -11606-4 0  2927"
ISS_LINE2 = "2 25544  51.6416 247.4627 0006703 130.5360 325.0288 15.72125391563537"

# Angular rate of a ~420 km orbit along its ground track
GROUND_TRACK_RATE_DEG_S = 0.0637


def pytest_collection_modifyitems(config: Config, items: List[Function]) -> None:
    """Auto-mark tests under integration/."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


def pytest_configure(config: Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "integration: marks integration tests")


# =============================================================================
# SCRIPTED ORBITAL MECHANICS
# =============================================================================


Track = Callable[[datetime], Tuple[float, float, float]]


class ScriptedMechanics(OrbitalMechanics):
    """
    Orbital mechanics driven by a track function of time.

    Times listed in ``none_at`` yield no state vector and times in
    ``raise_at`` raise, to exercise per-step recovery.
    """

    def __init__(
        self,
        track: Track,
        none_at: Iterable[datetime] = (),
        raise_at: Iterable[datetime] = (),
        build_error: Optional[str] = None,
    ) -> None:
        self.track = track
        self.none_at = set(none_at)
        self.raise_at = set(raise_at)
        self.build_error = build_error
        self.built: List[TleRecord] = []

    def build(self, tle: TleRecord) -> Any:
        if self.build_error:
            raise InvalidTLEError(self.build_error)
        self.built.append(tle)
        return tle

    def propagate_at(self, record: Any, timestamp: datetime) -> Optional[StateVector]:
        if timestamp in self.raise_at:
            raise RuntimeError("numerical failure")
        if timestamp in self.none_at:
            return None
        lat, lon, alt = self.track(timestamp)
        radius = 6371.0 + alt
        position = (
            radius * math.cos(math.radians(lat)) * math.cos(math.radians(lon)),
            radius * math.cos(math.radians(lat)) * math.sin(math.radians(lon)),
            radius * math.sin(math.radians(lat)),
        )
        return StateVector(position=position, velocity=(0.0, 7.66, 0.0))

    def geodetic(self, record: Any, timestamp: datetime) -> Tuple[float, float, float]:
        return self.track(timestamp)


def meridian_pass_track(
    observer_lat: float, observer_lng: float, overhead_time: datetime, altitude_km: float = 420.0
) -> Track:
    """Sub-satellite point sliding north along the observer's meridian."""

    def track(timestamp: datetime) -> Tuple[float, float, float]:
        offset = (timestamp - overhead_time).total_seconds()
        lat = max(-89.0, min(89.0, observer_lat + offset * GROUND_TRACK_RATE_DEG_S))
        return lat, observer_lng, altitude_km

    return track


# =============================================================================
# FIXTURES - Common test setup
# =============================================================================


@pytest.fixture
def iss_tle_lines() -> Tuple[str, str]:
    """ISS TLE from 2008 (checksums valid)."""
    return ISS_LINE1, ISS_LINE2


@pytest.fixture
def iss_tle(iss_tle_lines: Tuple[str, str]) -> TleRecord:
    return TleRecord.from_lines(*iss_tle_lines, name="ISS (ZARYA)")


@pytest.fixture
def tokyo() -> Any:
    from orbit_search.observer import ObserverLocation

    return ObserverLocation(lat=35.6812, lng=139.7671, name="Tokyo")


@pytest.fixture
def base_datetime() -> datetime:
    """Standard base datetime for tests (a few hours after the ISS epoch)."""
    return datetime(2008, 9, 21, 0, 0, 0)


@pytest.fixture
def time_range(base_datetime: datetime) -> Tuple[datetime, datetime]:
    """Standard 24-hour time range for tests."""
    return base_datetime, base_datetime + timedelta(hours=24)


@pytest.fixture
def overhead_mechanics(tokyo: Any, base_datetime: datetime) -> ScriptedMechanics:
    """Mechanics with a single overhead pass of Tokyo at base_datetime + 30 min."""
    overhead = base_datetime + timedelta(minutes=30)
    return ScriptedMechanics(meridian_pass_track(tokyo.lat, tokyo.lng, overhead))


class FakeClock:
    """Manually advanced clock returning seconds since the epoch."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_client() -> Any:
    """FastAPI TestClient for API testing without running server."""
    try:
        from fastapi.testclient import TestClient

        from backend.main import app

        return TestClient(app)
    except ImportError:
        pytest.skip("FastAPI or backend not available")


@pytest.fixture
def scripted_mechanics() -> Any:
    """The ScriptedMechanics class, for tests building their own tracks."""
    return ScriptedMechanics


@pytest.fixture
def meridian_track() -> Any:
    """Factory for tracks passing straight over an observer."""
    return meridian_pass_track
