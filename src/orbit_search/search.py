"""
Pass search pipeline and coordination.

This module provides the end-to-end pass calculation for one satellite
and the PassSearch class that coordinates element-set lookup, the
visibility pre-filter, propagation and result caching.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union
import hashlib
import json
import logging

import pandas as pd

from .cache import CacheStorageError, ElementCache
from .observer import ObserverLocation, SearchFilters
from .orbit import OrbitalMechanics
from .prefilter import VisibilityPreFilter
from .propagator import DEFAULT_STEP_SECONDS, PassPropagator
from .provider import ElementSetProvider, ProviderError
from .segmenter import Pass, PassSegmenter, classify_effective_angle, pass_statistics, split_visibility_windows
from .sunlight import is_daylight, is_satellite_sunlit
from .tle import TleRecord
from .worker import PassCalculationError, PassWorkerClient

logger = logging.getLogger(__name__)

DEFAULT_RESULT_TTL = 3600.0

CSV_COLUMNS = [
    "norad_id", "start_time", "max_elevation_time", "end_time", "max_elevation_deg",
    "duration_seconds", "is_daylight", "total_points", "total_segments", "distance_km",
    "max_effective_angle_deg", "avg_effective_angle_deg", "quality",
]


def is_visually_observable(satellite_pass: Pass, location: ObserverLocation) -> bool:
    """
    Whether a pass can be seen with the naked eye.

    At the time of maximum elevation the observer must be in darkness while
    the satellite is still sunlit.
    """
    points = satellite_pass.points
    if not points:
        return False
    peak = max(points, key=lambda p: p.elevation_deg)
    observer_dark = not is_daylight(location.lat, location.lng, peak.time)
    return observer_dark and is_satellite_sunlit(peak.lat, peak.lng, peak.altitude_km, peak.time)


def calculate_passes(
    tle: TleRecord,
    location: ObserverLocation,
    filters: SearchFilters,
    step_seconds: float = DEFAULT_STEP_SECONDS,
    mechanics: Optional[OrbitalMechanics] = None,
    horizon_deg: float = 0.0,
) -> List[Pass]:
    """
    Compute the passes of one satellite over an observer.

    Args:
        tle: Validated TLE record
        location: Ground observer
        filters: Search window and acceptance criteria
        step_seconds: Propagation cadence
        mechanics: Orbital-mechanics capability (orbit-predictor by default)
        horizon_deg: Elevation that opens and closes a pass

    Returns:
        Passes reaching ``filters.min_elevation_deg``, in time order

    Raises:
        InvalidTLEError: If the TLE cannot be propagated
    """
    propagator = PassPropagator(step_seconds=step_seconds, mechanics=mechanics)
    segmenter = PassSegmenter()

    points = propagator.propagate(tle, location, filters)
    windows = split_visibility_windows(points, horizon_deg=horizon_deg, step_seconds=step_seconds)

    passes: List[Pass] = []
    for window in windows:
        satellite_pass = segmenter.segment(window)
        if satellite_pass.max_elevation_deg < filters.min_elevation_deg:
            continue
        if filters.consider_daylight and not is_visually_observable(satellite_pass, location):
            continue
        passes.append(satellite_pass)

    logger.info(
        f"Found {len(passes)} passes of {tle.name or tle.norad_id} "
        f"({len(windows)} above horizon) for {location}"
    )
    return passes


def result_cache_key(
    tle: TleRecord, filters: SearchFilters, step_seconds: float, horizon_deg: float
) -> str:
    """Stable cache key for a pass computation request."""
    payload = json.dumps(
        {
            "line1": tle.line1,
            "line2": tle.line2,
            "filters": filters.to_dict(),
            "step_seconds": step_seconds,
            "horizon_deg": horizon_deg,
        },
        sort_keys=True,
    )
    return "passes:" + hashlib.sha256(payload.encode("utf-8")).hexdigest()[:32]


class PassSearch:
    """
    Pass search coordinator.

    Brings together the element cache, the provider, the visibility
    pre-filter and propagation (in-process, or through a worker client).
    """

    def __init__(
        self,
        cache: ElementCache,
        provider: Optional[ElementSetProvider] = None,
        prefilter: Optional[VisibilityPreFilter] = None,
        worker: Optional[PassWorkerClient] = None,
        step_seconds: float = DEFAULT_STEP_SECONDS,
        horizon_deg: float = 0.0,
        result_ttl: float = DEFAULT_RESULT_TTL,
        mechanics: Optional[OrbitalMechanics] = None,
    ) -> None:
        self.cache = cache
        self.provider = provider
        self.prefilter = prefilter or VisibilityPreFilter()
        self.worker = worker
        self.step_seconds = step_seconds
        self.horizon_deg = horizon_deg
        self.result_ttl = result_ttl

        if worker is not None:
            if mechanics is not None and worker.mechanics is not None and mechanics is not worker.mechanics:
                raise ValueError("PassSearch and its worker must share one orbital-mechanics capability")
            if mechanics is not None and worker.mechanics is None:
                worker.mechanics = mechanics
            mechanics = worker.mechanics
        self.mechanics = mechanics

    def get_tle(self, norad_id: Union[int, str]) -> TleRecord:
        """
        Get an element set, from the cache or else from the provider.

        Raises:
            ProviderError: If the TLE is not cached and cannot be fetched
        """
        norad_id = str(norad_id)
        cached = self.cache.get_cached_tle(norad_id)
        if cached is not None:
            logger.debug(f"TLE cache hit for {norad_id}")
            return cached

        if self.provider is None:
            raise ProviderError(f"TLE {norad_id} not cached and no provider configured")

        tle = self.provider.fetch_tle(norad_id)
        try:
            if not self.cache.cache_tle(norad_id, tle):
                logger.debug(f"TLE {norad_id} not cached (rate limited)")
        except CacheStorageError as e:
            logger.warning(f"Could not cache TLE {norad_id}: {e}")
        return tle

    def _resolve(self, satellites: Iterable[Union[int, str, TleRecord]]) -> Dict[str, TleRecord]:
        resolved: Dict[str, TleRecord] = {}
        for satellite in satellites:
            tle = satellite if isinstance(satellite, TleRecord) else self.get_tle(satellite)
            resolved[tle.norad_id] = tle
        return resolved

    def _load_cached(self, key: str) -> Optional[List[Pass]]:
        data = self.cache.get(key)
        if data is None:
            return None
        try:
            return [Pass.from_dict(p) for p in data]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable cached result {key}: {e}")
            return None

    def _store(self, key: str, passes: List[Pass]) -> None:
        try:
            self.cache.set(key, [p.to_dict() for p in passes], ttl=self.result_ttl)
        except CacheStorageError as e:
            logger.warning(f"Could not persist pass results: {e}")

    def search(
        self,
        satellites: Iterable[Union[int, str, TleRecord]],
        filters: SearchFilters,
    ) -> Dict[str, List[Pass]]:
        """
        Search passes for several satellites.

        Args:
            satellites: NORAD catalog numbers and/or TleRecord objects
            filters: Search window, observer and acceptance criteria

        Returns:
            Dictionary mapping NORAD id to its passes; pre-filtered
            satellites map to an empty list

        Raises:
            ProviderError: If an element set cannot be obtained
        """
        location = filters.location
        tles = self._resolve(satellites)
        accepted, rejected = self.prefilter.screen(location, tles.values())

        results: Dict[str, List[Pass]] = {tle.norad_id: [] for tle in rejected}
        futures = {}

        for tle in accepted:
            key = result_cache_key(tle, filters, self.step_seconds, self.horizon_deg)
            cached = self._load_cached(key)
            if cached is not None:
                logger.debug(f"Result cache hit for {tle.norad_id}")
                results[tle.norad_id] = cached
                continue

            if self.worker is not None:
                _, future = self.worker.submit(
                    tle, location, filters, self.step_seconds, self.horizon_deg
                )
                futures[tle.norad_id] = (key, future)
            else:
                passes = calculate_passes(
                    tle,
                    location,
                    filters,
                    step_seconds=self.step_seconds,
                    mechanics=self.mechanics,
                    horizon_deg=self.horizon_deg,
                )
                results[tle.norad_id] = passes
                self._store(key, passes)

        for norad_id, (key, future) in futures.items():
            try:
                passes = future.result()
            except PassCalculationError as e:
                # Failures are not cached so the next search retries
                logger.warning(f"Pass calculation for {norad_id} failed: {e}")
                results[norad_id] = []
                continue
            results[norad_id] = passes
            self._store(key, passes)

        return {norad_id: results[norad_id] for norad_id in tles}

    def summarize(self, results: Dict[str, List[Pass]]) -> Dict[str, Any]:
        """
        Generate search summary statistics.

        Args:
            results: Output of :meth:`search`

        Returns:
            Dictionary with summary
        """
        all_passes = [(norad_id, p) for norad_id, passes in results.items() for p in passes]

        summary: Dict[str, Any] = {
            "total_passes": len(all_passes),
            "satellites_analyzed": len(results),
            "satellites_with_passes": len([p for p in results.values() if p]),
            "daylight_passes": len([p for _, p in all_passes if p.is_daylight]),
            "highest_elevation": 0,
            "total_contact_time_minutes": 0,
        }
        if not all_passes:
            return summary

        best_id, best_pass = max(all_passes, key=lambda item: item[1].max_elevation_deg)
        summary["highest_elevation"] = round(best_pass.max_elevation_deg, 1)
        summary["total_contact_time_minutes"] = round(
            sum(p.duration_seconds for _, p in all_passes) / 60, 1
        )
        best_time = best_pass.max_elevation_time
        summary["best_pass"] = {
            "norad_id": best_id,
            "time": best_time.isoformat() if best_time else None,
            "elevation": round(best_pass.max_elevation_deg, 1),
        }

        logger.info(
            f"Generated search summary: {len(all_passes)} passes, "
            f"{best_pass.max_elevation_deg:.1f}° max elevation"
        )
        return summary


def _pass_row(norad_id: str, satellite_pass: Pass) -> Dict[str, Any]:
    stats = pass_statistics(satellite_pass)
    max_time = satellite_pass.max_elevation_time
    max_effective = stats["max_effective_angle_deg"]
    return {
        "norad_id": norad_id,
        "start_time": satellite_pass.start_time.isoformat(),
        "max_elevation_time": max_time.isoformat() if max_time else None,
        "end_time": satellite_pass.end_time.isoformat(),
        "max_elevation_deg": round(satellite_pass.max_elevation_deg, 2),
        "duration_seconds": satellite_pass.duration_seconds,
        "is_daylight": satellite_pass.is_daylight,
        "total_points": stats["total_points"],
        "total_segments": stats["total_segments"],
        "distance_km": round(stats["distance_km"], 1),
        "max_effective_angle_deg": max_effective,
        "avg_effective_angle_deg": stats["avg_effective_angle_deg"],
        "quality": classify_effective_angle(max_effective) if max_effective is not None else None,
    }


def export_passes(
    results: Dict[str, List[Pass]],
    output_file: Union[str, Path],
    format: str = "auto",
) -> Path:
    """
    Export search results to file.

    Args:
        results: Output of PassSearch.search (or NORAD id -> passes)
        output_file: Output file path
        format: Output format ("json", "csv", or "auto")

    Returns:
        Path of the written file
    """
    output_path = Path(output_file)

    if format == "auto":
        format = output_path.suffix.lower().lstrip(".")
        if format not in ["json", "csv"]:
            format = "json"
    if format not in ["json", "csv"]:
        raise ValueError(f"Unsupported format: {format}")

    entries = [(norad_id, p) for norad_id, passes in results.items() for p in passes]
    entries.sort(key=lambda item: item[1].start_time)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    if format == "json":
        export_data = {
            "metadata": {
                "export_time": datetime.now(timezone.utc).replace(tzinfo=None).isoformat(),
                "total_passes": len(entries),
            },
            "passes": [{"norad_id": norad_id, **p.to_dict()} for norad_id, p in entries],
        }
        with open(output_path, "w") as f:
            json.dump(export_data, f, indent=2)
    else:
        df = pd.DataFrame([_pass_row(norad_id, p) for norad_id, p in entries], columns=CSV_COLUMNS)
        df.to_csv(output_path, index=False)

    logger.info(f"Exported {len(entries)} passes to {output_path}")
    return output_path
