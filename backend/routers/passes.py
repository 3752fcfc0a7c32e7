"""
Pass Search API Router.

Provides endpoints:
- POST   /api/v1/passes  - Compute passes of one satellite over an observer
- DELETE /api/v1/cache   - Clear the element-set cache
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException

from backend.schemas.passes import CacheClearResponse, PassRequest, PassResponse, PassSummary
from backend.service import get_search
from orbit_search.cache import CacheStorageError
from orbit_search.observer import ObserverLocation, SearchFilters
from orbit_search.segmenter import Pass, classify_effective_angle, pass_statistics
from orbit_search.tle import InvalidTLEError, TleRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Passes"])


def _summarize_pass(satellite_pass: Pass, include_points: bool) -> PassSummary:
    data = satellite_pass.to_dict()
    stats = pass_statistics(satellite_pass)
    max_effective = stats["max_effective_angle_deg"]
    return PassSummary(
        start_time=data["start_time"],
        end_time=data["end_time"],
        max_elevation_deg=data["max_elevation_deg"],
        max_elevation_time=data["max_elevation_time"],
        duration_seconds=data["duration_seconds"],
        is_daylight=data["is_daylight"],
        quality=classify_effective_angle(max_effective) if max_effective is not None else None,
        statistics=stats,
        segments=data["segments"] if include_points else [],
    )


@router.post("/passes", response_model=PassResponse)
def compute_passes(request: PassRequest) -> PassResponse:
    """Compute passes of a satellite over an observer"""
    try:
        tle = TleRecord.from_lines(request.tle.line1, request.tle.line2, name=request.tle.name)
        location = ObserverLocation(
            lat=request.observer.latitude,
            lng=request.observer.longitude,
            name=request.observer.name,
            altitude_m=request.observer.altitude_m,
        )
        filters = SearchFilters(
            start_time=request.start_time,
            end_time=request.end_time,
            location=location,
            min_elevation_deg=request.min_elevation_deg,
            consider_daylight=request.consider_daylight,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        results = get_search().search([tle], filters)
    except InvalidTLEError as e:
        raise HTTPException(status_code=400, detail=str(e))

    passes = results.get(tle.norad_id, [])
    logger.info(f"Pass search for {tle.norad_id} over {location}: {len(passes)} passes")

    return PassResponse(
        norad_id=tle.norad_id,
        name=tle.name,
        total_passes=len(passes),
        passes=[_summarize_pass(p, request.include_points) for p in passes],
    )


@router.delete("/cache", response_model=CacheClearResponse)
def clear_cache(norad_id: Optional[str] = None) -> CacheClearResponse:
    """Clear the whole cache, or one cached TLE"""
    cache = get_search().cache
    try:
        if norad_id:
            cache.clear_tle(norad_id)
            return CacheClearResponse(cleared=True, scope=f"tle:{norad_id}")
        cache.clear_all()
        return CacheClearResponse(cleared=True, scope="all")
    except CacheStorageError as e:
        logger.error(f"Cache clear failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
