"""
FastAPI backend for the Satellite Pass Search.

Provides REST API endpoints for:
- TLE validation
- Pass search over an observer
- Cache management
"""

import logging
from typing import Any, Dict, List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.routers.passes import router as passes_router
from backend.schemas.tle import TLEData, TLEValidationResponse
from backend.service import get_search, shutdown_search
from orbit_search.prefilter import extract_orbital_elements
from orbit_search.provider import get_common_tle_sources
from orbit_search.tle import InvalidTLEError, TleRecord
from orbit_search.utils import setup_logging

# Initialize FastAPI app
app = FastAPI(
    title="Satellite Pass Search API",
    description="REST API for satellite pass prediction over ground observers",
    version="0.1.0",
)

# Enable CORS for frontend (allow all origins in development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when using allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(passes_router)

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def startup_event() -> None:
    """Start the cache expiry sweep."""
    get_search().cache.start()


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """Stop the cache expiry sweep and the pass worker on application shutdown."""
    logger.info("Application shutting down, stopping cache sweep and pass worker...")
    shutdown_search(get_search())


# =============================================================================
# API Endpoints
# =============================================================================


@app.get("/")
async def root() -> Dict[str, str]:
    """Root endpoint - health check"""
    return {"message": "Satellite Pass Search API is running"}


@app.post("/api/v1/tle/validate", response_model=TLEValidationResponse)
async def validate_tle(tle_data: TLEData) -> TLEValidationResponse:
    """Validate TLE data and return element set information"""
    try:
        record = TleRecord.from_lines(tle_data.line1, tle_data.line2, name=tle_data.name)
        elements = extract_orbital_elements(record.line2)
    except InvalidTLEError as e:
        logger.warning(f"TLE validation failed: {e}")
        return TLEValidationResponse(valid=False, name=tle_data.name, error=str(e))

    mean_motion = float(record.line2[52:63])
    return TLEValidationResponse(
        valid=True,
        norad_id=record.norad_id,
        name=record.name,
        epoch=record.epoch.isoformat(),
        inclination_deg=elements.inclination_deg,
        height_km=round(elements.height_km, 1),
        orbital_period_minutes=round(1440.0 / mean_motion, 2),
    )


@app.get("/api/v1/tle/sources")
async def get_tle_sources() -> Dict[str, List[Dict[str, Any]]]:
    """Get available TLE data sources from Celestrak"""
    formatted_sources = []
    for key, url in get_common_tle_sources().items():
        name = key.replace("celestrak_", "").replace("_", " ").title()
        formatted_sources.append({"id": key, "name": f"Celestrak - {name}", "url": url})
    return {"sources": formatted_sources}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
