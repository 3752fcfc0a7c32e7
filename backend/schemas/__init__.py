"""
Backend Pydantic schemas for API request/response models.

All schemas are re-exported here for convenient imports:
    from backend.schemas import TLEData, PassRequest, PassResponse
"""

from backend.schemas.passes import (
    CacheClearResponse,
    ObserverData,
    PassRequest,
    PassResponse,
    PassSummary,
)
from backend.schemas.tle import TLEData, TLEValidationResponse

__all__ = [
    "CacheClearResponse",
    "ObserverData",
    "PassRequest",
    "PassResponse",
    "PassSummary",
    "TLEData",
    "TLEValidationResponse",
]
