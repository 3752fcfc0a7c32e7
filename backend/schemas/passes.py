"""Pass search request/response schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from backend.schemas.tle import TLEData


class ObserverData(BaseModel):
    latitude: float
    longitude: float
    name: Optional[str] = None
    altitude_m: float = 0.0

    @field_validator("latitude")
    @classmethod
    def validate_latitude(cls, v: float) -> float:
        if not -90 <= v <= 90:
            raise ValueError("Latitude must be between -90 and 90 degrees")
        return v

    @field_validator("longitude")
    @classmethod
    def validate_longitude(cls, v: float) -> float:
        if not -180 <= v <= 180:
            raise ValueError("Longitude must be between -180 and 180 degrees")
        return v


class PassRequest(BaseModel):
    tle: TLEData
    observer: ObserverData
    start_time: datetime
    end_time: datetime
    min_elevation_deg: float = Field(default=10.0, ge=-90, le=90)
    consider_daylight: bool = False
    include_points: bool = True

    @model_validator(mode="after")
    def validate_window(self) -> "PassRequest":
        if self.start_time > self.end_time:
            raise ValueError("start_time must not be after end_time")
        return self


class PassSummary(BaseModel):
    start_time: str
    end_time: str
    max_elevation_deg: float
    max_elevation_time: Optional[str] = None
    duration_seconds: float
    is_daylight: bool
    quality: Optional[str] = None
    statistics: Dict[str, Any] = Field(default_factory=dict)
    segments: List[Dict[str, Any]] = Field(default_factory=list)


class PassResponse(BaseModel):
    norad_id: str
    name: Optional[str] = None
    total_passes: int
    passes: List[PassSummary]


class CacheClearResponse(BaseModel):
    cleared: bool
    scope: str
