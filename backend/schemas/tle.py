"""TLE (Two-Line Element) schemas."""

from typing import Optional

from pydantic import BaseModel, field_validator


class TLEData(BaseModel):
    name: Optional[str] = None
    line1: str
    line2: str

    @field_validator("line1")
    @classmethod
    def validate_line1(cls, v: str) -> str:
        if not v.strip().startswith("1 "):
            raise ValueError('TLE line1 must start with "1 "')
        return v.strip()

    @field_validator("line2")
    @classmethod
    def validate_line2(cls, v: str) -> str:
        if not v.strip().startswith("2 "):
            raise ValueError('TLE line2 must start with "2 "')
        return v.strip()


class TLEValidationResponse(BaseModel):
    valid: bool
    norad_id: Optional[str] = None
    name: Optional[str] = None
    epoch: Optional[str] = None
    inclination_deg: Optional[float] = None
    height_km: Optional[float] = None
    orbital_period_minutes: Optional[float] = None
    error: Optional[str] = None
