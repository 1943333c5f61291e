from typing import List, Optional

from pydantic import BaseModel, Field


class GeocodingResult(BaseModel):
    """Single match from the Open-Meteo geocoding search."""

    name: str = Field(..., description="Matched place name")
    latitude: float = Field(..., ge=-90, le=90, description="Latitude")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude")
    country: Optional[str] = Field(None, description="Country name")
    admin1: Optional[str] = Field(None, description="First-level administrative region")


class GeocodingResponse(BaseModel):
    """Open-Meteo geocoding search response. `results` is omitted when nothing matches."""

    results: List[GeocodingResult] = Field(default_factory=list)
