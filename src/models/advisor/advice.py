from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class CityRequest(BaseModel):
    """A city to include in an advice request. State and country are hints only."""

    location: str = Field(..., description="City name, e.g. 'New York'")
    state: Optional[str] = Field(None, description="State or region hint")
    country: Optional[str] = Field(None, description="Country hint")

    @field_validator("location")
    def validate_location(cls, v):
        if not v or not v.strip():
            raise ValueError("City location must not be blank")
        return v


class AdviceRequest(BaseModel):
    """Ordered list of cities to gather weather for."""

    cities: List[CityRequest] = Field(..., min_length=1, description="Cities in gathering order")


class AdviceResponse(BaseModel):
    advice: str = Field(..., description="Generated weather advice")


class AdviceFragment(BaseModel):
    """One piece of streamed advice, or the terminal marker when `is_complete` is set."""

    chunk: str = Field(default="", description="Advice text produced since the previous fragment")
    is_complete: bool = Field(default=False, description="True only on the final, empty fragment")

    @classmethod
    def terminal(cls) -> "AdviceFragment":
        return cls(chunk="", is_complete=True)
