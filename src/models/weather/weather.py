from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

# WMO weather interpretation codes reported by Open-Meteo
WEATHER_CODE_DESCRIPTIONS: Dict[int, str] = {
    0: "clear sky",
    1: "mainly clear",
    2: "partly cloudy",
    3: "overcast",
    45: "fog",
    48: "depositing rime fog",
    51: "light drizzle",
    53: "moderate drizzle",
    55: "dense drizzle",
    61: "slight rain",
    63: "moderate rain",
    65: "heavy rain",
    71: "slight snow",
    73: "moderate snow",
    75: "heavy snow",
    80: "rain showers",
    81: "moderate rain showers",
    82: "violent rain showers",
    95: "thunderstorm",
}

UNKNOWN_CONDITION = "unknown"

# Open-Meteo's free tier does not report pressure
DEFAULT_PRESSURE_HPA = 1013


def describe_weather_code(code: Optional[int]) -> str:
    """Map a WMO weather code to a short English description."""
    if code is None:
        return UNKNOWN_CONDITION
    return WEATHER_CODE_DESCRIPTIONS.get(code, UNKNOWN_CONDITION)


class Coordinate(BaseModel):
    """Geographic coordinates."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90, description="Latitude")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude")


class CurrentConditions(BaseModel):
    """The `current` block of an Open-Meteo forecast response."""

    temperature_2m: float = Field(..., description="Air temperature at 2m in Celsius")
    relative_humidity_2m: int = Field(..., ge=0, le=100, description="Relative humidity percentage")
    wind_speed_10m: float = Field(..., ge=0, description="Wind speed at 10m")
    wind_direction_10m: Optional[int] = Field(None, ge=0, le=360, description="Wind direction in degrees")
    weather_code: Optional[int] = Field(None, description="WMO weather interpretation code")


class CurrentUnits(BaseModel):
    """Units for the `current` block."""

    temperature_2m: Optional[str] = None
    wind_speed_10m: Optional[str] = None


class OpenMeteoResponse(BaseModel):
    """Open-Meteo forecast API response model (current conditions only)."""

    current: CurrentConditions = Field(..., description="Current weather conditions")
    current_units: Optional[CurrentUnits] = Field(None, description="Units for current conditions")


class WeatherSummary(BaseModel):
    """Compact per-city weather line fed into the advice prompt."""

    location_label: str = Field(..., description="Human readable location label")
    temperature_c: float = Field(..., description="Temperature in Celsius")
    condition: str = Field(..., description="Short condition description")
    humidity_pct: int = Field(..., ge=0, le=100, description="Humidity percentage")
    wind_speed: float = Field(..., ge=0, description="Wind speed")

    def to_prompt_line(self) -> str:
        return (
            f"City: {self.location_label}, Temp: {self.temperature_c:.1f}°C, "
            f"Condition: {self.condition}, Humidity: {self.humidity_pct}%, "
            f"Wind: {self.wind_speed:.1f} m/s"
        )


class WeatherReport(BaseModel):
    """Normalized current weather record returned by GetCurrentWeather."""

    location: str = Field(..., description="Location label, 'lat,lon' to two decimals")
    temperature: float = Field(..., description="Temperature in Celsius")
    feels_like: float = Field(..., description="Feels like temperature in Celsius")
    temp_min: float = Field(..., description="Minimum temperature")
    temp_max: float = Field(..., description="Maximum temperature")
    pressure: int = Field(..., description="Atmospheric pressure in hPa")
    humidity: int = Field(..., ge=0, le=100, description="Humidity percentage")
    wind_speed: float = Field(..., ge=0, description="Wind speed")
    wind_deg: Optional[int] = Field(None, description="Wind direction in degrees")
    timestamp: int = Field(..., description="Fetch time as a unix timestamp")
    description: str = Field(..., description="Weather condition description")

    @classmethod
    def from_open_meteo_response(
        cls, coord: Coordinate, response: OpenMeteoResponse, fetched_at: Optional[datetime] = None
    ) -> "WeatherReport":
        """
        Create a WeatherReport from an Open-Meteo forecast response.

        The provider has no feels-like, min/max or pressure fields in the
        current block, so the current temperature and a standard pressure
        stand in for them.

        Args:
            coord: Coordinate the forecast was requested for
            response: Parsed Open-Meteo response
            fetched_at: Fetch time, defaults to now

        Returns:
            WeatherReport: Normalized weather record
        """
        current = response.current
        fetched_at = fetched_at or datetime.now()

        return cls(
            location=f"{coord.latitude:.2f},{coord.longitude:.2f}",
            temperature=current.temperature_2m,
            feels_like=current.temperature_2m,
            temp_min=current.temperature_2m,
            temp_max=current.temperature_2m,
            pressure=DEFAULT_PRESSURE_HPA,
            humidity=current.relative_humidity_2m,
            wind_speed=current.wind_speed_10m,
            wind_deg=current.wind_direction_10m,
            timestamp=int(fetched_at.timestamp()),
            description=describe_weather_code(current.weather_code),
        )

    def to_summary(self, label: Optional[str] = None) -> WeatherSummary:
        """Project this report onto the prompt summary shape."""
        return WeatherSummary(
            location_label=label or self.location,
            temperature_c=self.temperature,
            condition=self.description,
            humidity_pct=self.humidity,
            wind_speed=self.wind_speed,
        )
