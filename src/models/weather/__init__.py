from src.models.weather.weather import (
    Coordinate,
    OpenMeteoResponse,
    WeatherReport,
    WeatherSummary,
    describe_weather_code,
)

__all__ = [
    "Coordinate",
    "OpenMeteoResponse",
    "WeatherReport",
    "WeatherSummary",
    "describe_weather_code",
]
