from typing import Optional

import structlog
from pydantic import ValidationError

from src.config.config import config
from src.exceptions.upstream import DecodeError
from src.models.weather.weather import Coordinate, OpenMeteoResponse, WeatherReport
from src.observability.metrics import ServiceMetrics
from src.services.upstream_service import UpstreamService

logger = structlog.get_logger(__name__)

CURRENT_FIELDS = "temperature_2m,relative_humidity_2m,wind_speed_10m,wind_direction_10m,weather_code"


class WeatherService(UpstreamService):
    """
    Service for fetching current conditions from the Open-Meteo forecast API.

    Responses are normalized into WeatherReport records; unknown weather codes
    become "unknown" rather than failing.
    """

    upstream_name = "weather"

    def __init__(
        self,
        metrics: ServiceMetrics,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """Initialize the weather service."""
        super().__init__(
            base_url=base_url or config.weather_base_url,
            timeout_seconds=timeout_seconds or config.upstream_timeout_seconds,
        )
        self.metrics = metrics

    async def get_current_weather(self, coord: Coordinate) -> WeatherReport:
        """
        Get current weather data for a coordinate.

        Args:
            coord: Latitude/longitude to query

        Returns:
            WeatherReport with current weather data

        Raises:
            UpstreamUnavailableError: On transport errors or non-success statuses
            DecodeError: If the response cannot be parsed
        """
        logger.info("Fetching current weather", latitude=coord.latitude, longitude=coord.longitude)

        with self.metrics.track_weather():
            params = {
                "latitude": coord.latitude,
                "longitude": coord.longitude,
                "current": CURRENT_FIELDS,
                "timezone": "auto",
            }
            data = await self._make_request(params)

            try:
                response = OpenMeteoResponse.model_validate(data)
            except ValidationError as e:
                logger.error(
                    "Failed to parse weather data",
                    latitude=coord.latitude,
                    longitude=coord.longitude,
                    error=str(e),
                )
                raise DecodeError(f"Invalid weather data received for {coord.latitude},{coord.longitude}: {str(e)}")

            weather_report = WeatherReport.from_open_meteo_response(coord, response)

        logger.info(
            "Successfully fetched current weather",
            location=weather_report.location,
            temperature=weather_report.temperature,
            description=weather_report.description,
        )
        return weather_report
