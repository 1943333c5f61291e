import structlog
from fastapi import APIRouter, Depends, Query

from src.api.auth import verify_token
from src.api.dependencies import get_weather_service
from src.models.weather.weather import Coordinate, WeatherReport
from src.services.weather_service import WeatherService

logger = structlog.get_logger(__name__)

# Create router
router = APIRouter(prefix="/weather", tags=["Weather"])


@router.get("/current", summary="Get Current Weather", response_model=WeatherReport)
async def get_current_weather(
    latitude: float = Query(..., ge=-90, le=90, description="Latitude"),
    longitude: float = Query(..., ge=-180, le=180, description="Longitude"),
    weather_service: WeatherService = Depends(get_weather_service),
    authenticated: bool = Depends(verify_token),
):
    """
    Get current weather data for a coordinate.

    Args:
        latitude: Latitude in degrees.
        longitude: Longitude in degrees.
        weather_service: Weather service from application state.
        authenticated: Dependency that enforces optional token verification.

    Returns:
        Normalized current weather record.

    Raises:
        UpstreamUnavailableError: Mapped to 502 by the application error handler.
        DecodeError: Mapped to 502 by the application error handler.
    """
    logger.info(
        "API request: Get current weather",
        latitude=latitude,
        longitude=longitude,
        authenticated=authenticated
    )
    return await weather_service.get_current_weather(Coordinate(latitude=latitude, longitude=longitude))
