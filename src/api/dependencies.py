from fastapi import Request

from src.services.advisor_service import AdvisorService
from src.services.weather_service import WeatherService


def get_advisor_service(request: Request) -> AdvisorService:
    """Advisor service built by the application lifespan."""
    return request.app.state.advisor_service


def get_weather_service(request: Request) -> WeatherService:
    """Weather service built by the application lifespan."""
    return request.app.state.weather_service
