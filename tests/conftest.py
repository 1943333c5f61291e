import asyncio
import os
import tempfile
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock, patch

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="weather-advisor-logs-"))

import pytest

from src.exceptions import GenerationError
from src.models.advisor.advice import CityRequest
from src.models.weather.weather import Coordinate, WeatherReport
from src.observability.metrics import ServiceMetrics


class FakeGenerator:
    """Stand-in for AdvisorAgent that replays canned text."""

    def __init__(
        self,
        text: str = "Wear a light jacket.",
        chunks: Optional[List[str]] = None,
        fail_after: Optional[int] = None,
        error: Optional[Exception] = None,
        hold_open: bool = False,
        delay: float = 0.0,
    ):
        self.text = text
        self.chunks = chunks if chunks is not None else ["Wear ", "a light ", "jacket."]
        self.fail_after = fail_after
        self.error = error or GenerationError("streaming failed: model crashed")
        self.hold_open = hold_open
        self.delay = delay
        self.prompts: List[str] = []
        self.stream_closed = False

    async def run(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.text

    async def stream(self, prompt: str):
        self.prompts.append(prompt)
        try:
            for index, chunk in enumerate(self.chunks):
                if self.fail_after is not None and index == self.fail_after:
                    raise self.error
                yield chunk
            if self.hold_open:
                await asyncio.Event().wait()
        finally:
            self.stream_closed = True


@pytest.fixture
def metrics():
    """Metrics handle on a private registry."""
    return ServiceMetrics()


@pytest.fixture
def fake_generator():
    """Factory for FakeGenerator instances."""
    return FakeGenerator


@pytest.fixture
def mock_http_client():
    """Patch httpx.AsyncClient and yield the client used inside `async with`."""
    with patch('httpx.AsyncClient') as mock_client_class:
        mock_client = AsyncMock()
        mock_client_class.return_value.__aenter__.return_value = mock_client
        yield mock_client


@pytest.fixture
def make_response():
    """Factory for fake httpx responses."""

    def _make_response(status_code: int = 200, payload=None, text: str = ""):
        response = MagicMock()
        response.status_code = status_code
        response.text = text
        if isinstance(payload, Exception):
            response.json.side_effect = payload
        else:
            response.json.return_value = payload
        return response

    return _make_response


@pytest.fixture
def open_meteo_payload():
    """Open-Meteo forecast response with current conditions."""
    return {
        "latitude": 51.5,
        "longitude": -0.12,
        "timezone": "Europe/London",
        "current_units": {"temperature_2m": "°C", "wind_speed_10m": "km/h"},
        "current": {
            "time": "2024-10-01T12:00",
            "interval": 900,
            "temperature_2m": 15.5,
            "relative_humidity_2m": 65,
            "wind_speed_10m": 3.5,
            "wind_direction_10m": 180,
            "weather_code": 3,
        },
    }


@pytest.fixture
def sample_weather_report():
    """Normalized weather report for London."""
    return WeatherReport(
        location="51.51,-0.13",
        temperature=15.5,
        feels_like=15.5,
        temp_min=15.5,
        temp_max=15.5,
        pressure=1013,
        humidity=65,
        wind_speed=3.5,
        wind_deg=180,
        timestamp=1727784000,
        description="overcast",
    )


@pytest.fixture
def cities():
    return [CityRequest(location="New York"), CityRequest(location="London")]


@pytest.fixture
def mock_geocoding_service():
    """Geocoding service mock that resolves every name to a fixed coordinate."""
    mock_service = AsyncMock()
    mock_service.resolve.return_value = Coordinate(latitude=40.7128, longitude=-74.0060)
    return mock_service


@pytest.fixture
def mock_weather_service(sample_weather_report):
    """Weather service mock returning the sample report."""
    mock_service = AsyncMock()
    mock_service.get_current_weather.return_value = sample_weather_report
    return mock_service
