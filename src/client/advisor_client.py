import json
from typing import Any, AsyncIterator, Dict, Iterable, Optional, Union

import httpx
import structlog

from src.exceptions import (
    AdviceTimeoutError,
    CityNotFoundError,
    DecodeError,
    GenerationError,
    NoResponseError,
    UpstreamUnavailableError,
    WeatherAdvisorError,
)
from src.models.advisor.advice import AdviceFragment, AdviceRequest, CityRequest
from src.models.weather.weather import WeatherReport

logger = structlog.get_logger(__name__)

ERROR_KINDS = {
    error_type.__name__: error_type
    for error_type in (
        AdviceTimeoutError,
        CityNotFoundError,
        DecodeError,
        GenerationError,
        NoResponseError,
        UpstreamUnavailableError,
    )
}


class IncompleteStreamError(WeatherAdvisorError):
    """Raised when an advice stream ends without its terminal fragment."""

    pass


def error_from_payload(payload: Dict[str, Any], default: str = "request failed") -> WeatherAdvisorError:
    """Rebuild a server-side error from its structured JSON body."""
    error_type = ERROR_KINDS.get(payload.get("error"), UpstreamUnavailableError)
    message = payload.get("message") or str(payload.get("error") or default)
    return error_type(message, city=payload.get("city"), step=payload.get("step"))


class AdvisorClient:
    """
    Async client for the Weather Advisor API.

    Args:
        base_url: Server root, e.g. "http://localhost:8080"
        api_token: Bearer token when the server requires one
        timeout_seconds: Read timeout; streaming calls should allow the server's full ceiling
        transport: Optional httpx transport, used by tests
    """

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        timeout_seconds: float = 70.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            transport=transport,
        )

    async def __aenter__(self) -> "AdvisorClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        await self._client.aclose()

    @staticmethod
    def _advice_body(cities: Iterable[Union[str, CityRequest]]) -> Dict[str, Any]:
        requests = [city if isinstance(city, CityRequest) else CityRequest(location=city) for city in cities]
        return AdviceRequest(cities=requests).model_dump(exclude_none=True)

    @staticmethod
    def _raise_for_error(response: httpx.Response):
        if response.status_code == 200:
            return
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        raise error_from_payload(payload, default=f"server returned status {response.status_code}")

    async def get_current_weather(self, latitude: float, longitude: float) -> WeatherReport:
        response = await self._client.get(
            "/api/v1/weather/current", params={"latitude": latitude, "longitude": longitude}
        )
        self._raise_for_error(response)
        return WeatherReport.model_validate(response.json())

    async def get_advice(self, cities: Iterable[Union[str, CityRequest]]) -> str:
        response = await self._client.post("/api/v1/advisor/advice", json=self._advice_body(cities))
        self._raise_for_error(response)
        return response.json()["advice"]

    async def stream_advice(self, cities: Iterable[Union[str, CityRequest]]) -> AsyncIterator[str]:
        """
        Yield advice text chunks as the server produces them.

        Returns normally only after the terminal fragment arrives. A body that
        ends without it, or that carries an error line, raises.
        """
        async with self._client.stream(
            "POST", "/api/v1/advisor/advice/stream", json=self._advice_body(cities)
        ) as response:
            if response.status_code != 200:
                await response.aread()
                self._raise_for_error(response)

            try:
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        payload = json.loads(line)
                    except ValueError as e:
                        raise DecodeError(f"invalid advice stream line: {line!r}") from e
                    if "error" in payload:
                        raise error_from_payload(payload)

                    fragment = AdviceFragment.model_validate(payload)
                    if fragment.is_complete:
                        return
                    yield fragment.chunk

            except httpx.RemoteProtocolError as e:
                logger.warning("Advice stream closed abruptly", error=str(e))
                raise IncompleteStreamError(f"advice stream closed abruptly: {str(e)}") from e

        raise IncompleteStreamError("advice stream ended without a completion marker")
