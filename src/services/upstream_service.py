from typing import Any, Dict

import httpx
import structlog

from src.exceptions.upstream import DecodeError, UpstreamUnavailableError

logger = structlog.get_logger(__name__)


class UpstreamService:
    """
    Base for services that call a JSON HTTP API.

    Each call opens a short-lived client with a bounded timeout. There is no
    retry: the first failure is raised to the caller.
    """

    upstream_name = "upstream"

    def __init__(self, base_url: str, timeout_seconds: float):
        self.base_url = base_url
        self.timeout = httpx.Timeout(timeout_seconds)

    async def _make_request(self, params: Dict[str, Any]) -> Any:
        """
        Make a GET request to the upstream API and decode the JSON body.

        Args:
            params: Query parameters

        Returns:
            Decoded JSON response

        Raises:
            UpstreamUnavailableError: On transport errors, timeouts or non-200 statuses
            DecodeError: If the body is not valid JSON
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                logger.debug("Making API request", upstream=self.upstream_name, url=self.base_url, params=params)
                response = await client.get(self.base_url, params=params)

        except httpx.TimeoutException as e:
            logger.warning("Request timeout", upstream=self.upstream_name, error=str(e))
            raise UpstreamUnavailableError(f"{self.upstream_name} request timed out")

        except httpx.RequestError as e:
            logger.warning("Request error", upstream=self.upstream_name, error=str(e))
            raise UpstreamUnavailableError(f"{self.upstream_name} request failed: {str(e)}")

        if response.status_code != 200:
            logger.warning(
                "API request failed",
                upstream=self.upstream_name,
                status_code=response.status_code,
                response_text=response.text,
            )
            raise UpstreamUnavailableError(
                f"{self.upstream_name} API returned status {response.status_code}"
            )

        try:
            return response.json()
        except ValueError as e:
            logger.warning("Failed to decode response body", upstream=self.upstream_name, error=str(e))
            raise DecodeError(f"{self.upstream_name} response is not valid JSON: {str(e)}")
