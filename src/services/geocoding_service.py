from typing import Dict, Optional, Tuple

import structlog
from pydantic import ValidationError

from src.config.config import config
from src.exceptions.geocoding import CityNotFoundError
from src.exceptions.upstream import DecodeError
from src.models.geocoding.geocoding import GeocodingResponse
from src.models.weather.weather import Coordinate
from src.observability.metrics import STATUS_ERROR, STATUS_SUCCESS, ServiceMetrics
from src.services.upstream_service import UpstreamService

logger = structlog.get_logger(__name__)

# Matched exactly and case-sensitively before any network lookup
CURATED_CITIES: Dict[str, Tuple[float, float]] = {
    "New York": (40.7128, -74.0060),
    "London": (51.5074, -0.1278),
    "Tokyo": (35.6762, 139.6503),
    "Paris": (48.8566, 2.3522),
    "Los Angeles": (34.0522, -118.2437),
    "Chicago": (41.8781, -87.6298),
    "Sydney": (-33.8688, 151.2093),
}


class GeocodingService(UpstreamService):
    """
    Resolves place names to coordinates.

    The curated table answers first; anything else goes to the Open-Meteo
    geocoding search and the first match is used.
    """

    upstream_name = "geocoding"

    def __init__(
        self,
        metrics: ServiceMetrics,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        curated: Optional[Dict[str, Tuple[float, float]]] = None,
    ):
        super().__init__(
            base_url=base_url or config.geocoding_base_url,
            timeout_seconds=timeout_seconds or config.upstream_timeout_seconds,
        )
        self.metrics = metrics
        self.curated = CURATED_CITIES if curated is None else curated

    def lookup_curated(self, name: str) -> Optional[Coordinate]:
        coords = self.curated.get(name)
        if coords is None:
            return None
        return Coordinate(latitude=coords[0], longitude=coords[1])

    async def resolve(self, name: str) -> Coordinate:
        """
        Resolve a city name to a coordinate.

        Args:
            name: Free-text place name

        Returns:
            Coordinate of the curated entry or the first geocoding match

        Raises:
            CityNotFoundError: If the geocoding search returns no results
            UpstreamUnavailableError: On transport errors or non-success statuses
            DecodeError: If the response cannot be parsed
        """
        coord = self.lookup_curated(name)
        if coord is not None:
            logger.debug("Resolved city from curated table", city=name)
            self.metrics.record_geocoding(source="curated", status=STATUS_SUCCESS)
            return coord

        logger.info("Geocoding city", city=name)
        try:
            coord = await self._search(name)
        except Exception:
            self.metrics.record_geocoding(source="remote", status=STATUS_ERROR)
            raise

        self.metrics.record_geocoding(source="remote", status=STATUS_SUCCESS)
        logger.info("Geocoded city", city=name, latitude=coord.latitude, longitude=coord.longitude)
        return coord

    async def _search(self, name: str) -> Coordinate:
        params = {"name": name, "count": 1, "language": "en", "format": "json"}
        data = await self._make_request(params)

        try:
            response = GeocodingResponse.model_validate(data)
        except ValidationError as e:
            logger.error("Failed to parse geocoding data", city=name, error=str(e))
            raise DecodeError(f"Invalid geocoding data received for {name}: {str(e)}")

        if not response.results:
            raise CityNotFoundError(
                f"location not found: {name} (try: {', '.join(self.curated)})"
            )

        first = response.results[0]
        return Coordinate(latitude=first.latitude, longitude=first.longitude)
