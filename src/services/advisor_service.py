import asyncio
import time
from contextlib import aclosing
from typing import AsyncIterator, List, Optional, Sequence

import structlog

from src.config.config import config
from src.exceptions import AdviceTimeoutError, GenerationError, WeatherAdvisorError
from src.models.advisor.advice import AdviceFragment, CityRequest
from src.models.weather.weather import WeatherSummary
from src.observability.metrics import STATUS_CANCELLED, STATUS_ERROR, ServiceMetrics
from src.services.advisory_composer import AdvisoryComposer
from src.services.geocoding_service import GeocodingService
from src.services.weather_service import WeatherService

logger = structlog.get_logger(__name__)

STEP_GEOCODING = "geocoding"
STEP_WEATHER = "weather"

OPERATION_GET_ADVICE = "get_advice"
OPERATION_STREAM_ADVICE = "stream_advice"


class AdvisorService:
    """
    Coordinates geocoding, weather lookups and advice generation.

    Cities are handled one at a time in request order. The first failing city
    aborts the request and the raised error names that city and the step
    ("geocoding" or "weather") that failed. Advice is only composed once every
    city has a weather summary.
    """

    def __init__(
        self,
        geocoding_service: GeocodingService,
        weather_service: WeatherService,
        composer: AdvisoryComposer,
        metrics: ServiceMetrics,
        advice_timeout_seconds: Optional[float] = None,
        stream_timeout_seconds: Optional[float] = None,
    ):
        """Initialize the advisor service."""
        self.geocoding_service = geocoding_service
        self.weather_service = weather_service
        self.composer = composer
        self.metrics = metrics
        self.advice_timeout = advice_timeout_seconds or config.advice_timeout_seconds
        self.stream_timeout = stream_timeout_seconds or config.stream_timeout_seconds

        logger.info(
            "Advisor service initialized",
            advice_timeout=self.advice_timeout,
            stream_timeout=self.stream_timeout,
        )

    async def gather_weather(self, cities: Sequence[CityRequest]) -> List[WeatherSummary]:
        """
        Resolve and fetch weather for each city, strictly in order.

        Args:
            cities: Cities in request order

        Returns:
            One WeatherSummary per city, labelled with the requested name

        Raises:
            WeatherAdvisorError: The first failure, re-raised with its city and step
        """
        summaries: List[WeatherSummary] = []

        for index, city in enumerate(cities, start=1):
            log = logger.bind(city=city.location, index=index, total=len(cities))

            log.debug("Resolving city")
            try:
                coord = await self.geocoding_service.resolve(city.location)
            except WeatherAdvisorError as e:
                raise self._attribute(e, city.location, STEP_GEOCODING) from e

            log.debug("Fetching weather", latitude=coord.latitude, longitude=coord.longitude)
            try:
                report = await self.weather_service.get_current_weather(coord)
            except WeatherAdvisorError as e:
                raise self._attribute(e, city.location, STEP_WEATHER) from e

            summaries.append(report.to_summary(label=city.location))

        return summaries

    async def get_advice(self, cities: Sequence[CityRequest]) -> str:
        """
        Gather weather for every city and return the complete advice text.

        Raises:
            CityNotFoundError: A city could not be resolved
            UpstreamUnavailableError: An upstream API failed
            DecodeError: An upstream response could not be parsed
            NoResponseError: The model produced no text
            GenerationError: Generation failed
            AdviceTimeoutError: The call exceeded the single-shot ceiling
        """
        logger.info("Processing advice request", cities=[city.location for city in cities])

        with self.metrics.track_advice(OPERATION_GET_ADVICE):
            try:
                advice = await asyncio.wait_for(self._advise_once(cities), timeout=self.advice_timeout)

            except asyncio.TimeoutError:
                logger.warning("Advice request timed out", timeout=self.advice_timeout)
                raise AdviceTimeoutError(f"advice request exceeded {self.advice_timeout:g}s")

            except WeatherAdvisorError as e:
                self._log_failure(OPERATION_GET_ADVICE, e)
                raise

        logger.info("Advice request completed", advice_length=len(advice))
        return advice

    async def _advise_once(self, cities: Sequence[CityRequest]) -> str:
        summaries = await self.gather_weather(cities)
        logger.debug("Composing advice", cities=len(summaries))
        return await self.composer.compose_once(summaries)

    async def stream_advice(self, cities: Sequence[CityRequest]) -> AsyncIterator[AdviceFragment]:
        """
        Gather weather for every city, then return an iterator of advice fragments.

        Gathering finishes before this returns, so a city failure raises here
        and no fragment is ever produced. The returned iterator ends with a
        terminal fragment on success; on generation failure or when the
        streaming ceiling passes it raises without one.
        """
        started_at = time.perf_counter()
        deadline = asyncio.get_running_loop().time() + self.stream_timeout
        logger.info("Processing streaming advice request", cities=[city.location for city in cities])

        try:
            summaries = await asyncio.wait_for(self.gather_weather(cities), timeout=self.stream_timeout)

        except asyncio.TimeoutError:
            self._record_early_outcome(STATUS_ERROR, started_at)
            logger.warning("Streaming advice request timed out while gathering weather", timeout=self.stream_timeout)
            raise AdviceTimeoutError(f"advice stream exceeded {self.stream_timeout:g}s")

        except asyncio.CancelledError:
            self._record_early_outcome(STATUS_CANCELLED, started_at)
            logger.info("Streaming advice request cancelled while gathering weather")
            raise

        except WeatherAdvisorError as e:
            self._record_early_outcome(STATUS_ERROR, started_at)
            self._log_failure(OPERATION_STREAM_ADVICE, e)
            raise

        # Outcomes up to here are recorded above; from the first fragment on
        # the relay records its own. A relay that is never iterated records none.
        return self._relay(summaries, deadline, started_at)

    async def _relay(
        self, summaries: List[WeatherSummary], deadline: float, started_at: float
    ) -> AsyncIterator[AdviceFragment]:
        loop = asyncio.get_running_loop()
        fragments_sent = 0
        completed = False

        with self.metrics.track_advice(OPERATION_STREAM_ADVICE, started_at=started_at):
            try:
                async with aclosing(self.composer.compose_stream(summaries)) as fragments:
                    while True:
                        remaining = deadline - loop.time()
                        if remaining <= 0:
                            raise asyncio.TimeoutError()
                        try:
                            fragment = await asyncio.wait_for(fragments.__anext__(), timeout=remaining)
                        except StopAsyncIteration:
                            break

                        completed = fragment.is_complete
                        yield fragment
                        if completed:
                            break
                        fragments_sent += 1

            except asyncio.TimeoutError:
                logger.warning(
                    "Advice stream timed out",
                    timeout=self.stream_timeout,
                    fragments_sent=fragments_sent,
                )
                raise AdviceTimeoutError(f"advice stream exceeded {self.stream_timeout:g}s")

            except GeneratorExit:
                if completed:
                    logger.info("Advice stream completed", fragments_sent=fragments_sent)
                    return
                logger.info("Advice stream closed by caller", fragments_sent=fragments_sent)
                raise

            except asyncio.CancelledError:
                logger.info("Advice stream cancelled", fragments_sent=fragments_sent)
                raise

            except WeatherAdvisorError as e:
                self._log_failure(OPERATION_STREAM_ADVICE, e, fragments_sent=fragments_sent)
                raise

        logger.info("Advice stream completed", fragments_sent=fragments_sent)

    def _record_early_outcome(self, status: str, started_at: float):
        self.metrics.record_advice(
            OPERATION_STREAM_ADVICE, status, time.perf_counter() - started_at
        )

    @staticmethod
    def _attribute(error: WeatherAdvisorError, city: str, step: str) -> WeatherAdvisorError:
        """Rebuild an error of the same kind with the failing city and step attached."""
        return type(error)(f"{step} failed for {city}: {error.message}", city=city, step=step)

    @staticmethod
    def _log_failure(operation: str, error: WeatherAdvisorError, **fields):
        if isinstance(error, GenerationError):
            logger.error("Advice generation failed", operation=operation, error=str(error), **fields)
        else:
            logger.warning(
                "Advice request failed",
                operation=operation,
                error_kind=error.kind,
                city=error.city,
                step=error.step,
                error=str(error),
                **fields,
            )
