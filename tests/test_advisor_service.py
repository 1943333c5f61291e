import asyncio
from contextlib import aclosing
from unittest.mock import call, patch

import pytest

from src.exceptions import (
    AdviceTimeoutError,
    CityNotFoundError,
    DecodeError,
    GenerationError,
    UpstreamUnavailableError,
)
from src.models.advisor.advice import CityRequest
from src.models.weather.weather import Coordinate
from src.services.advisor_service import (
    OPERATION_GET_ADVICE,
    OPERATION_STREAM_ADVICE,
    STEP_GEOCODING,
    STEP_WEATHER,
    AdvisorService,
)
from src.services.advisory_composer import AdvisoryComposer


@pytest.fixture
def make_service(mock_geocoding_service, mock_weather_service, metrics, fake_generator):
    """Build an AdvisorService around mocked lookups and a fake generator."""

    def _make_service(generator=None, **kwargs):
        generator = generator or fake_generator()
        return AdvisorService(
            geocoding_service=mock_geocoding_service,
            weather_service=mock_weather_service,
            composer=AdvisoryComposer(generator=generator),
            metrics=metrics,
            **kwargs,
        )

    return _make_service


class TestGatherWeather:
    """Test cases for sequential weather gathering."""

    @pytest.mark.asyncio
    async def test_cities_processed_in_order(self, make_service, mock_geocoding_service, mock_weather_service, cities):
        service = make_service()

        summaries = await service.gather_weather(cities)

        assert [s.location_label for s in summaries] == ["New York", "London"]
        assert mock_geocoding_service.resolve.call_args_list == [call("New York"), call("London")]
        assert mock_weather_service.get_current_weather.call_count == 2

    @pytest.mark.asyncio
    async def test_lookups_interleave_per_city(self, make_service, mock_geocoding_service, mock_weather_service, cities):
        """Test that each city is resolved and fetched before the next one starts."""
        events = []
        coord = Coordinate(latitude=1.0, longitude=2.0)

        async def resolve(name):
            events.append(("resolve", name))
            return coord

        async def fetch(requested):
            events.append(("fetch", requested))
            return mock_weather_service.get_current_weather.return_value

        mock_geocoding_service.resolve.side_effect = resolve
        mock_weather_service.get_current_weather.side_effect = fetch
        service = make_service()

        await service.gather_weather(cities)

        assert events == [
            ("resolve", "New York"),
            ("fetch", coord),
            ("resolve", "London"),
            ("fetch", coord),
        ]

    @pytest.mark.asyncio
    async def test_not_found_stops_remaining_cities(self, make_service, mock_geocoding_service, mock_weather_service):
        mock_geocoding_service.resolve.side_effect = [
            Coordinate(latitude=40.7, longitude=-74.0),
            CityNotFoundError("location not found: Atlantis"),
        ]
        service = make_service()
        cities = [CityRequest(location="New York"), CityRequest(location="Atlantis"), CityRequest(location="Paris")]

        with pytest.raises(CityNotFoundError) as exc_info:
            await service.gather_weather(cities)

        error = exc_info.value
        assert error.city == "Atlantis"
        assert error.step == STEP_GEOCODING
        assert "Atlantis" in error.message
        assert isinstance(error.__cause__, CityNotFoundError)
        assert mock_geocoding_service.resolve.call_count == 2
        assert mock_weather_service.get_current_weather.call_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error_type", [UpstreamUnavailableError, DecodeError])
    async def test_weather_failure_names_city_and_step(self, make_service, mock_weather_service, cities, error_type):
        mock_weather_service.get_current_weather.side_effect = error_type("weather API returned status 500")
        service = make_service()

        with pytest.raises(error_type) as exc_info:
            await service.gather_weather(cities)

        assert exc_info.value.city == "New York"
        assert exc_info.value.step == STEP_WEATHER
        assert exc_info.value.message == "weather failed for New York: weather API returned status 500"


class TestGetAdvice:
    """Test cases for single-shot advice."""

    @pytest.mark.asyncio
    async def test_get_advice_success(self, make_service, fake_generator, cities, metrics):
        generator = fake_generator(text="Layer up in London.")
        service = make_service(generator=generator)

        advice = await service.get_advice(cities)

        assert advice == "Layer up in London."
        assert "City: New York" in generator.prompts[0]
        assert generator.prompts[0].index("City: New York") < generator.prompts[0].index("City: London")
        assert metrics.sample("advisor_requests_total", operation=OPERATION_GET_ADVICE, status="success") == 1.0

    @pytest.mark.asyncio
    async def test_get_advice_city_failure_skips_generation(
        self, make_service, fake_generator, mock_geocoding_service, cities, metrics
    ):
        mock_geocoding_service.resolve.side_effect = CityNotFoundError("location not found: New York")
        generator = fake_generator()
        service = make_service(generator=generator)

        with pytest.raises(CityNotFoundError):
            await service.get_advice(cities)

        assert generator.prompts == []
        assert metrics.sample("advisor_requests_total", operation=OPERATION_GET_ADVICE, status="error") == 1.0

    @pytest.mark.asyncio
    async def test_get_advice_generation_failure(self, make_service, fake_generator, cities):
        generator = fake_generator()

        async def run(prompt):
            raise GenerationError("Advice generation failed: bad output")

        generator.run = run
        service = make_service(generator=generator)

        with patch('src.services.advisor_service.logger') as mock_logger:
            with pytest.raises(GenerationError):
                await service.get_advice(cities)

            mock_logger.error.assert_called_once()

    @pytest.mark.asyncio
    async def test_get_advice_timeout(self, make_service, fake_generator, cities, metrics):
        service = make_service(generator=fake_generator(delay=1.0), advice_timeout_seconds=0.05)

        with pytest.raises(AdviceTimeoutError, match="advice request exceeded"):
            await service.get_advice(cities)

        assert metrics.sample("advisor_requests_total", operation=OPERATION_GET_ADVICE, status="error") == 1.0


class TestStreamAdvice:
    """Test cases for streamed advice."""

    @pytest.mark.asyncio
    async def test_stream_advice_success(self, make_service, cities, metrics):
        service = make_service()

        fragments = [f async for f in await service.stream_advice(cities)]

        assert [f.chunk for f in fragments] == ["Wear ", "a light ", "jacket.", ""]
        assert [f.is_complete for f in fragments] == [False, False, False, True]
        assert metrics.sample("advisor_requests_total", operation=OPERATION_STREAM_ADVICE, status="success") == 1.0

    @pytest.mark.asyncio
    async def test_gather_failure_produces_no_fragments(
        self, make_service, fake_generator, mock_weather_service, cities, metrics
    ):
        """Test that a city failure is raised before any fragment exists."""
        mock_weather_service.get_current_weather.side_effect = UpstreamUnavailableError("weather request timed out")
        generator = fake_generator()
        service = make_service(generator=generator)

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await service.stream_advice(cities)

        assert exc_info.value.city == "New York"
        assert exc_info.value.step == STEP_WEATHER
        assert generator.prompts == []
        assert metrics.sample("advisor_requests_total", operation=OPERATION_STREAM_ADVICE, status="error") == 1.0

    @pytest.mark.asyncio
    async def test_generation_failure_mid_stream(self, make_service, fake_generator, cities, metrics):
        service = make_service(generator=fake_generator(fail_after=1))
        received = []

        with pytest.raises(GenerationError):
            async for fragment in await service.stream_advice(cities):
                received.append(fragment)

        assert [f.chunk for f in received] == ["Wear "]
        assert not any(f.is_complete for f in received)
        assert metrics.sample("advisor_requests_total", operation=OPERATION_STREAM_ADVICE, status="error") == 1.0

    @pytest.mark.asyncio
    async def test_stream_timeout(self, make_service, fake_generator, cities):
        service = make_service(
            generator=fake_generator(chunks=["Wear "], hold_open=True), stream_timeout_seconds=0.05
        )
        received = []

        with pytest.raises(AdviceTimeoutError, match="advice stream exceeded"):
            async for fragment in await service.stream_advice(cities):
                received.append(fragment)

        assert [f.chunk for f in received] == ["Wear "]

    @pytest.mark.asyncio
    async def test_consumer_close_is_not_an_error(self, make_service, fake_generator, cities, metrics):
        """Test that abandoning the stream stops generation without logging an error."""
        generator = fake_generator(chunks=["one ", "two ", "three "], hold_open=True)
        service = make_service(generator=generator)

        with patch('src.services.advisor_service.logger') as mock_logger:
            fragments = await service.stream_advice(cities)
            async with aclosing(fragments):
                await fragments.__anext__()
                await fragments.__anext__()

            mock_logger.error.assert_not_called()
            mock_logger.warning.assert_not_called()

        assert generator.stream_closed
        assert metrics.sample("advisor_requests_total", operation=OPERATION_STREAM_ADVICE, status="cancelled") == 1.0

    @pytest.mark.asyncio
    async def test_task_cancellation_stops_generation(self, make_service, fake_generator, cities, metrics):
        generator = fake_generator(chunks=["one "], hold_open=True)
        service = make_service(generator=generator)
        received = []

        async def consume():
            fragments = await service.stream_advice(cities)
            async with aclosing(fragments):
                async for fragment in fragments:
                    received.append(fragment)

        task = asyncio.create_task(consume())
        while not received:
            await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert generator.stream_closed
        assert metrics.sample("advisor_requests_total", operation=OPERATION_STREAM_ADVICE, status="cancelled") == 1.0

    @pytest.mark.asyncio
    async def test_cancellation_while_gathering_counts_as_cancelled(
        self, make_service, fake_generator, mock_geocoding_service, cities, metrics
    ):
        resolving = asyncio.Event()

        async def resolve(name):
            resolving.set()
            await asyncio.Event().wait()

        mock_geocoding_service.resolve.side_effect = resolve
        generator = fake_generator()
        service = make_service(generator=generator)

        with patch('src.services.advisor_service.logger') as mock_logger:
            task = asyncio.create_task(service.stream_advice(cities))
            await resolving.wait()
            task.cancel()

            with pytest.raises(asyncio.CancelledError):
                await task

            mock_logger.error.assert_not_called()
            mock_logger.warning.assert_not_called()

        assert generator.prompts == []
        assert metrics.sample("advisor_requests_total", operation=OPERATION_STREAM_ADVICE, status="cancelled") == 1.0
        assert metrics.sample("advisor_requests_total", operation=OPERATION_STREAM_ADVICE, status="error") == 0.0
        assert metrics.sample(
            "advisor_request_duration_seconds_count", operation=OPERATION_STREAM_ADVICE
        ) == 1.0

    @pytest.mark.asyncio
    async def test_close_after_terminal_counts_as_success(self, make_service, cities, metrics):
        service = make_service()

        fragments = await service.stream_advice(cities)
        async with aclosing(fragments):
            async for fragment in fragments:
                if fragment.is_complete:
                    break

        assert metrics.sample("advisor_requests_total", operation=OPERATION_STREAM_ADVICE, status="success") == 1.0
        assert metrics.sample("advisor_requests_total", operation=OPERATION_STREAM_ADVICE, status="cancelled") == 0.0
