"""
Prometheus metrics for the weather advisor.

A single ServiceMetrics handle is built at startup and passed into every
service, so tests can build their own against a throwaway registry.
"""
import asyncio
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

# Advice buckets reach the streaming ceiling
ADVICE_LATENCY_BUCKETS = [0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0]
UPSTREAM_LATENCY_BUCKETS = [0.05, 0.1, 0.2, 0.5, 1.0, 2.0, 5.0, 10.0]

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"
STATUS_CANCELLED = "cancelled"


class RequestOutcome:
    """Mutable status holder handed to callers of ServiceMetrics.track_* helpers."""

    def __init__(self):
        self.status = STATUS_SUCCESS

    def cancelled(self):
        self.status = STATUS_CANCELLED


class ServiceMetrics:
    """Process-scoped metrics handle."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.advisor_requests_total = Counter(
            "advisor_requests_total",
            "Total advisor requests",
            ["operation", "status"],
            registry=self.registry,
        )
        self.advisor_request_duration_seconds = Histogram(
            "advisor_request_duration_seconds",
            "Advisor request duration in seconds",
            ["operation"],
            buckets=ADVICE_LATENCY_BUCKETS,
            registry=self.registry,
        )
        self.weather_requests_total = Counter(
            "weather_requests_total",
            "Total weather requests",
            ["status"],
            registry=self.registry,
        )
        self.weather_request_duration_seconds = Histogram(
            "weather_request_duration_seconds",
            "Weather request duration in seconds",
            buckets=UPSTREAM_LATENCY_BUCKETS,
            registry=self.registry,
        )
        self.geocoding_lookups_total = Counter(
            "geocoding_lookups_total",
            "Total city coordinate lookups",
            ["source", "status"],
            registry=self.registry,
        )

    @contextmanager
    def track_advice(self, operation: str, started_at: Optional[float] = None) -> Iterator[RequestOutcome]:
        """
        Count and time one advisor operation. Exceptions mark it as an error,
        cancellation as cancelled.

        `started_at` is a `time.perf_counter()` reading for operations whose
        timing began before the tracked block.
        """
        outcome = RequestOutcome()
        start_time = started_at if started_at is not None else time.perf_counter()
        try:
            yield outcome
        except (asyncio.CancelledError, GeneratorExit):
            outcome.cancelled()
            raise
        except Exception:
            if outcome.status == STATUS_SUCCESS:
                outcome.status = STATUS_ERROR
            raise
        finally:
            self.advisor_request_duration_seconds.labels(operation=operation).observe(
                time.perf_counter() - start_time
            )
            self.advisor_requests_total.labels(operation=operation, status=outcome.status).inc()

    @contextmanager
    def track_weather(self) -> Iterator[RequestOutcome]:
        """Count and time one weather provider call."""
        outcome = RequestOutcome()
        start_time = time.perf_counter()
        try:
            yield outcome
        except asyncio.CancelledError:
            outcome.cancelled()
            raise
        except Exception:
            outcome.status = STATUS_ERROR
            raise
        finally:
            self.weather_request_duration_seconds.observe(time.perf_counter() - start_time)
            self.weather_requests_total.labels(status=outcome.status).inc()

    def record_advice(self, operation: str, status: str, duration: float):
        self.advisor_request_duration_seconds.labels(operation=operation).observe(duration)
        self.advisor_requests_total.labels(operation=operation, status=status).inc()

    def record_geocoding(self, source: str, status: str):
        self.geocoding_lookups_total.labels(source=source, status=status).inc()

    def sample(self, name: str, **labels) -> float:
        """Read a single sample value, 0.0 when it has not been recorded."""
        value = self.registry.get_sample_value(name, labels)
        return value if value is not None else 0.0

    def export(self) -> bytes:
        """Render all metrics in the Prometheus text exposition format."""
        return generate_latest(self.registry)
