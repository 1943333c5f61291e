import sys
import time
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agent.advisor_agent import AdvisorAgent
from src.api import v1_router
from src.api.health import health_router
from src.api.v1.advisor.advisor_routes import error_payload
from src.config.config import config
from src.exceptions import (
    AdviceTimeoutError,
    CityNotFoundError,
    DecodeError,
    GenerationError,
    NoResponseError,
    UpstreamUnavailableError,
    WeatherAdvisorError,
)
from src.observability.metrics import ServiceMetrics
from src.services.advisor_service import AdvisorService
from src.services.advisory_composer import AdvisoryComposer
from src.services.geocoding_service import GeocodingService
from src.services.weather_service import WeatherService
from src.utils.logging_config import setup_logging

# Configure logging
setup_logging()
logger = structlog.get_logger(__name__)

ERROR_STATUS_CODES = {
    CityNotFoundError: status.HTTP_404_NOT_FOUND,
    UpstreamUnavailableError: status.HTTP_502_BAD_GATEWAY,
    DecodeError: status.HTTP_502_BAD_GATEWAY,
    GenerationError: status.HTTP_502_BAD_GATEWAY,
    NoResponseError: status.HTTP_502_BAD_GATEWAY,
    AdviceTimeoutError: status.HTTP_504_GATEWAY_TIMEOUT,
}


def status_code_for(error: WeatherAdvisorError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the metrics handle and every service once, shares them through
    app.state, and closes the OpenAI client on shutdown.
    """
    logger.info("Starting Weather Advisor application")

    metrics = ServiceMetrics()
    advisor_agent = AdvisorAgent()
    weather_service = WeatherService(metrics=metrics)
    geocoding_service = GeocodingService(metrics=metrics)

    app.state.metrics = metrics
    app.state.advisor_agent = advisor_agent
    app.state.weather_service = weather_service
    app.state.advisor_service = AdvisorService(
        geocoding_service=geocoding_service,
        weather_service=weather_service,
        composer=AdvisoryComposer(generator=advisor_agent),
        metrics=metrics,
    )

    logger.info("Weather Advisor application started successfully")

    try:
        yield
    finally:
        logger.info("Shutting down Weather Advisor")
        await advisor_agent.close()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title="Weather Advisor API",
        description="""
        ## Weather Advisor API

        Current weather for any coordinate and AI-generated advice for a set of cities.

        ### Features:
        - **Current Weather**: Real-time conditions from Open-Meteo
        - **Advice**: One-shot advice for one or more cities
        - **Streaming Advice**: Advice delivered as newline-delimited JSON fragments

        ### Authentication:
        If an API token is configured, include it as a Bearer token in the Authorization header.
        """,
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests with timing information."""
        start_time = time.time()

        logger.info(
            "HTTP request started",
            method=request.method,
            url=str(request.url),
            client_ip=request.client.host if request.client else "unknown",
        )

        try:
            response = await call_next(request)
            process_time = time.time() - start_time

            # Streaming responses are still running at this point
            logger.info(
                "HTTP request completed",
                method=request.method,
                url=str(request.url),
                status_code=response.status_code,
                process_time=process_time,
            )

            response.headers["X-Process-Time"] = str(process_time)
            return response

        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                "HTTP request failed",
                method=request.method,
                url=str(request.url),
                error=str(e),
                process_time=process_time,
            )
            raise

    @app.exception_handler(WeatherAdvisorError)
    async def advisor_exception_handler(request: Request, exc: WeatherAdvisorError):
        """Map advisor errors to structured JSON responses."""
        status_code = status_code_for(exc)
        logger.warning(
            "Advisor error",
            method=request.method,
            url=str(request.url),
            status_code=status_code,
            error_kind=exc.kind,
            city=exc.city,
            step=exc.step,
        )

        return JSONResponse(
            status_code=status_code,
            content={**error_payload(exc), "status_code": status_code, "timestamp": time.time()},
        )

    # HTTP exception handler
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with consistent formatting."""
        logger.warning(
            "HTTP exception",
            method=request.method,
            url=str(request.url),
            status_code=exc.status_code,
            detail=exc.detail,
        )

        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail, "status_code": exc.status_code, "timestamp": time.time()},
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions globally."""
        logger.error(
            "Unhandled exception",
            method=request.method,
            url=str(request.url),
            error=str(exc),
            exc_info=True,
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again later.",
                "timestamp": time.time(),
            },
        )

    # Include API routes
    app.include_router(health_router)
    app.include_router(v1_router)

    @app.get("/", tags=["Root"], include_in_schema=False)
    async def root():
        """Root endpoint providing basic system information."""
        return {
            "message": "Weather Advisor API",
            "version": "1.0.0",
            "status": "running",
            "timestamp": time.time(),
            "docs": "/docs",
        }

    return app


# Create the application instance
app = create_app()


def main():
    logger.info(
        f"Starting Weather Advisor server in {config.environment} environment",
        host=config.api_host,
        port=config.api_port,
    )

    try:
        uvicorn.run(
            app,
            host=config.api_host,
            port=config.api_port,
            log_level=config.log_level.lower(),
            access_log=True,
            server_header=False,
            date_header=False,
        )
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    except Exception as e:
        logger.error("Server failed to start", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
