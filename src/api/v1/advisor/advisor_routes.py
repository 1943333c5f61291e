import json
from contextlib import aclosing
from typing import AsyncIterator

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from src.api.auth import verify_token
from src.api.dependencies import get_advisor_service
from src.exceptions import WeatherAdvisorError
from src.models.advisor.advice import AdviceFragment, AdviceRequest, AdviceResponse
from src.services.advisor_service import AdvisorService

logger = structlog.get_logger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"

# Create router
router = APIRouter(prefix="/advisor", tags=["Advisor"])


def error_payload(error: WeatherAdvisorError) -> dict:
    """Structured body describing a failed advice request."""
    return {
        "error": error.kind,
        "message": error.message,
        "city": error.city,
        "step": error.step,
    }


async def encode_fragments(fragments: AsyncIterator[AdviceFragment]) -> AsyncIterator[str]:
    """
    Encode advice fragments as newline-delimited JSON.

    A failure after the body has started cannot change the status code, so it
    is written as a final error line instead of a terminal fragment.
    """
    async with aclosing(fragments):
        try:
            async for fragment in fragments:
                yield fragment.model_dump_json() + "\n"
        except WeatherAdvisorError as e:
            yield json.dumps(error_payload(e)) + "\n"


@router.post("/advice", summary="Get Weather Advice", response_model=AdviceResponse)
async def get_advice(
    request: AdviceRequest,
    advisor_service: AdvisorService = Depends(get_advisor_service),
    authenticated: bool = Depends(verify_token),
):
    """Gather weather for every requested city and return the complete advice.

    Cities are processed in request order; the first failing city aborts the
    request with an error naming that city and the failing step.

    Args:
        request: The ordered list of cities.

    Returns:
        The generated advice text.
    """
    logger.info(
        "API request: Get advice",
        cities=[city.location for city in request.cities],
        authenticated=authenticated
    )
    advice = await advisor_service.get_advice(request.cities)
    return AdviceResponse(advice=advice)


@router.post("/advice/stream", summary="Stream Weather Advice")
async def stream_advice(
    request: AdviceRequest,
    advisor_service: AdvisorService = Depends(get_advisor_service),
    authenticated: bool = Depends(verify_token),
):
    """Stream advice as newline-delimited JSON fragments.

    Each line is `{"chunk": str, "is_complete": bool}`. A successful stream
    ends with exactly one `{"chunk": "", "is_complete": true}` line. Weather
    gathering completes before the response starts, so city failures come
    back as ordinary HTTP errors with no body lines.

    Args:
        request: The ordered list of cities.

    Returns:
        A streaming NDJSON response.
    """
    logger.info(
        "API request: Stream advice",
        cities=[city.location for city in request.cities],
        authenticated=authenticated
    )
    fragments = await advisor_service.stream_advice(request.cities)
    return StreamingResponse(encode_fragments(fragments), media_type=NDJSON_MEDIA_TYPE)
