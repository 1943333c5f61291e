from typing import AsyncIterator, Optional

import openai
import structlog
from agents import Agent, OpenAIResponsesModel, Runner, set_tracing_disabled
from agents.exceptions import AgentsException
from openai import AsyncOpenAI
from openai.types.responses import ResponseTextDeltaEvent

from src.config.config import config
from src.exceptions.generation import GenerationError, NoResponseError
from src.exceptions.upstream import UpstreamUnavailableError

logger = structlog.get_logger(__name__)


class AdvisorAgent:
    """
    Wraps the OpenAI Agents SDK for advice generation.

    Holds the one AsyncOpenAI client shared by every request; call close()
    once at shutdown.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """Initialize the advisor agent."""
        self._openai_client = client or AsyncOpenAI(api_key=api_key or config.openai_api_key)
        self.model_name = model or config.openai_model

        # Trace export would need its own credential
        set_tracing_disabled(True)

        self.agent = Agent(
            name="Weather Advisor",
            instructions="""
            You are a practical weather advisor.
            - Base every statement on the weather data you are given.
            - Always specify the units (e.g., Celsius for temperature).
            - Keep answers short and easy to scan.
            """,
            model=OpenAIResponsesModel(model=self.model_name, openai_client=self._openai_client),
        )

        logger.info("Advisor Agent has been initialized", model=self.model_name)

    async def run(self, prompt: str) -> str:
        """Generate a complete response for the prompt.

        Args:
            prompt: Fully assembled advice prompt.

        Returns:
            The response text.

        Raises:
            UpstreamUnavailableError: If the OpenAI API cannot be reached or rejects the call.
            GenerationError: For any other generation failure.
            NoResponseError: If the model produced no text.
        """
        try:
            result = await Runner.run(starting_agent=self.agent, input=prompt)

        except (openai.APIConnectionError, openai.APIStatusError) as e:
            logger.warning("OpenAI API unavailable", error=str(e))
            raise UpstreamUnavailableError(f"OpenAI API failed: {str(e)}") from e

        except (openai.APIError, AgentsException) as e:
            logger.error("Advice generation failed", error=str(e))
            raise GenerationError(f"Advice generation failed: {str(e)}") from e

        text = result.final_output
        if not text or not str(text).strip():
            raise NoResponseError("no response generated")

        return str(text)

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        """Stream response text deltas for the prompt in generation order.

        The iterator ends when the model finishes. Closing it early cancels the
        underlying run.

        Raises:
            UpstreamUnavailableError: If the OpenAI API cannot be reached or rejects the call.
            GenerationError: If generation fails mid-stream.
        """
        result = Runner.run_streamed(starting_agent=self.agent, input=prompt)

        try:
            async for event in result.stream_events():
                if event.type != "raw_response_event":
                    continue
                if isinstance(event.data, ResponseTextDeltaEvent) and event.data.delta:
                    yield event.data.delta

        except (openai.APIConnectionError, openai.APIStatusError) as e:
            logger.warning("OpenAI API unavailable during streaming", error=str(e))
            raise UpstreamUnavailableError(f"OpenAI API failed: {str(e)}") from e

        except (openai.APIError, AgentsException) as e:
            logger.error("Streaming generation failed", error=str(e))
            raise GenerationError(f"streaming failed: {str(e)}") from e

        finally:
            if not result.is_complete:
                result.cancel()

    async def close(self):
        """Release the shared OpenAI client."""
        await self._openai_client.close()
        logger.info("Advisor Agent closed")
