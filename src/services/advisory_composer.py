import asyncio
from contextlib import aclosing
from typing import AsyncIterator, Optional, Protocol, Sequence

import structlog

from src.config.config import config
from src.exceptions import GenerationError, WeatherAdvisorError
from src.models.advisor.advice import AdviceFragment
from src.models.weather.weather import WeatherSummary

logger = structlog.get_logger(__name__)

PROMPT_PREAMBLE = "Weather advisor. Based on this data provide practical advice:"
PROMPT_INSTRUCTIONS = (
    "Include: summary, clothing advice, activity suggestions, warnings. Keep it concise."
)

# Marks normal exhaustion of the generation stream
_END_OF_STREAM = object()


class TextGenerator(Protocol):
    async def run(self, prompt: str) -> str: ...

    def stream(self, prompt: str) -> AsyncIterator[str]: ...


def build_prompt(summaries: Sequence[WeatherSummary]) -> str:
    """Assemble the advice prompt, one line per city in request order."""
    weather_lines = "\n".join(summary.to_prompt_line() for summary in summaries)
    return f"{PROMPT_PREAMBLE}\n\n{weather_lines}\n\n{PROMPT_INSTRUCTIONS}"


class AdvisoryComposer:
    """
    Turns weather summaries into advice text through the generation backend.

    Streaming runs the backend in a producer task that feeds a bounded queue;
    the consumer side yields AdviceFragments and cancels the producer if it is
    closed before the stream ends.
    """

    def __init__(self, generator: TextGenerator, buffer_size: Optional[int] = None):
        self.generator = generator
        self.buffer_size = buffer_size or config.stream_buffer_size

    async def compose_once(self, summaries: Sequence[WeatherSummary]) -> str:
        prompt = build_prompt(summaries)
        logger.debug("Composing advice", cities=len(summaries), prompt_length=len(prompt))
        return await self.generator.run(prompt)

    async def compose_stream(self, summaries: Sequence[WeatherSummary]) -> AsyncIterator[AdviceFragment]:
        """
        Stream advice for the summaries.

        Yields non-final fragments in generation order, then exactly one
        terminal fragment once the backend finishes normally. A backend failure
        is raised instead and no terminal fragment is produced.
        """
        prompt = build_prompt(summaries)
        logger.debug("Composing streamed advice", cities=len(summaries), prompt_length=len(prompt))

        queue: asyncio.Queue = asyncio.Queue(maxsize=self.buffer_size)
        producer = asyncio.create_task(self._produce(prompt, queue))

        try:
            while True:
                item = await queue.get()
                if item is _END_OF_STREAM:
                    break
                if isinstance(item, WeatherAdvisorError):
                    raise item
                if isinstance(item, Exception):
                    raise GenerationError(f"streaming failed: {str(item)}") from item
                yield AdviceFragment(chunk=item)

            yield AdviceFragment.terminal()

        finally:
            if not producer.done():
                producer.cancel()
            try:
                await producer
            except asyncio.CancelledError:
                if not producer.cancelled():
                    raise

    async def _produce(self, prompt: str, queue: asyncio.Queue):
        try:
            async with aclosing(self.generator.stream(prompt)) as segments:
                async for segment in segments:
                    await queue.put(segment)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await queue.put(e)
            return

        await queue.put(_END_OF_STREAM)
