from src.exceptions.advisor import AdviceTimeoutError
from src.exceptions.base import WeatherAdvisorError
from src.exceptions.config import OpenAIKeyError
from src.exceptions.generation import GenerationError, NoResponseError
from src.exceptions.geocoding import CityNotFoundError
from src.exceptions.upstream import DecodeError, UpstreamUnavailableError

__all__ = [
    "AdviceTimeoutError",
    "CityNotFoundError",
    "DecodeError",
    "GenerationError",
    "NoResponseError",
    "OpenAIKeyError",
    "UpstreamUnavailableError",
    "WeatherAdvisorError",
]
