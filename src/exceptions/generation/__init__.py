from src.exceptions.generation.generation_error import GenerationError
from src.exceptions.generation.no_response_error import NoResponseError

__all__ = ["GenerationError", "NoResponseError"]
