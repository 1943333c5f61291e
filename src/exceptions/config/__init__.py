from src.exceptions.config.openai_key_error import OpenAIKeyError

__all__ = ["OpenAIKeyError"]
