class OpenAIKeyError(ValueError):
    """Exception for a missing or blank OpenAI API key."""

    pass
