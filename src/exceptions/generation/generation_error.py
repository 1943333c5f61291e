from src.exceptions.base import WeatherAdvisorError


class GenerationError(WeatherAdvisorError):
    """Exception for generation backend failures other than normal completion."""

    pass
