from src.exceptions.base import WeatherAdvisorError


class AdviceTimeoutError(WeatherAdvisorError):
    """Exception raised when an advice request exceeds its wall-clock ceiling."""

    pass
