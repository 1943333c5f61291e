from src.exceptions.base import WeatherAdvisorError


class NoResponseError(WeatherAdvisorError):
    """Exception raised when the generation backend returns no usable output."""

    pass
