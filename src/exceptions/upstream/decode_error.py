from src.exceptions.base import WeatherAdvisorError


class DecodeError(WeatherAdvisorError):
    """Exception for upstream response bodies that do not match the expected shape."""

    pass
