from src.exceptions.base import WeatherAdvisorError


class UpstreamUnavailableError(WeatherAdvisorError):
    """Exception for transport failures or non-success statuses from an upstream API."""

    pass
