from src.exceptions.base import WeatherAdvisorError


class CityNotFoundError(WeatherAdvisorError):
    """Exception for place names the geocoding provider cannot resolve."""

    pass
