from typing import Optional


class WeatherAdvisorError(Exception):
    """
    Base exception for all weather advisor errors.

    Carries the city and pipeline step that failed, when known, so callers
    can tell exactly which lookup aborted an advice request.
    """

    def __init__(self, message: str, city: Optional[str] = None, step: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.city = city
        self.step = step

    @property
    def kind(self) -> str:
        return type(self).__name__
