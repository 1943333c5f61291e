from src.exceptions.geocoding.city_not_found_error import CityNotFoundError

__all__ = ["CityNotFoundError"]
