from src.models.geocoding.geocoding import GeocodingResponse, GeocodingResult

__all__ = ["GeocodingResponse", "GeocodingResult"]
