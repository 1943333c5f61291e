from src.models.advisor.advice import AdviceFragment, AdviceRequest, AdviceResponse, CityRequest

__all__ = ["AdviceFragment", "AdviceRequest", "AdviceResponse", "CityRequest"]
