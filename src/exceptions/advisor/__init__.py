from src.exceptions.advisor.advice_timeout_error import AdviceTimeoutError

__all__ = ["AdviceTimeoutError"]
