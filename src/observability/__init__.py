from src.observability.metrics import ServiceMetrics

__all__ = ["ServiceMetrics"]
