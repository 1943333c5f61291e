from src.api.v1.advisor.advisor_routes import router as advisor_router

__all__ = ["advisor_router"]
