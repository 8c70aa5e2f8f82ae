"""API package exports."""

from src.api.auth import router as auth_router
from src.api.middleware import CorrelationIdMiddleware

__all__ = ["auth_router", "CorrelationIdMiddleware"]
