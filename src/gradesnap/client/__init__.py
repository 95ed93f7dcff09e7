"""Remote grading API clients."""

from .base import ApiResponse, AsyncClient, BaseClient, GradingClient
from .canvas import CanvasClient

__all__ = [
    "ApiResponse",
    "AsyncClient",
    "BaseClient",
    "CanvasClient",
    "GradingClient",
]
