"""Route modules for the session dashboard API."""

from .dashboard import router as dashboard_router
from .logs import router as logs_router

__all__ = [
    'dashboard_router',
    'logs_router',
]
