"""
API routers for the dashboard backend.

Each router handles a specific area:
- dashboard: State, refreshes, editor hooks and actions
- perspectives: Perspective listing
"""

from .dashboard import router as dashboard_router
from .perspectives import router as perspectives_router

__all__ = [
    'dashboard_router',
    'perspectives_router',
]
