"""
Dependency injection for FastAPI endpoints.

Provides singleton instances of Config and DashboardService
to be used across all API routes.

Pattern: **Dependency Injection** - FastAPI's Depends() mechanism
allows us to inject shared resources into route handlers without
global state, making the code testable and maintainable.
"""

from functools import lru_cache
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from notedash.core.config import Config
from notedash.dashboard.service import DashboardService
from backend.websocket import publish_state


@lru_cache()
def get_config() -> Config:
    """
    Get cached Config instance.

    lru_cache ensures we only create one Config instance
    for the lifetime of the application (singleton pattern).
    """
    return Config()


@lru_cache()
def get_dashboard_service() -> DashboardService:
    """
    Get the DashboardService.

    One service per process: it owns the live section list, so every
    request must see the same instance. Pushes go out over the websocket.
    """
    return DashboardService(get_config(), notifier=publish_state)
