"""
Note Dashboard FastAPI Backend

This is the main entry point for the API server that exposes the
dashboard engine to a web front end.

Architecture:
- FastAPI handles HTTP routing and request/response validation
- Pydantic schemas ensure type safety
- DashboardService holds the live sections and runs actions
- The websocket pushes every state change to subscribed clients

Run with:
    uvicorn backend.main:app --reload --port 8000

Or:
    python -m backend.main
"""

import logging
import sys
from pathlib import Path
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

# Add project root to path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from backend.routers import dashboard_router, perspectives_router
from backend.dependencies import get_config, get_dashboard_service
from backend.websocket import websocket_endpoint, ws_manager
from notedash.dashboard.service import DashboardService

logger = logging.getLogger("backend")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup: configure logging from the config file.
    """
    config = get_config()
    logging.basicConfig(
        level=getattr(logging, str(config.get("log_level", default="INFO")).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(f"Config loaded from: {config.config_dir}")
    logger.info(f"Notes directory: {config.get_notes_directory()}")

    yield

    logger.info("Shutting down...")


# Create FastAPI app
app = FastAPI(
    title="Note Dashboard API",
    description="""
    Live dashboard over a folder of markdown notes.

    ## Features

    - **Sections**: Today, yesterday, tomorrow, week, month, quarter, tags,
      overdue, priority, projects and the current time block
    - **Actions**: Complete, cancel, reschedule, move and edit items
    - **Perspectives**: Named, switchable settings snapshots
    - **Push**: `/ws` websocket with `dashboard` and `perspectives` topics
    """,
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",  # Alternative dev port
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(dashboard_router)
app.include_router(perspectives_router)


@app.websocket("/ws")
async def websocket_route(websocket: WebSocket):
    """
    WebSocket endpoint for real-time updates.

    Protocol:
    - Client sends: { "type": "subscribe", "topics": ["dashboard", "perspectives"] }
    - Server sends: { "type": "sections_updated", "data": {...}, "timestamp": "..." }

    Message types pushed:
    - sections_updated: full state blob
    - refreshing: codes currently being regenerated
    - error_banner: message to show to the user
    - perspectives_changed: perspective list after a change
    """
    await websocket_endpoint(websocket)


@app.get("/")
async def root():
    """API root - returns basic info and available endpoints."""
    return {
        "name": "Note Dashboard API",
        "version": "0.1.0",
        "docs": "/docs",
        "endpoints": {
            "state": "/dashboard/state",
            "refresh": "/dashboard/refresh",
            "actions": "/dashboard/actions",
            "perspectives": "/perspectives",
            "websocket": "/ws",
        }
    }


@app.get("/health")
async def health_check(service: DashboardService = Depends(get_dashboard_service)):
    """Health check endpoint for monitoring."""
    try:
        return {
            "status": "healthy",
            "sections": len(service.state.sections),
            "connections": ws_manager.get_connection_count(),
        }
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


# Allow running directly with: python -m backend.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "backend.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
