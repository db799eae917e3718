"""Agency Tracker API — FastAPI entry point.

Registers middleware, exception handlers, routers, and lifecycle hooks.
Each vertical adds its own router under /api/{vertical}/.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import CurrentUserMiddleware
from core.database import close_db
from core.exceptions import setup_exception_handlers
from core.logging import get_logger, setup_logging

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:3001"
).split(",")
DEBUG = os.getenv("DEBUG", "true").lower() == "true"
VERSION = "0.1.0"

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown hooks."""
    setup_logging(debug=DEBUG)
    # Startup: import renderer to auto-register with template engine
    import verticals.agency.renderer  # noqa: F401

    logger.info("api_started", version=VERSION)
    yield
    await close_db()
    logger.info("api_stopped")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Agency Tracker",
    description="Client project and task tracker with risk rollups and WhatsApp follow-ups",
    version=VERSION,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Acting-user middleware
app.add_middleware(CurrentUserMiddleware)

setup_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers: verticals register here
# ---------------------------------------------------------------------------

from verticals.agency.router import router as agency_router  # noqa: E402

app.include_router(agency_router, prefix="/api/agency", tags=["Agency"])


# ---------------------------------------------------------------------------
# Health & root
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}


@app.get("/")
async def root():
    return {
        "name": "Agency Tracker",
        "version": VERSION,
        "docs": "/docs",
        "verticals": ["agency"],
        "description": "Client project and task tracker",
    }
