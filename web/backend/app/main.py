"""FastAPI application for the Sentinel moderation API.

Provides REST API endpoints wrapping the sentinel package for:
- Early warnings raised from high-risk trends
- Active trends and on-demand trend scans
- Escalation rules, automated responses and human-review lanes
- A dashboard overview across all of the above
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sentinel import __version__
from sentinel.config import configure_logging
from web.backend.app.routers import alerts, dashboard, responses, trends
from web.backend.app.state import get_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the trend timer and the response lane workers alongside the API."""
    services = get_services()
    configure_logging(services.settings.log_level)
    scheduler = services.scheduler()
    scheduler.start()
    services.orchestrator.start()
    try:
        yield
    finally:
        scheduler.shutdown()
        services.orchestrator.stop()
        logger.info("Sentinel background workers stopped")


app = FastAPI(
    title="Sentinel API",
    description=(
        "REST API for harmful-trend detection and automated moderation response. "
        "Provides endpoints for early warnings, trends, escalation rules, "
        "response queues and human-review lanes."
    ),
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# CORS middleware (allow all origins for development)
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------
app.include_router(alerts.router)
app.include_router(trends.router)
app.include_router(responses.router)
app.include_router(dashboard.router)


# ---------------------------------------------------------------------------
# Root and health-check endpoints
# ---------------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root():
    """Return basic API information."""
    return {
        "name": "Sentinel API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["meta"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
