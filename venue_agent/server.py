"""FastAPI server for the venue booking agent.

Run with:
    uvicorn venue_agent.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from venue_agent.api.routes import router
from venue_agent.config import CORS_ORIGINS, DATABASE_URL, SERVER_HOST, SERVER_PORT
from venue_agent.services.metrics import metrics
from venue_agent.services.store import AgentStore
from venue_agent.workflow import ActionWorkflow

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Open the store once and share it (through the workflow) with every request."""
    if getattr(application.state, "workflow", None) is None:
        logger.info("Opening agent store…")
        application.state.workflow = ActionWorkflow(AgentStore.from_url(DATABASE_URL))
    logger.info("Agent ready.")
    yield
    metrics.flush()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Venue Booking Agent",
    description=(
        "Conversational booking agent for event venues. Every booking, "
        "counter-offer and escalation waits for a human decision."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID (``X-Request-ID``) for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Venue Booking Agent",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting venue agent API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "venue_agent.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
