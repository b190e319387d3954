"""
Draft Relay — Application entry point.

Bootstraps FastAPI, registers the draft and health routes, and manages
the counter store lifecycle.

Run locally:
    uvicorn draft_relay.main:app --reload

Extension points:
  - Add new route groups with app.include_router() below
  - Change startup behaviour in the lifespan context manager
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from draft_relay.core.config import APP_VERSION, settings
from draft_relay.core.counter_store import close_counter_store, connect_counter_store
from draft_relay.routes.draft import method_not_allowed_handler
from draft_relay.routes.draft import router as draft_router
from draft_relay.routes.health import router as health_router

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
# httpx logs full request URLs at INFO, and the Gemini key travels in the query string
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage startup and shutdown lifecycle.

    Code before `yield` runs on startup; code after runs on shutdown.
    """
    logger.info("Starting Draft Relay (env: %s, model: %s)", settings.environment, settings.model)
    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY not set — draft requests will return 500")
    await connect_counter_store()
    yield
    logger.info("Shutting down Draft Relay")
    await close_counter_store()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Draft Relay",
    description="Rate-limited relay that turns a short prompt into an email draft via Gemini.",
    version=APP_VERSION,
    lifespan=lifespan,
    # Disable docs in production to reduce attack surface
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Routes ────────────────────────────────────────────────────────────────────
# CORS is handled inside the draft route itself (see core/cors.py), not by
# CORSMiddleware, because the endpoint must answer "*" when no Origin is sent.
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(draft_router)

# Starlette raises 405 itself for unrouted methods; answer those in plain text with CORS
app.add_exception_handler(StarletteHTTPException, method_not_allowed_handler)
