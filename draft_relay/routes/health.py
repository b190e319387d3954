"""
Health check endpoint.

Used by:
  - Container HEALTHCHECK instruction
  - Load balancers / uptime monitors

Reports which counter store is active (so a silent fallback from MongoDB
to in-memory counters is visible) and whether the Gemini key is set. The
key itself is never echoed.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from draft_relay.core.config import APP_VERSION, settings
from draft_relay.core.counter_store import CounterStore, get_counter_store

router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # Always "ok" if the API process is alive
    version: str
    environment: str
    counter_store: str  # "memory" | "mongo"
    upstream_configured: bool


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check(store: CounterStore = Depends(get_counter_store)) -> HealthResponse:
    """Liveness plus a summary of the runtime configuration."""
    return HealthResponse(
        status="ok",
        version=APP_VERSION,
        environment=settings.environment,
        counter_store=getattr(store, "kind", type(store).__name__),
        upstream_configured=bool(settings.gemini_api_key),
    )
