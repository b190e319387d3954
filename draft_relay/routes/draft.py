"""
draft.py — The email-draft endpoint.

Route:
  POST    /  — {"prompt": "..."} → {"draft": "..."}
  OPTIONS /  — CORS preflight (204)
  other   /  — 405 "Method not allowed" (via method_not_allowed_handler)

Flow for POST: parse body → per-IP quota check → schedule counter
increment (background) → one Gemini call → strip code fences → respond.

Every response carries the CORS headers from core.cors, except the
generic "Bad request" fallback for unexpected failures, which only sets
Content-Type. Browsers will therefore see that one as a CORS error.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from draft_relay.ai.gemini_client import GeminiClient, get_gemini_client
from draft_relay.ai.sanitizer import strip_code_fences
from draft_relay.core.config import settings
from draft_relay.core.cors import cors_headers
from draft_relay.core.counter_store import CounterStore, get_counter_store
from draft_relay.core.rate_limit import RateLimiter, caller_identity
from draft_relay.models.draft import DraftRequest, DraftResponse, ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["draft"])


def _error(message: str, status_code: int, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        ErrorResponse(error=message).model_dump(),
        status_code=status_code,
        headers=headers,
    )


def _bad_request() -> JSONResponse:
    # Deliberately no CORS headers on this path
    return _error("Bad request", 400)


@router.options("/", status_code=204, include_in_schema=False)
async def preflight(request: Request) -> Response:
    """CORS preflight — headers only, empty body."""
    return Response(status_code=204, headers=cors_headers(request.headers.get("origin")))


async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """
    App-wide HTTPException handler: any method other than POST/OPTIONS on /
    gets a plain-text 405 with CORS headers. Everything else keeps
    FastAPI's default JSON error.
    """
    if exc.status_code == 405 and request.url.path == "/":
        return PlainTextResponse(
            "Method not allowed",
            status_code=405,
            headers=cors_headers(request.headers.get("origin")),
        )
    return await http_exception_handler(request, exc)


@router.post(
    "/",
    response_model=DraftResponse,
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def create_draft(
    request: Request,
    background_tasks: BackgroundTasks,
    store: CounterStore = Depends(get_counter_store),
    gemini: GeminiClient = Depends(get_gemini_client),
) -> Response:
    """
    Turn a short prompt into an email draft.

    Rate limited per caller IP (MINUTE_LIMIT per minute, DAILY_LIMIT per
    day). Counter writes are queued as background tasks and land after the
    response is sent.
    """
    headers = cors_headers(request.headers.get("origin"))
    try:
        payload = await request.json()
        if payload is None:
            return _bad_request()
        try:
            draft_request = DraftRequest.model_validate(payload)
        except ValidationError:
            return _error("Missing prompt", 400, headers)

        limiter = RateLimiter(store, settings.minute_limit, settings.daily_limit)
        quota = await limiter.check(caller_identity(request))
        if quota.exceeded:
            return _error("Rate limit exceeded", 429, headers)
        limiter.schedule_increment(quota, background_tasks)

        if not settings.gemini_api_key:
            logger.error("GEMINI_API_KEY not set — cannot generate drafts")
            return _error("Server not configured", 500, headers)

        text = await gemini.generate_draft(
            draft_request.prompt,
            api_key=settings.gemini_api_key,
            model=settings.model,
            system_text=settings.system_prompt,
        )
        return JSONResponse(
            DraftResponse(draft=strip_code_fences(text)).model_dump(),
            headers=headers,
        )
    except Exception as exc:
        logger.warning("Draft request failed: %s", exc, exc_info=settings.debug)
        return _bad_request()
