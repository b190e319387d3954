"""
CORS headers for the draft endpoint.

Starlette's CORSMiddleware only answers when an Origin header is present
and won't fall back to "*" for tools or file:// pages that send none, so
the endpoint builds its own headers: echo the caller's Origin when given,
otherwise "*".
"""

from typing import Optional

ALLOWED_METHODS = "POST, OPTIONS"
ALLOWED_HEADERS = "Content-Type"
MAX_AGE_SECONDS = 86400


def cors_headers(origin: Optional[str]) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        "Access-Control-Max-Age": str(MAX_AGE_SECONDS),
        "Vary": "Origin",
    }
