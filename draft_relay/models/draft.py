"""
Pydantic models for the draft endpoint.

DraftRequest is validated by hand in the route (not as a FastAPI body
parameter) because the endpoint answers with its own {"error": ...}
bodies instead of FastAPI's 422 detail payloads.
"""

from pydantic import BaseModel, Field, StrictStr


class DraftRequest(BaseModel):
    # StrictStr: a number or list is "missing", not coerced
    prompt: StrictStr = Field(..., min_length=1, description="What the email should say")


class DraftResponse(BaseModel):
    draft: str


class ErrorResponse(BaseModel):
    error: str  # "Missing prompt" | "Bad request" | "Rate limit exceeded" | "Server not configured"
