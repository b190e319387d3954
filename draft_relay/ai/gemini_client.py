"""
GeminiClient — Async REST wrapper around the Gemini generateContent API.

One call per draft request:
    POST {base_url}/models/{model}:generateContent?key=<api key>
    {
      "systemInstruction": {"role": "system", "parts": [{"text": ...}]},
      "contents": [{"role": "user", "parts": [{"text": <prompt>}]}],
      "generationConfig": {"responseMimeType": "text/plain"}
    }

The draft text lives at candidates[0].content.parts[0].text. Anything
missing along that path (safety block, quota error body, empty candidate
list) degrades to FALLBACK_DRAFT instead of failing the request, so the
caller always gets something to show.

No retries: a transport error or a non-JSON body propagates to the route,
which turns it into a generic 400.

Tests swap the network out by overriding the get_gemini_client dependency
with a GeminiClient built on an httpx.MockTransport.
"""

import logging
from typing import Any, Optional

import httpx

from draft_relay.core.config import settings

logger = logging.getLogger(__name__)

FALLBACK_DRAFT = "Sorry, could not generate a draft right now."


def build_payload(prompt: str, system_text: str) -> dict[str, Any]:
    """Request body for generateContent: system instruction + a single user turn."""
    return {
        "systemInstruction": {"role": "system", "parts": [{"text": system_text}]},
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": {"responseMimeType": "text/plain"},
    }


def extract_text(data: Any) -> str:
    """
    Pull candidates[0].content.parts[0].text out of a response body.

    Returns FALLBACK_DRAFT when any step is missing or has the wrong shape,
    including a non-string text value (a number, an object). Such a body
    is treated like an empty reply rather than a failed request, so the
    caller still gets the fallback draft instead of a 400.
    """
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        text = None

    if not isinstance(text, str):
        logger.warning("Gemini response had no draft text — using fallback")
        return FALLBACK_DRAFT
    return text


class GeminiClient:
    """
    Thin client for the draft endpoint.

    Credentials and model are passed per call rather than captured at
    construction, so configuration changes (and tests that toggle the key)
    take effect without rebuilding the client.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def endpoint(self, model: str) -> str:
        return f"{self.base_url}/models/{model}:generateContent"

    async def generate_draft(
        self,
        prompt: str,
        *,
        api_key: str,
        model: str,
        system_text: str,
    ) -> str:
        """
        Generate a draft for *prompt*.

        Returns:
            The raw candidate text, or FALLBACK_DRAFT if the response
            didn't contain one.

        Raises:
            httpx.HTTPError: transport failure (connect, read, ...).
            ValueError: the upstream body was not JSON.
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                self.endpoint(model),
                params={"key": api_key},
                json=build_payload(prompt, system_text),
            )

        if response.is_error:
            logger.warning(
                "Gemini API error (model=%s): %s — %s",
                model,
                response.status_code,
                response.text[:200],
            )

        return extract_text(response.json())


def get_gemini_client() -> GeminiClient:
    """FastAPI dependency — a client built from the current settings."""
    return GeminiClient(
        base_url=settings.gemini_base_url,
        timeout=settings.gemini_timeout_seconds,
    )
