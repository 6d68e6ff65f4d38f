"""
Completion client for retrospective questions.

Rationale:
- Credentials stay on the server; the browser only talks to this service.
- Two backends behind one coroutine, chosen by COMPLETION_BACKEND:
  "gemini" uses the google-generativeai SDK, "http" posts the generateContent
  JSON body to COMPLETION_URL (a proxy or the REST endpoint itself).
- One request per call. No retries, no streaming.
- Every failure surfaces as CompletionFailed; a missing text part yields "".
"""

import asyncio
import logging
import os
from typing import Any, Optional

import google.generativeai as genai
import httpx

from .errors import CompletionFailed, MalformedResponse

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-1.5-flash"


def call_llm(prompt: str, max_tokens: int = 2048) -> str:
    """
    Call Gemini with a single user prompt and return the generated text.
    """
    # Load API key lazily (after main.py loads .env)
    api_key = os.getenv("GEMINI_API_KEY") or os.getenv("LLM_API_KEY")
    model_name = os.getenv("GEMINI_MODEL", DEFAULT_MODEL)

    if not api_key:
        raise CompletionFailed("GEMINI_API_KEY or LLM_API_KEY must be set in environment")

    try:
        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(model_name=model_name)

        config = genai.GenerationConfig(
            max_output_tokens=max_tokens,
            temperature=0.2,
        )

        response = model.generate_content(
            [{"role": "user", "parts": [{"text": prompt}]}],
            generation_config=config,
        )

        # A truncated reply is never returned, even when partial text is available
        if response.candidates and response.candidates[0].finish_reason == 2:  # MAX_TOKENS
            raise CompletionFailed("Gemini response truncated (MAX_TOKENS)")

        # Check if response has text
        try:
            return response.text
        except ValueError:
            # response.text is unavailable on safety blocks or empty candidates
            if not response.candidates:
                logger.warning("Gemini returned no candidates")
                return ""
            candidate = response.candidates[0]
            raise CompletionFailed(f"Gemini blocked response. Finish reason: {candidate.finish_reason}")

    except CompletionFailed:
        raise
    except Exception as e:
        raise CompletionFailed(f"Gemini API error: {str(e)}") from e


def extract_candidate_text(payload: Any) -> str:
    """
    Pull candidates[0].content.parts[0].text out of a generateContent response.
    Raises MalformedResponse if the path is missing.
    """
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        raise MalformedResponse("Completion response has no candidate text")
    if not isinstance(text, str):
        raise MalformedResponse(f"Candidate text is {type(text).__name__}, expected a string")
    return text


async def call_completion_endpoint(prompt: str, client: Optional[httpx.AsyncClient] = None) -> str:
    """
    POST {contents: [{role: "user", parts: [{text: prompt}]}]} to COMPLETION_URL.
    """
    url = os.getenv("COMPLETION_URL")
    if not url:
        raise CompletionFailed("COMPLETION_URL must be set when COMPLETION_BACKEND=http")

    headers = {"Content-Type": "application/json"}
    api_key = os.getenv("COMPLETION_API_KEY")
    if api_key:
        headers["x-goog-api-key"] = api_key

    body = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

    http = client or httpx.AsyncClient()
    try:
        response = await http.post(url, json=body, headers=headers)
        payload = response.json()
    except httpx.HTTPError as e:
        raise CompletionFailed(f"Completion request failed: {type(e).__name__}: {e}") from e
    except ValueError as e:
        raise CompletionFailed(f"Completion endpoint returned non-JSON (status {response.status_code})") from e
    finally:
        if client is None:
            await http.aclose()

    if isinstance(payload, dict) and payload.get("error"):
        error = payload["error"]
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise CompletionFailed(message or "Unknown completion error")
    if response.is_error:
        raise CompletionFailed(f"Completion request failed: {response.status_code} {response.reason_phrase}")

    try:
        return extract_candidate_text(payload)
    except MalformedResponse as e:
        logger.error(f"{e}: {str(payload)[:500]}")
        return ""


async def complete(prompt: str, client: Optional[httpx.AsyncClient] = None) -> str:
    """Send one prompt to the configured backend and return the raw text."""
    backend = os.getenv("COMPLETION_BACKEND", "gemini").lower()
    logger.info(f"Sending prompt ({len(prompt)} chars) via {backend} backend")

    if backend == "http":
        text = await call_completion_endpoint(prompt, client=client)
    elif backend == "gemini":
        text = await asyncio.to_thread(call_llm, prompt)
    else:
        raise CompletionFailed(f"Unknown COMPLETION_BACKEND: {backend}")

    logger.debug(f"LLM raw response: {text}")
    return text
