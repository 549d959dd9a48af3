"""
YoursAI - Completion Client
============================
Gemini ``generateContent`` adapter plus the retry/backoff policy that
guards every generation call.

``retry_with_backoff``
    Generic wrapper around a request-issuing coroutine.  Rate-limited
    (429) and unavailable (503) responses are closed and retried after
    the delay scheduled for that attempt; any other status is returned
    immediately.  When attempts run out the last response is returned
    as-is, so callers must inspect its status.  Transport exceptions
    are never caught here.

``CompletionClient``
    Builds the request, applies the policy, and turns the response into
    a ``CompletionResult`` or a typed upstream error.

Usage:
    client = CompletionClient()
    result = await client.generate(prompt, api_key)
    if result.truncated:
        ...
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from yoursai.config.settings import settings
from yoursai.src.core.errors import EmptyCompletionError, UpstreamFatalError, UpstreamResponseError, UpstreamTransientError
from yoursai.src.utils.logger import get_logger

logger = get_logger(__name__)

RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 503})

# Gemini's finish reason for output cut off by maxOutputTokens
FINISH_REASON_MAX_TOKENS = "MAX_TOKENS"

SendFn = Callable[[], Awaitable[httpx.Response]]
SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class CompletionResult:
    """Text of the first candidate and the reason generation stopped."""

    text: str
    finish_reason: str | None = None

    @property
    def truncated(self) -> bool:
        return self.finish_reason == FINISH_REASON_MAX_TOKENS


# ══════════════════════════════════════════════════════════════════════
#  RETRY POLICY
# ══════════════════════════════════════════════════════════════════════


async def retry_with_backoff(send: SendFn, delays: Sequence[float], max_attempts: int, sleep: SleepFn = asyncio.sleep) -> httpx.Response:
    """
    Issue ``send()`` up to *max_attempts* times.

    Parameters
    ----------
    send
        Coroutine factory issuing one fresh request per call.
    delays
        Backoff schedule; ``delays[i]`` is slept after failed attempt
        ``i + 1``.  Needs at least ``max_attempts - 1`` entries.
    max_attempts
        Total attempts, including the first.
    sleep
        Awaitable sleep, injectable for tests.

    Returns
    -------
    httpx.Response
        The first non-retryable response, or the last retryable one.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be ≥ 1, got {max_attempts}")
    if len(delays) < max_attempts - 1:
        raise ValueError(f"{max_attempts} attempts need {max_attempts - 1} delays, got {len(delays)}")

    attempt = 0
    while True:
        response = await send()
        attempt += 1
        if response.status_code not in RETRYABLE_STATUSES or attempt >= max_attempts:
            return response

        await response.aclose()
        delay = delays[attempt - 1]
        logger.warning("API error %d, retrying in %.1fs (attempt %d/%d)", response.status_code, delay, attempt, max_attempts)
        await sleep(delay)


# ══════════════════════════════════════════════════════════════════════
#  GEMINI CLIENT
# ══════════════════════════════════════════════════════════════════════


class CompletionClient:
    """
    Prompt → text client for the Gemini REST API.

    Parameters
    ----------
    http_client
        Shared ``httpx.AsyncClient``.  Created (and owned) when omitted.
    model, base_url, temperature, max_output_tokens, timeout
        Generation settings; default to ``settings``.
    max_attempts, retry_delays
        Retry policy; default to ``COMPLETION_MAX_ATTEMPTS`` /
        ``COMPLETION_RETRY_DELAYS``.
    sleep
        Awaitable used between retries.
    """

    __slots__ = ("_http", "_owns_http", "_url", "_temperature", "_max_output_tokens", "_timeout", "_max_attempts", "_delays", "_sleep")

    def __init__(self, http_client: httpx.AsyncClient | None = None, model: str | None = None, base_url: str | None = None, temperature: float | None = None, max_output_tokens: int | None = None, timeout: float | None = None, max_attempts: int | None = None, retry_delays: Sequence[float] | None = None, sleep: SleepFn = asyncio.sleep) -> None:
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(trust_env=False)
        base = (base_url or settings.GEMINI_API_BASE_URL).rstrip("/")
        self._url = f"{base}/models/{model or settings.LLM_MODEL}:generateContent"
        self._temperature = temperature if temperature is not None else settings.LLM_TEMPERATURE
        self._max_output_tokens = max_output_tokens or settings.MAX_OUTPUT_TOKENS
        self._timeout = timeout if timeout is not None else settings.COMPLETION_TIMEOUT_SECONDS
        self._max_attempts = max_attempts or settings.COMPLETION_MAX_ATTEMPTS
        self._delays = list(retry_delays if retry_delays is not None else settings.COMPLETION_RETRY_DELAYS)
        self._sleep = sleep


    async def generate(self, prompt: str, api_key: str, max_attempts: int | None = None) -> CompletionResult:
        """
        Run one generation, retrying rate-limited / unavailable responses.

        Parameters
        ----------
        prompt
            Fully assembled prompt text.
        api_key
            Gemini API key for this request.
        max_attempts
            Overrides the configured attempt count (``1`` disables retry).

        Raises
        ------
        UpstreamFatalError
            Network / timeout failure on any attempt.
        UpstreamTransientError
            Final response was not 2xx.
        UpstreamResponseError
            2xx body could not be decoded or has an unexpected shape.
        EmptyCompletionError
            2xx body with no candidates.
        """
        payload = self._build_payload(prompt)
        headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}

        async def _send() -> httpx.Response:
            # Fresh request per attempt
            return await self._http.post(self._url, json=payload, headers=headers, timeout=self._timeout)

        attempts = max_attempts or self._max_attempts
        try:
            response = await retry_with_backoff(_send, self._delays, attempts, sleep=self._sleep)
        except httpx.RequestError as exc:
            raise UpstreamFatalError(f"Request to AI service failed: {type(exc).__name__}") from exc

        logger.info("Got response from AI API with status code: %d", response.status_code)
        if not response.is_success:
            raise UpstreamTransientError(f"AI API returned status {response.status_code}", status_code=response.status_code)

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise UpstreamResponseError("Failed to decode AI response") from exc

        return self._parse_response(data)


    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()


    def _build_payload(self, prompt: str) -> dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": self._max_output_tokens,
                "temperature": self._temperature,
            },
        }


    @staticmethod
    def _parse_response(data: Any) -> CompletionResult:
        """Extract the first candidate's text parts and finish reason."""
        if not isinstance(data, dict):
            raise UpstreamResponseError("Invalid AI response format")

        candidates = data.get("candidates")
        if not candidates:
            raise EmptyCompletionError("No candidates in response")
        if not isinstance(candidates, list) or not isinstance(candidates[0], dict):
            raise UpstreamResponseError("Invalid AI response format")

        candidate = candidates[0]
        content = candidate.get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list) or not parts:
            raise UpstreamResponseError("Invalid AI response format")

        texts = [part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)]
        if not texts:
            raise UpstreamResponseError("Invalid AI response format")

        finish_reason = candidate.get("finishReason")
        return CompletionResult(text="".join(texts), finish_reason=finish_reason if isinstance(finish_reason, str) else None)
