"""Ollama text-completion wrapper with retry logic and a shared throttle.

Wraps the ``ollama`` Python SDK's :class:`AsyncClient` to provide:

- **Completion**: prompt → raw model text, requested in JSON mode
- **Health check**: verify Ollama + the model are available at startup
- **Retry with backoff**: transient 5xx / 429 errors and dropped
  connections are retried up to ``max_retries`` times with exponential
  backoff before giving up
- **Throttle**: every outbound call passes through one semaphore
  (bounded in-flight calls) and one ``aiolimiter`` rate limiter
  (requests per minute).  Both live on the client instance, so every
  request that shares a client shares the quota.

All errors are converted to :class:`~roommate_match.errors.ActionableError`
with operator-friendly guidance.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

import httpx
import ollama as ollama_sdk
from aiolimiter import AsyncLimiter

from roommate_match.errors import ActionableError, ErrorType

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

# Status codes that warrant a retry (server overloaded / temporary failure)
_RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

_SYSTEM_MESSAGE = (
    "You are a roommate compatibility analyst. "
    "Respond only with the JSON object requested."
)


class CompletionClient:
    """Wraps Ollama chat calls with backoff, throttling, and error handling.

    Usage::

        client = CompletionClient(
            base_url="http://localhost:11434",
            llm_model="mistral:7b",
        )
        await client.health_check()              # fail fast if Ollama is down
        raw = await client.complete("Compare these notes...")
    """

    def __init__(
        self,
        base_url: str,
        llm_model: str,
        *,
        temperature: float = 0.1,
        max_concurrent: int = 4,
        requests_per_minute: int = 60,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        self.base_url = base_url
        self.llm_model = llm_model
        self.temperature = temperature
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._client = ollama_sdk.AsyncClient(host=base_url)
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._limiter = AsyncLimiter(max_rate=requests_per_minute, time_period=60)

    # -- Public API ----------------------------------------------------------

    async def complete(self, prompt: str) -> str:
        """Send *prompt* to the model and return the raw response text.

        Raises VALIDATION for an empty prompt and COMPLETION once
        retries are exhausted or a non-retryable error occurs.
        """
        cleaned = prompt.strip()
        if not cleaned:
            raise ActionableError(
                error="Cannot send an empty prompt",
                error_type=ErrorType.VALIDATION,
                service="Ollama",
                suggestion="Provide non-empty prompt text",
            )

        async def _call() -> str:
            response = await self._client.chat(
                model=self.llm_model,
                messages=[
                    {"role": "system", "content": _SYSTEM_MESSAGE},
                    {"role": "user", "content": cleaned},
                ],
                format="json",
                options={"temperature": self.temperature},
            )
            return response.message.content or ""

        return await self._with_retry(_call, operation="complete")

    async def health_check(self) -> None:
        """Verify Ollama is reachable and the configured model is available.

        Raises :class:`~roommate_match.errors.ActionableError`:
          - CONNECTION if Ollama is unreachable
          - COMPLETION if the model is not pulled
        """
        try:
            response = await self._client.list()
        except (ConnectionError, OSError, httpx.TransportError) as exc:
            raise ActionableError.connection(
                service="Ollama",
                url=self.base_url,
                raw_error=str(exc),
            ) from None

        available = {m.model for m in response.models if m.model}
        # Ollama model names may include :latest suffix, so normalise
        available_base = {name.split(":")[0] for name in available}
        available_all = available | available_base

        model_base = self.llm_model.split(":")[0]
        if self.llm_model not in available_all and model_base not in available_all:
            raise ActionableError.completion(
                model=self.llm_model,
                raw_error=f"Model '{self.llm_model}' is not pulled in Ollama",
                suggestion=f"Run: ollama pull {self.llm_model}",
            )

        logger.info("Ollama health check passed: %s available", self.llm_model)

    # -- Retry logic ---------------------------------------------------------

    async def _with_retry(
        self,
        fn: Callable[[], Awaitable[_T]],
        *,
        operation: str,
    ) -> _T:
        """Call *fn* under the throttle with exponential backoff on retryable errors.

        Non-retryable errors (e.g. 404 model not found) fail immediately.
        Transport failures (resets, read timeouts) are retried like
        connection errors; anything else is classified into an
        ActionableError so callers only ever see the one exception type.
        After ``max_retries`` attempts, raises a COMPLETION error.
        """
        last_error: Exception | None = None

        for attempt in range(1, self.max_retries + 1):
            try:
                async with self._semaphore, self._limiter:
                    return await fn()
            except ollama_sdk.ResponseError as exc:
                last_error = exc
                if exc.status_code not in _RETRYABLE_STATUS_CODES:
                    raise ActionableError.completion(
                        model=self.llm_model,
                        raw_error=str(exc),
                    ) from None

                delay = self.base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "Ollama %s attempt %d/%d failed (status %d), retrying in %.1fs: %s",
                    operation,
                    attempt,
                    self.max_retries,
                    exc.status_code,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)
            except (ConnectionError, OSError, httpx.TransportError) as exc:
                last_error = exc
                delay = self.base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "Ollama %s attempt %d/%d connection failed, retrying in %.1fs: %s",
                    operation,
                    attempt,
                    self.max_retries,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)
            except Exception as exc:
                raise ActionableError.from_exception(exc, "Ollama", operation) from exc

        # All retries exhausted
        raise ActionableError.completion(
            model=self.llm_model,
            raw_error=f"Failed after {self.max_retries} attempts: {last_error}",
            suggestion="Ollama may be overloaded; lower max_concurrent_requests and retry",
        )
