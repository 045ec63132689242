"""Completion Service interface and its Groq implementation.

The rest of the package only depends on the ``CompletionService`` Protocol;
``GroqCompletionClient`` is the concrete provider.
"""

import asyncio
import logging
import time
from typing import Any, Protocol

from groq import APIError, APITimeoutError, AsyncGroq

from ..logging import JSONLLogger, get_logger

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.3-70b-versatile"


class CompletionError(Exception):
    """The Completion Service could not be reached or failed the request."""


class CompletionTimeout(CompletionError):
    """The Completion Service did not answer within the configured timeout."""


class CompletionService(Protocol):
    """Prompt in, free text out."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.2,
        max_tokens: int = 1000,
        purpose: str = "completion",
    ) -> str:
        ...


class GroqCompletionClient:
    """CompletionService implementation that wraps AsyncGroq.

    Every call is bounded by ``timeout`` seconds. Transport and API failures
    are raised as CompletionError; the caller decides whether they are fatal.

    Example:
        from groq import AsyncGroq
        from cadence.completion import GroqCompletionClient

        groq = AsyncGroq(api_key="...")
        completion = GroqCompletionClient(groq, model="llama-3.3-70b-versatile")
    """

    def __init__(
        self,
        client: AsyncGroq,
        model: str = DEFAULT_MODEL,
        timeout: float = 30.0,
        event_log: JSONLLogger | None = None,
    ) -> None:
        """Initialize the Groq client wrapper.

        Args:
            client: The AsyncGroq client instance to wrap.
            model: The model to use for completions.
            timeout: Seconds before a call is abandoned.
            event_log: Structured event log, defaults to the global one.
        """
        self._client = client
        self._model = model
        self._timeout = timeout
        self._event_log = event_log

    @property
    def model(self) -> str:
        """Return the model being used."""
        return self._model

    @property
    def event_log(self) -> JSONLLogger:
        return self._event_log or get_logger()

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.2,
        max_tokens: int = 1000,
        purpose: str = "completion",
    ) -> str:
        """Complete a prompt and return the text response.

        Raises:
            CompletionTimeout: If the call exceeds the timeout.
            CompletionError: On any transport or API failure.
        """
        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                ),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, APITimeoutError) as e:
            error = f"Completion timed out after {self._timeout}s"
            self._record(purpose, started, error)
            raise CompletionTimeout(error) from e
        except APIError as e:
            error = f"Completion request failed: {e}"
            self._record(purpose, started, error)
            raise CompletionError(error) from e

        self._record(purpose, started, None)

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def _record(self, purpose: str, started: float, error: str | None) -> None:
        duration_ms = (time.monotonic() - started) * 1000
        if error:
            logger.warning("%s call failed: %s", purpose, error)
        self.event_log.log_completion(
            purpose, error is None, duration_ms=duration_ms, error=error
        )
