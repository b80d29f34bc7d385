"""
Claude API client with failure classification and retry.

Each call to ``ClaudeClient.send`` runs its own retry loop: up to three
attempts with exponential backoff plus jitter between them. Failures are
classified into an ``ErrorClassification`` value; the retry loop decides on
``retryable`` alone, and only the terminal classification is raised as
``ClaudeClientError``.

Usage:
    client = ClaudeClient(api_key=config.anthropic_api_key)
    reply = await client.send(system_prompt, messages, max_tokens=1024, timeout_ms=25000)
    if reply.json is None:
        ...  # the model answered with something other than a JSON object
"""
import asyncio
import json
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import anthropic
import structlog

from shared.config import DEFAULT_MODEL
from lumina.metrics import llm_attempts
from lumina.models import LLMReply, LLMUsage

logger = structlog.get_logger()

MAX_ATTEMPTS = 3
BASE_DELAY_MS = 1000
JITTER_RATIO = 0.1


class ClientErrorKind(str, Enum):
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    OVERLOADED = "overloaded"
    INVALID_REQUEST = "invalid_request"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = frozenset({
    ClientErrorKind.RATE_LIMIT,
    ClientErrorKind.OVERLOADED,
    ClientErrorKind.TIMEOUT,
})

_TIMEOUT_MARKERS = ("timeout", "timed out", "aborted")
_CONNECTION_MARKERS = ("econnrefused", "connection refused", "enotfound", "fetch failed")


@dataclass(frozen=True)
class ErrorClassification:
    kind: ClientErrorKind
    message: str
    status_code: Optional[int] = None

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class ClaudeClientError(Exception):
    """Terminal failure talking to the Claude API."""

    def __init__(self, classification: ErrorClassification, attempts: int = 1):
        super().__init__(classification.message)
        self.classification = classification
        self.attempts = attempts

    @property
    def kind(self) -> ClientErrorKind:
        return self.classification.kind

    @property
    def status_code(self) -> Optional[int]:
        return self.classification.status_code

    @property
    def retryable(self) -> bool:
        return self.classification.retryable


def _classify_status(status: int) -> ClientErrorKind:
    if status == 401:
        return ClientErrorKind.AUTHENTICATION
    if status == 429:
        return ClientErrorKind.RATE_LIMIT
    if status in (503, 529) or status >= 500:
        return ClientErrorKind.OVERLOADED
    if status == 400:
        return ClientErrorKind.INVALID_REQUEST
    return ClientErrorKind.UNKNOWN


def classify_error(error: BaseException) -> ErrorClassification:
    """Map any exception raised by the transport to a classification."""
    message = str(error) or type(error).__name__

    if isinstance(error, anthropic.APIStatusError):
        return ErrorClassification(_classify_status(error.status_code), message, error.status_code)

    # APITimeoutError subclasses APIConnectionError
    if isinstance(error, (anthropic.APITimeoutError, asyncio.TimeoutError, TimeoutError)):
        return ErrorClassification(ClientErrorKind.TIMEOUT, message)

    if isinstance(error, anthropic.APIConnectionError):
        return ErrorClassification(ClientErrorKind.OVERLOADED, message)

    lowered = message.lower()
    if any(marker in lowered for marker in _TIMEOUT_MARKERS):
        return ErrorClassification(ClientErrorKind.TIMEOUT, message)
    if any(marker in lowered for marker in _CONNECTION_MARKERS):
        return ErrorClassification(ClientErrorKind.OVERLOADED, message)

    return ErrorClassification(ClientErrorKind.UNKNOWN, message)


def parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Strict parse; anything other than a JSON object yields None."""
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


class ClaudeClient:
    """
    Reusable Claude transport.

    Holds only credentials and the SDK handle, so one instance can serve
    concurrent requests. The SDK's own retries are disabled; retry policy
    lives here.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        client: Any = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
        max_attempts: int = MAX_ATTEMPTS,
        base_delay_ms: int = BASE_DELAY_MS
    ):
        """
        Args:
            api_key: Anthropic API key (ignored when ``client`` is given)
            model: Model identifier sent with every request
            client: Pre-built object exposing ``messages.create``
            sleep: Coroutine used for backoff waits, in seconds
            rng: Uniform [0, 1) source for jitter
            max_attempts: Total attempts per call
            base_delay_ms: Delay before the second attempt
        """
        if client is None:
            if not api_key:
                raise ValueError("Anthropic API key not configured. Set ANTHROPIC_API_KEY.")
            client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)
        self.client = client
        self.model = model
        self.sleep = sleep
        self.rng = rng
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms

    def backoff_delay_ms(self, attempt: int) -> float:
        """Delay after zero-based ``attempt`` fails."""
        delay = self.base_delay_ms * (2 ** attempt)
        return delay + self.rng() * delay * JITTER_RATIO

    async def send(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        max_tokens: int = 1024,
        timeout_ms: int = 30000
    ) -> LLMReply:
        """
        Send one conversation to Claude.

        Raises:
            ClaudeClientError: on a non-retryable failure or after the last attempt
        """
        last: Optional[ErrorClassification] = None

        for attempt in range(self.max_attempts):
            try:
                response = await asyncio.wait_for(
                    self.client.messages.create(
                        model=self.model,
                        max_tokens=max_tokens,
                        system=system_prompt,
                        messages=messages
                    ),
                    timeout=timeout_ms / 1000
                )
            except Exception as e:
                last = classify_error(e)
                llm_attempts.labels(kind=last.kind.value).inc()
                logger.warning(
                    "claude_attempt_failed",
                    attempt=attempt + 1,
                    max_attempts=self.max_attempts,
                    kind=last.kind.value,
                    status_code=last.status_code,
                    retryable=last.retryable,
                    error=last.message
                )

                if not last.retryable:
                    raise ClaudeClientError(last, attempts=attempt + 1) from e

                if attempt < self.max_attempts - 1:
                    delay_ms = self.backoff_delay_ms(attempt)
                    logger.info("claude_retry_scheduled", attempt=attempt + 1, delay_ms=round(delay_ms))
                    await self.sleep(delay_ms / 1000)
                continue

            llm_attempts.labels(kind="success").inc()
            return self._to_reply(response)

        logger.error("claude_attempts_exhausted", attempts=self.max_attempts, kind=last.kind.value)
        raise ClaudeClientError(last, attempts=self.max_attempts)

    def _to_reply(self, response: Any) -> LLMReply:
        text = ""
        for block in response.content:
            if getattr(block, "type", None) == "text":
                text += block.text

        usage = getattr(response, "usage", None)
        return LLMReply(
            text=text,
            json=parse_json_object(text),
            usage=LLMUsage(
                input_tokens=getattr(usage, "input_tokens", 0) or 0,
                output_tokens=getattr(usage, "output_tokens", 0) or 0,
            ),
            model=getattr(response, "model", None) or self.model,
        )
