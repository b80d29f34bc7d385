"""
Request orchestration for the Lumina endpoints.

A handler runs one authenticated invocation end to end:

    credentials -> rate limit -> validate -> prompt -> Claude -> normalize -> usage

and translates every pipeline failure into a LuminaException carrying a
short, non-technical message. Exactly one usage record is written per
invocation except for validation failures.
"""
import time
from typing import Any, Dict, Optional, Tuple

import structlog

from shared.config import ConfigurationError, LuminaConfig
from shared.errors import (
    FailedPreconditionError,
    InternalError,
    InvalidArgumentError,
    LuminaException,
    ResourceExhaustedError,
    ServiceUnavailableError,
    UnauthenticatedError,
)
from shared.usage_store import UsageRecord, UsageStore
from lumina.claude_client import ClaudeClient, ClaudeClientError, ClientErrorKind
from lumina.metrics import request_counter, request_duration
from lumina.models import CommandResponse, LLMReply, ScheduleCommandResponse
from lumina.rate_limiter import RateLimitError, UserRateLimiter
from lumina.response_validator import (
    apply_favorites,
    apply_variety_if_needed,
    normalize_favorite_payload,
    validate_command_response,
    validate_schedule_response,
)
from lumina.scheduling_prompt import build_scheduling_system_prompt
from lumina.system_prompt import build_system_prompt
from lumina.validators import (
    MAX_FAVORITE_NAME_LENGTH,
    MAX_FAVORITES,
    ValidationError,
    sanitize_text,
    validate_command_input,
    validate_schedule_input,
)

logger = structlog.get_logger()

MSG_NOT_CONFIGURED = "AI service not configured. Please contact support."
MSG_AUTH_FAILED = "AI service authentication failed. Please contact support."
MSG_BUSY = "AI service is temporarily busy. Please try again in a moment."
MSG_AI_ERROR = "AI service encountered an error. Please try again."


def translate_client_error(error: ClaudeClientError) -> LuminaException:
    """Map a terminal model-client failure to the caller-facing error."""
    if error.kind == ClientErrorKind.AUTHENTICATION:
        return FailedPreconditionError(MSG_AUTH_FAILED)
    if error.kind in (ClientErrorKind.RATE_LIMIT, ClientErrorKind.OVERLOADED):
        return ServiceUnavailableError(MSG_BUSY)
    return InternalError(MSG_AI_ERROR)


class PipelineHandler:
    """Shared orchestration; subclasses implement ``_process``."""

    endpoint = "lumina"

    def __init__(
        self,
        config: LuminaConfig,
        store: UsageStore,
        rate_limiter: UserRateLimiter,
        client: Optional[ClaudeClient]
    ):
        self.config = config
        self.store = store
        self.rate_limiter = rate_limiter
        self.client = client

    async def _process(self, user_id: str, payload: Any) -> Tuple[Any, LLMReply]:
        raise NotImplementedError

    def _require_client(self) -> ClaudeClient:
        self.config.require_api_key()
        if self.client is None:
            raise ConfigurationError("Claude client was not created at startup")
        return self.client

    async def _record_failure(self, user_id: str, started: float, error: str):
        await self.rate_limiter.record_usage(user_id, UsageRecord(
            status="failed",
            latency_ms=int((time.time() - started) * 1000),
            error=error,
        ))

    async def handle(self, user_id: Optional[str], payload: Any):
        if not user_id:
            raise UnauthenticatedError()

        try:
            self._require_client()
        except ConfigurationError as e:
            logger.error("lumina_not_configured", endpoint=self.endpoint, error=str(e))
            raise FailedPreconditionError(MSG_NOT_CONFIGURED)

        started = time.time()
        log = logger.bind(endpoint=self.endpoint, user_id=user_id)

        try:
            with request_duration.labels(endpoint=self.endpoint).time():
                count = await self.rate_limiter.check_and_count(user_id)
                result, reply = await self._process(user_id, payload)

            latency_ms = int((time.time() - started) * 1000)
            await self.rate_limiter.record_usage(user_id, UsageRecord(
                status="success",
                latency_ms=latency_ms,
                input_tokens=reply.usage.input_tokens,
                output_tokens=reply.usage.output_tokens,
                model=reply.model,
            ))

            if count >= self.config.rate_limit_warn_threshold:
                log.warning(
                    "rate_limit_approaching",
                    count=count + 1,
                    limit=self.rate_limiter.max_requests
                )

            request_counter.labels(endpoint=self.endpoint, status="success").inc()
            log.info(
                "lumina_request_completed",
                latency_ms=latency_ms,
                input_tokens=reply.usage.input_tokens,
                output_tokens=reply.usage.output_tokens
            )
            return result

        except ValidationError as e:
            request_counter.labels(endpoint=self.endpoint, status="invalid").inc()
            log.warning("request_validation_failed", field=e.field, error=e.message)
            raise InvalidArgumentError(e.message, detail=e.field)

        except RateLimitError as e:
            request_counter.labels(endpoint=self.endpoint, status="rate_limited").inc()
            await self._record_failure(user_id, started, "rate_limit")
            raise ResourceExhaustedError(e.message)

        except ClaudeClientError as e:
            request_counter.labels(endpoint=self.endpoint, status="llm_error").inc()
            log.error(
                "claude_request_failed",
                kind=e.kind.value,
                status_code=e.status_code,
                attempts=e.attempts
            )
            await self._record_failure(user_id, started, f"claude_{e.kind.value}")
            raise translate_client_error(e)

        except Exception as e:
            request_counter.labels(endpoint=self.endpoint, status="error").inc()
            log.error("lumina_request_error", error=str(e), error_type=type(e).__name__)
            await self._record_failure(user_id, started, str(e) or "unknown")
            raise InternalError()


class LuminaCommandHandler(PipelineHandler):
    """Single natural-language lighting command."""

    endpoint = "lumina_command"

    async def _process(self, user_id: str, payload: Any) -> Tuple[CommandResponse, LLMReply]:
        request = validate_command_input(payload)

        system_prompt = build_system_prompt(
            request.current_lighting_state,
            request.device_config,
            request.user_favorites
        )
        messages = [turn.to_message() for turn in request.conversation_history]
        messages.append({"role": "user", "content": request.transcribed_text})

        reply = await self.client.send(
            system_prompt,
            messages,
            max_tokens=self.config.command_max_tokens,
            timeout_ms=self.config.command_timeout_ms
        )
        return validate_command_response(reply.json), reply


class ScheduleCommandHandler(PipelineHandler):
    """Natural-language scheduling request."""

    endpoint = "lumina_schedule"

    async def _load_favorites(self, user_id: str) -> Dict[str, Dict[str, Any]]:
        # Favorites only enrich the reply; a store outage must not fail it
        try:
            return await self.store.get_favorites(user_id)
        except Exception as e:
            logger.warning("favorites_load_failed", user_id=user_id, error=str(e))
            return {}

    async def _process(self, user_id: str, payload: Any) -> Tuple[ScheduleCommandResponse, LLMReply]:
        request = validate_schedule_input(payload)
        favorites = await self._load_favorites(user_id)

        system_prompt = build_scheduling_system_prompt(request, list(favorites))
        messages = [turn.to_message() for turn in request.conversation_history]
        messages.append({"role": "user", "content": request.text})

        reply = await self.client.send(
            system_prompt,
            messages,
            max_tokens=self.config.schedule_max_tokens,
            timeout_ms=self.config.schedule_timeout_ms
        )

        response = validate_schedule_response(reply.json, request.current_schedule)
        if response.schedule_entries:
            entries = apply_favorites(response.schedule_entries, favorites)
            response.schedule_entries = apply_variety_if_needed(entries)
        return response, reply


class FavoritesHandler:
    """Named favorite scenes, keyed by display name per user."""

    def __init__(self, store: UsageStore):
        self.store = store

    @staticmethod
    def _clean_name(name: str) -> str:
        cleaned = sanitize_text(name)[:MAX_FAVORITE_NAME_LENGTH].rstrip()
        if not cleaned:
            raise InvalidArgumentError("Favorite name must be a non-empty string", detail="name")
        return cleaned

    async def list(self, user_id: Optional[str]) -> Dict[str, Dict[str, Any]]:
        if not user_id:
            raise UnauthenticatedError()
        return await self.store.get_favorites(user_id)

    async def save(self, user_id: Optional[str], name: str, payload: Any) -> Tuple[str, Dict[str, Any]]:
        """Store a favorite under its sanitized name; returns that name and the payload."""
        if not user_id:
            raise UnauthenticatedError()
        name = self._clean_name(name)

        existing = await self.store.get_favorites(user_id)
        if name not in existing and len(existing) >= MAX_FAVORITES:
            raise InvalidArgumentError(
                f"You can save at most {MAX_FAVORITES} favorites",
                detail="name"
            )

        favorite = normalize_favorite_payload(payload)
        await self.store.save_favorite(user_id, name, favorite)
        logger.info("favorite_saved", user_id=user_id, favorite=name)
        return name, favorite

    async def delete(self, user_id: Optional[str], name: str) -> Tuple[str, bool]:
        """Remove the favorite stored under the sanitized form of ``name``."""
        if not user_id:
            raise UnauthenticatedError()
        name = self._clean_name(name)
        removed = await self.store.delete_favorite(user_id, name)
        logger.info("favorite_deleted", user_id=user_id, favorite=name, removed=removed)
        return name, removed
