"""
Lumina Command Service

HTTP surface for the lighting assistant: natural-language lighting commands,
natural-language scheduling and the user's saved favorite scenes.

Authentication happens in the fronting proxy, which forwards the
authenticated user id in the X-User-ID header.
"""
import json
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, Request
from prometheus_client import generate_latest
from starlette.responses import Response

from shared.config import ConfigurationError, get_config
from shared.errors import InvalidArgumentError, register_exception_handlers
from shared.logging_config import configure_logging
from shared.tracing import RequestTracingMiddleware
from shared.usage_store import InMemoryUsageStore, create_usage_store
from lumina import __version__
from lumina.claude_client import ClaudeClient
from lumina.handlers import (
    FavoritesHandler,
    LuminaCommandHandler,
    ScheduleCommandHandler,
)
from lumina.models import CommandResponse, ScheduleCommandResponse
from lumina.rate_limiter import UserRateLimiter

SERVICE_NAME = "lumina-command"

logger = configure_logging(SERVICE_NAME)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the store, model client, limiter and handlers."""
    config = get_config()
    logger.info("Starting Lumina command service", port=config.service_port, model=config.anthropic_model)

    for error in config.validate(SERVICE_NAME):
        # Requests fail with failed-precondition until this is fixed
        logger.error("configuration_error", error=error)

    store = create_usage_store(config.redis_url)
    try:
        client = ClaudeClient(api_key=config.require_api_key(), model=config.anthropic_model)
    except ConfigurationError as e:
        # Command endpoints answer failed-precondition until a key is configured
        logger.error("claude_client_not_created", error=str(e))
        client = None

    rate_limiter = UserRateLimiter(
        store,
        window_seconds=config.rate_limit_window_seconds,
        max_requests=config.rate_limit_max_requests,
        write_timeout=config.usage_write_timeout_seconds
    )

    app.state.config = config
    app.state.store = store
    app.state.rate_limiter = rate_limiter
    app.state.command_handler = LuminaCommandHandler(config, store, rate_limiter, client)
    app.state.schedule_handler = ScheduleCommandHandler(config, store, rate_limiter, client)
    app.state.favorites_handler = FavoritesHandler(store)

    yield

    logger.info("Shutting down Lumina command service")
    await store.close()


app = FastAPI(
    title="Lumina Command Service",
    description="Natural-language lighting commands and schedules for WLED installations",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(RequestTracingMiddleware, service_name=SERVICE_NAME)
register_exception_handlers(app)


# =============================================================================
# Dependencies
# =============================================================================

def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Authenticated user id forwarded by the auth proxy."""
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


def get_command_handler(request: Request) -> LuminaCommandHandler:
    return request.app.state.command_handler


def get_schedule_handler(request: Request) -> ScheduleCommandHandler:
    return request.app.state.schedule_handler


def get_favorites_handler(request: Request) -> FavoritesHandler:
    return request.app.state.favorites_handler


async def read_payload(request: Request) -> Any:
    """Raw JSON body; shape checks belong to the validators."""
    body = await request.body()
    try:
        return json.loads(body) if body else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidArgumentError("Request body must be valid JSON", detail="root")


# =============================================================================
# Routes
# =============================================================================

@app.post("/v1/lumina/command", response_model=CommandResponse)
async def lumina_command(
    payload: Any = Depends(read_payload),
    user_id: Optional[str] = Depends(get_user_id),
    handler: LuminaCommandHandler = Depends(get_command_handler)
):
    """Translate one spoken/typed lighting command into device commands."""
    return await handler.handle(user_id, payload)


@app.post("/v1/lumina/schedule", response_model=ScheduleCommandResponse)
async def lumina_schedule(
    payload: Any = Depends(read_payload),
    user_id: Optional[str] = Depends(get_user_id),
    handler: ScheduleCommandHandler = Depends(get_schedule_handler)
):
    """Translate a scheduling request into schedule entries."""
    return await handler.handle(user_id, payload)


@app.get("/v1/favorites")
async def list_favorites(
    user_id: Optional[str] = Depends(get_user_id),
    handler: FavoritesHandler = Depends(get_favorites_handler)
):
    favorites = await handler.list(user_id)
    return {"favorites": favorites}


@app.put("/v1/favorites/{name}")
async def save_favorite(
    name: str,
    payload: Any = Depends(read_payload),
    user_id: Optional[str] = Depends(get_user_id),
    handler: FavoritesHandler = Depends(get_favorites_handler)
):
    stored_name, favorite = await handler.save(user_id, name, payload)
    return {"name": stored_name, "favorite": favorite}


@app.delete("/v1/favorites/{name}")
async def delete_favorite(
    name: str,
    user_id: Optional[str] = Depends(get_user_id),
    handler: FavoritesHandler = Depends(get_favorites_handler)
):
    stored_name, removed = await handler.delete(user_id, name)
    return {"name": stored_name, "deleted": removed}


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    state = request.app.state
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": __version__,
        "claude_configured": state.command_handler.client is not None,
        "usage_store": "memory" if isinstance(state.store, InMemoryUsageStore) else "redis",
        "rate_limiter": state.rate_limiter.get_status(),
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type="text/plain")


if __name__ == "__main__":
    import uvicorn

    config = get_config()
    config.validate_or_exit(SERVICE_NAME)
    uvicorn.run(app, host="0.0.0.0", port=config.service_port)
