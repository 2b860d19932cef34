"""FastAPI WebSocket bridge between the Tri-Stack UI and the game engine."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
import redis.asyncio as redis

from config import config
from handlers import HANDLERS, ConnectionContext
from logging_config import setup_logging, room_code_var
from services.session_service import SessionService, SessionStore
from stores.pubsub import GamePubSub
from stores.room_store import RoomStore

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


# =============================================================================
# Online services (initialized in lifespan)
# =============================================================================

_redis_client: Optional[redis.Redis] = None
_pubsub: Optional[GamePubSub] = None
_session_service: Optional[SessionService] = None


async def _init_online_services() -> None:
    """Connect to Redis and build the room store, pub/sub and sessions."""
    global _redis_client, _pubsub, _session_service
    try:
        _redis_client = redis.from_url(config.REDIS_URL, decode_responses=False)
        await _redis_client.ping()
        logger.info("Redis client connected")
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e} - online play disabled")
        _redis_client = None
        return

    _pubsub = GamePubSub(_redis_client, sender_id=str(uuid.uuid4()))
    await _pubsub.start()
    room_store = RoomStore(_redis_client, _pubsub, capacity=config.MAX_PLAYERS_PER_ROOM)
    _session_service = SessionService(
        room_store,
        _pubsub,
        SessionStore(config.SESSION_FILE),
        think_seconds=config.game_defaults.bot_think_seconds,
    )
    logger.info("Online services initialized")


async def _shutdown_services() -> None:
    """Gracefully shut down online services."""
    global _redis_client, _pubsub, _session_service
    if _pubsub:
        await _pubsub.stop()
        _pubsub = None
    if _redis_client:
        await _redis_client.close()
        _redis_client = None
        logger.info("Redis connection closed")
    _session_service = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for async service initialization."""
    if config.REDIS_URL:
        await _init_online_services()

    from routers.health import set_health_dependencies
    set_health_dependencies(redis_client=_redis_client)

    logger.info(f"Tri-Stack bridge started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    await _shutdown_services()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Tri-Stack",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Middleware & Routers
# =============================================================================

from middleware.request_id import RequestIDMiddleware
app.add_middleware(RequestIDMiddleware)

from routers.health import router as health_router
app.include_router(health_router)


ONLINE_MESSAGES = {"create_room", "join_room", "reconnect", "leave_room"}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    logger.debug(f"UI connected as {connection_id}")
    ctx = ConnectionContext(websocket=websocket, connection_id=connection_id)

    # Shared dependencies passed to every handler
    handler_deps = dict(
        session_service=_session_service,
        think_seconds=config.game_defaults.bot_think_seconds,
    )

    try:
        while True:
            data = await websocket.receive_json()
            msg_type = data.get("type")
            handler = HANDLERS.get(msg_type)
            if not handler:
                continue
            if msg_type in ONLINE_MESSAGES and _session_service is None:
                await websocket.send_json({"type": "error", "message": "Online play is unavailable"})
                continue
            token = room_code_var.set(ctx.participant.room_code if ctx.participant else None)
            try:
                await handler(data, ctx, **handler_deps)
            finally:
                room_code_var.reset(token)
    except WebSocketDisconnect:
        if ctx.participant and _session_service is not None:
            # Keep the saved session so the player can reconnect
            ctx.participant.set_change_callback(None)
            try:
                await _session_service.release(ctx.participant)
            except redis.RedisError as e:
                logger.warning(f"Could not unsubscribe UI {connection_id}: {e}")
        logger.debug(f"UI {connection_id} disconnected")


def run():
    """Run the bridge using uvicorn."""
    import uvicorn

    logger.info(f"Starting Tri-Stack bridge on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
