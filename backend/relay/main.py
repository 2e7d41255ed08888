"""DockChat Relay application.

This is the main entry point for the real-time message relay. The relay
accepts persistent client connections, groups them into rooms, keeps
per-room message history in memory and broadcasts messages to room members.

Transports:
    - Socket.IO at /api/socket (websocket, with HTTP long-polling fallback)
    - Plain WebSocket at /ws/relay

Run with ``python -m relay.main`` or ``uvicorn relay.main:asgi_app``.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

import socketio
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from relay.chat.router import router as chat_router
from relay.chat.socketio_server import create_socketio_server
from relay.config import get_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# engineio/socketio log every packet; uvicorn.access every poll request.
for _noisy in (
    "engineio",
    "engineio.server",
    "socketio",
    "socketio.server",
    "uvicorn.access",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Log unhandled task errors instead of letting them go unnoticed."""
    exc = context.get("exception")
    if exc is not None:
        logger.error("Unhandled exception: %s", context.get("message", ""), exc_info=exc)
    else:
        logger.error("Unhandled event loop error: %s", context.get("message", ""))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    asyncio.get_running_loop().set_exception_handler(_log_loop_exception)

    logger.info(
        f"Relay running on http://{config.server.host}:{config.server.port} "
        f"(Socket.IO path /{config.server.socket_path}, allowed origins {config.server.cors_origins})"
    )

    yield  # Application runs here

    logger.info("Application shutdown complete")


config = get_config()

# Create FastAPI application with metadata
app = FastAPI(
    title="DockChat Relay",
    description="Real-time message relay for DockChat rooms",
    version="0.1.0",
    lifespan=lifespan,
)

if config.server.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

app.include_router(chat_router)


@app.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "Socket.IO server"


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}


sio = create_socketio_server(config)

# Socket.IO sits in front of FastAPI because it serves both HTTP
# long-polling (Engine.IO) and WebSocket upgrades on its own path.
asgi_app = socketio.ASGIApp(
    sio,
    other_asgi_app=app,
    socketio_path=config.server.socket_path,
)


def run() -> None:
    uvicorn.run(
        asgi_app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level,
        ws_ping_interval=config.server.ping_interval,
        ws_ping_timeout=config.server.ping_timeout,
    )


if __name__ == "__main__":
    run()
