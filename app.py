from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL, WS_CLOSE_POLICY_VIOLATION
from logging_config import get_logger, setup_logging
from registry import RoomRegistry
from routers.rooms import health_router, rooms_router
from session import ConnectionSession
from transport import WebSocketTransport

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    logger.info("Shutting down, closing all member delivery channels")
    await app.state.registry.close()


def create_app(member_queue_size: Optional[int] = None, overflow_policy: Optional[str] = None) -> FastAPI:
    app = FastAPI(lifespan=lifespan)
    # One registry per application, shared by every connection it accepts
    app.state.registry = RoomRegistry(member_queue_size=member_queue_size, overflow_policy=overflow_policy)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(rooms_router)
    app.add_api_websocket_route("/ws", websocket_endpoint)

    logger.info("FastAPI application initialized")
    return app


async def websocket_endpoint(websocket: WebSocket, room: str, user: Optional[str] = None):
    """Signaling relay socket.

    Query parameters:
    - room: room key to join (required)
    - user: member id; a random UUID is used when absent
    """
    logger.info(f"WebSocket connection attempt for room: {room}, user: {user}")

    if not room.strip():
        logger.info("WebSocket connection rejected: empty room key")
        await websocket.close(code=WS_CLOSE_POLICY_VIOLATION, reason="Room is required")
        return

    session = ConnectionSession(websocket.app.state.registry, WebSocketTransport(websocket), room, user)
    await session.run()


app = create_app()
