"""NomadChat Backend Application.

This is the main entry point for the NomadChat backend service, a real-time
chat server with a shared room, private one-to-one rooms, unread counters
and browser push notifications for offline users.

Modules:
    - chat: hub protocol over WebSocket (/hubs/chat)
    - storage: DuckDB persistence
    - api: HTTP endpoints for rooms, messages, users and push configuration
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nomadchat.api.messages import router as messages_router
from nomadchat.api.rooms import router as rooms_router
from nomadchat.api.users import router as users_router
from nomadchat.chat.hub import ChatHub, get_hub, set_hub
from nomadchat.chat.router import router as hub_router
from nomadchat.config import get_config
from nomadchat.exceptions import ChatError, NotFoundError, PersistenceError
from nomadchat.storage import Database

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# urllib3 logs every connection to the push service.
for _noisy in (
    "urllib3",
    "urllib3.connectionpool",
    "pywebpush",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in nomadchat.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    db = Database.get_instance(config.database.path)
    set_hub(ChatHub.from_config(db, config))

    if not config.secrets.encryption.key and config.database.path != ":memory:":
        logger.error(
            "No encryption.key in nomadchat.secrets.yaml; messages stored in %s "
            "will be unreadable after a restart",
            config.database.path,
        )

    if config.push.enabled and not config.secrets.vapid.private_key:
        logger.warning("Push enabled but no VAPID private key configured; offline users get no push")

    logger.info(f"NomadChat running on http://{config.server.host}:{config.server.port}")

    yield  # Application runs here

    # Shutdown
    await get_hub().shutdown()
    set_hub(None)
    Database.reset_instance()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="NomadChat API",
    description="Real-time chat backend with shared and private rooms",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse({"error": exc.message}, status_code=404)


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error("[HTTP] %s %s failed: %s", request.method, request.url.path, exc.details)
    return JSONResponse({"error": exc.message}, status_code=500)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    return JSONResponse({"error": exc.message}, status_code=400)


# Register all routers
app.include_router(hub_router)
app.include_router(rooms_router)
app.include_router(messages_router)
app.include_router(users_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
