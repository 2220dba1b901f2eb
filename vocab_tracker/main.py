"""Vocab Tracker: FastAPI application entry point.

Initializes the Redis connection and the device-code authenticator on startup
and registers API routers.
"""

import logging
from contextlib import asynccontextmanager

import redis as redis_lib
from fastapi import FastAPI

from vocab_tracker.core import redis_client
from vocab_tracker.core.auth import DeviceCodeAuthenticator
from vocab_tracker.core.config import settings
from vocab_tracker.api import auth, health, sheets

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize service connections on startup, close on shutdown."""
    logger.info("Starting Vocab Tracker backend...")

    try:
        redis_client.init_redis_client()
    except redis_lib.RedisError as e:
        logger.error(f"Failed to connect to Redis: {e}")

    app.state.authenticator = DeviceCodeAuthenticator(
        client_id=settings.graph_client_id,
        tenant_id=settings.graph_tenant_id,
        scopes=settings.graph_user_scopes,
    )

    logger.info("Vocab Tracker backend ready")
    yield

    logger.info("Shutting down Vocab Tracker backend...")
    redis_client.close_redis_client()
    logger.info("Vocab Tracker backend stopped")


app = FastAPI(
    title="Vocab Tracker",
    version="0.1.0",
    description="Reads a vocabulary spreadsheet from OneDrive and serves it "
                "grouped into topics with learning statistics.",
    lifespan=lifespan,
)

app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(auth.router, prefix="/api", tags=["auth"])
app.include_router(sheets.router, prefix="/api", tags=["sheets"])
