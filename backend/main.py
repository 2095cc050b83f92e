"""
Folio FastAPI application.

Entry point for the API server.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from backend import db
from backend.auth import get_current_user
from backend.models.user import AIUsagePublic, User, UserPublic
from backend.routes import portfolios as portfolio_routes
from backend.routes import ws as ws_routes
from backend.services.credits import get_credit_checker
from backend.services.documents import close_document_store, init_document_store
from backend.services.guest_sessions import guest_sessions
from engine.kernel.storage import CreditChecker

logger = logging.getLogger(__name__)


# Background task for cleanup
async def cleanup_task():
    """
    Background task to drop idle guest storage partitions.

    Runs every 60 seconds.
    """
    while True:
        try:
            guest_sessions.cleanup()
        except Exception as e:
            logger.warning("Error in cleanup task: %s", e)

        await asyncio.sleep(60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Handles startup and shutdown logic:
    - Initialize database pool and document store
    - Start background cleanup task
    - Stop listening and close the pool on shutdown
    """
    # Startup
    pool = await db.init_pool()
    init_document_store(pool)
    logger.info("Database pool and document store initialized")

    cleanup_task_handle = asyncio.create_task(cleanup_task())

    yield

    # Shutdown
    cleanup_task_handle.cancel()
    try:
        await cleanup_task_handle
    except asyncio.CancelledError:
        logger.info("Background cleanup task stopped")

    await close_document_store()
    await db.close_pool()
    logger.info("Database pool closed")


app = FastAPI(
    title="Folio",
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)

# Register routes
app.include_router(portfolio_routes.router)
app.include_router(ws_routes.router)


@app.get("/health")
async def health():
    """Health check endpoint for uptime monitoring."""
    return {"status": "ok"}


@app.get("/api/me")
async def me(
    user: User = Depends(get_current_user),
    credits: CreditChecker = Depends(get_credit_checker),
) -> dict:
    """The signed-in user and their AI usage for this month."""
    usage = await credits.usage(str(user.id))
    return {
        "user": UserPublic.from_user(user).model_dump(mode="json"),
        "ai_usage": AIUsagePublic.from_usage(usage).model_dump(),
    }
