"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Lifespan manager — logging, DB table creation, webhook dispatcher
  2. CORS middleware — allows frontend origins to make cross-origin requests
  3. Exception handlers — maps domain errors to HTTP responses
  4. Router registration — mounts all API endpoint groups

Running locally:
    uvicorn billpay.main:app --reload
"""

import asyncio
from contextlib import asynccontextmanager, suppress

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

import billpay.models  # noqa: F401  (registers every table on Base.metadata)
from billpay.config import settings
from billpay.database import AsyncSessionLocal, Base, engine
from billpay.exceptions import register_exception_handlers
from billpay.logging_config import configure_logging
from billpay.routers import accounts, admin, bills
from billpay.services.notification_service import NotificationDispatcher, build_webhook_client

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
      Configures logging, creates all database tables if they don't exist
      (production deployments use migrations instead), and starts the
      webhook dispatcher when WEBHOOK_URL is configured.

    Shutdown:
      Stops the dispatcher, closes its HTTP client and disposes of the
      database engine.
    """
    # --- Startup ---
    configure_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    webhook_client = build_webhook_client()
    dispatcher_task = None
    if webhook_client is None:
        logger.warning("webhook_dispatcher_disabled", reason="WEBHOOK_URL not set")
    else:
        dispatcher = NotificationDispatcher(
            session_factory=AsyncSessionLocal,
            client=webhook_client,
            max_attempts=settings.WEBHOOK_MAX_ATTEMPTS,
            batch_size=settings.WEBHOOK_BATCH_SIZE,
            poll_interval_seconds=settings.WEBHOOK_POLL_INTERVAL_SECONDS,
        )
        dispatcher_task = asyncio.create_task(dispatcher.run())

    logger.info("application_started", version=settings.APP_VERSION)
    yield

    # --- Shutdown ---
    if dispatcher_task is not None:
        dispatcher_task.cancel()
        with suppress(asyncio.CancelledError):
            await dispatcher_task
    if webhook_client is not None:
        await webhook_client.aclose()
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Bill payment API with threshold-gated verification and invoice webhooks",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])
app.include_router(bills.router, prefix="/bills", tags=["Bills"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint for deployment probes.

    Runs SELECT 1 against the database; returns 503 if it is unreachable
    so load balancers stop routing payments to this instance.
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except OperationalError as exc:
        logger.error("health_check_failed", error=str(exc))
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "unreachable"},
        )
    return {"status": "ok", "version": settings.APP_VERSION, "database": "ok"}
