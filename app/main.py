from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import asyncio

from app.config import settings
from app.routers import billing, health, webhooks
from app.core.database import init_db, close_db
from app.core.structured_logging import APP_VERSION, setup_logging
from app.core.errors import WorkflowGuardError
from app.core.errors.registry import error_registry
from app.core.errors.middleware import workflowguard_error_handler
from app.core.log_middleware import CorrelationMiddleware
from app.services.billing_sweep import BillingSweepScheduler

# Initialize structured logging before any logger calls
setup_logging(log_dir=settings.log_dir, level=settings.log_level.upper())

logger = logging.getLogger(__name__)

API_TITLE = "WorkflowGuard Billing API"

API_DESCRIPTION = """
## WorkflowGuard Billing

Reconciles locally recorded usage overages with HubSpot billing and
applies plan changes pushed by HubSpot.

### Authentication

Admin endpoints require `X-Admin-Key: <key>`.
`POST /billing/webhook` is authenticated by its HMAC-SHA256 signature only.
"""

TAGS_METADATA = [
    {
        "name": "health",
        "description": "Liveness and readiness endpoints. No authentication required for `/health`.",
    },
    {
        "name": "billing",
        "description": "Overage reconciliation, per-user billing read models and HubSpot helpers. **Requires admin key.**",
    },
    {
        "name": "webhooks",
        "description": "Inbound HubSpot webhooks, authenticated by HMAC signature.",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the error registry, migrate the database, start the optional sweep."""
    # Startup
    logger.info("Starting %s v%s...", API_TITLE, APP_VERSION)

    error_registry.load()

    init_db()  # Alembic migrations, or create_all without alembic.ini
    logger.info("Database initialized")

    if not settings.webhook_secret_configured:
        logger.warning(
            "HUBSPOT_CLIENT_SECRET not set; /billing/webhook will reject every request with 500"
        )

    sweep = None
    sweep_task = None
    if settings.billing_sweep_enabled:
        sweep = BillingSweepScheduler()
        sweep_task = asyncio.create_task(sweep.run_forever())
        logger.info("Billing sweep started (every %ss)", sweep.interval_s)

    yield

    # Shutdown
    logger.info("Shutting down %s...", API_TITLE)

    if sweep_task is not None:
        sweep.stop()
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            logger.info("Billing sweep cancelled")

    close_db()


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=APP_VERSION,
        openapi_tags=TAGS_METADATA,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # request_id + correlation_id in every log line
    app.add_middleware(CorrelationMiddleware)

    app.add_exception_handler(WorkflowGuardError, workflowguard_error_handler)

    # Catch-all handler so unhandled exceptions return JSON (not bare text)
    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal Server Error"},
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(billing.router, tags=["billing"])
    app.include_router(webhooks.router, tags=["webhooks"])

    # Root endpoint
    @app.get("/", tags=["health"], summary="Service info")
    async def root():
        return {
            "name": API_TITLE,
            "version": APP_VERSION,
            "status": "running",
            "docs": {
                "swagger": "/docs",
                "redoc": "/redoc",
                "openapi": "/openapi.json",
            },
        }

    return app


# Create the app instance
app = create_app()
