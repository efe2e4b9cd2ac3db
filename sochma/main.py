"""
sochma/main.py

Purpose: Application entry point

- Initializes FastAPI app
- Loads configuration and logging
- Builds the ledger, the Telegram gateway and the dispatcher
- Registers API routes (webhook) and health probes
- No business logic should be written here
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time

from sochma.core.config import settings, validate_settings
from sochma.core.errors import add_exception_handlers
from sochma.core.logging import setup_logging, get_logger
from sochma.db.mongo import connect_to_mongo, close_mongo_connection, get_users_collection
from sochma.db.indexes import create_indexes
from sochma.flow.dispatcher import Dispatcher
from sochma.services.telegram_gateway import TelegramGateway
from sochma.services.user_ledger import InMemoryUserLedger, MongoUserLedger, UserLedger
from sochma.api import webhook

VERSION = "1.0.0"

# Initialize logging first
setup_logging()
logger = get_logger(__name__)


async def build_ledger() -> UserLedger:
    """Connects the configured ledger backend."""
    if settings.LEDGER_BACKEND == "memory":
        logger.warning("⚠️ Using in-memory ledger: records are lost on restart")
        return InMemoryUserLedger()

    logger.info("Connecting to MongoDB...")
    await connect_to_mongo()
    logger.info("✅ MongoDB connected")

    users = get_users_collection()
    logger.info("Creating database indexes...")
    await create_indexes(users)
    logger.info("✅ Database indexes created")

    return MongoUserLedger(users)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"🚀 Starting {settings.BOT_NAME}...")

    try:
        logger.info("Validating configuration...")
        validate_settings()
        logger.info("✅ Configuration validated")

        ledger = await build_ledger()

        if await ledger.ping():
            logger.info("✅ Ledger health check passed")
        else:
            logger.warning("⚠️ Ledger health check failed during startup")

        gateway = TelegramGateway.from_settings()

        app.state.ledger = ledger
        app.state.gateway = gateway
        app.state.dispatcher = Dispatcher(ledger, gateway)

        logger.info(f"🎉 {settings.BOT_NAME} started successfully!")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        logger.info(f"Ledger backend: {settings.LEDGER_BACKEND}")

    except Exception as e:
        logger.critical(f"Failed to start application: {str(e)}", exc_info=True)
        raise

    yield  # Application runs here

    # Shutdown
    logger.info(f"🛑 Shutting down {settings.BOT_NAME}...")

    try:
        await app.state.gateway.close()
        logger.info("✅ Telegram gateway closed")

        if settings.LEDGER_BACKEND == "mongo":
            await close_mongo_connection()
            logger.info("✅ MongoDB connection closed")

        logger.info("👋 Shut down successfully")

    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}", exc_info=True)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Sochma - Telegram Registration Bot",
        description="Telegram bot that registers buyers and investors through a guided dialogue",
        version=VERSION,
        lifespan=lifespan,
        debug=settings.DEBUG,
        docs_url="/docs" if settings.is_development else None,  # Disable docs in production
        redoc_url="/redoc" if settings.is_development else None,
    )

    # CORS Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request timing middleware
    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add processing time header to all responses."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        # Telegram gives up on a webhook after about a minute
        if process_time > 5.0:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path}",
                extra={"process_time": process_time}
            )

        return response

    add_exception_handlers(app)

    app.include_router(webhook.router, prefix=settings.API_PREFIX, tags=["Webhook"])

    @app.get("/", tags=["Health"])
    async def root():
        """Root endpoint - basic info."""
        return {
            "name": settings.BOT_NAME,
            "version": VERSION,
            "description": "Telegram registration bot",
            "status": "running",
            "environment": settings.ENVIRONMENT
        }

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """
        Comprehensive health check endpoint.
        Checks ledger connectivity and service status.
        """
        health_status = {
            "status": "healthy",
            "timestamp": time.time(),
            "environment": settings.ENVIRONMENT,
            "version": VERSION,
            "checks": {}
        }

        ledger_healthy = await request.app.state.ledger.ping()
        health_status["checks"]["ledger"] = "healthy" if ledger_healthy else "unhealthy"
        health_status["checks"]["ledger_backend"] = settings.LEDGER_BACKEND
        health_status["checks"]["telegram"] = "configured" if settings.TELEGRAM_BOT_TOKEN else "not_configured"

        if not ledger_healthy:
            health_status["status"] = "unhealthy"

        status_code = 200 if health_status["status"] == "healthy" else 503
        return JSONResponse(content=health_status, status_code=status_code)

    # Readiness probe (for Kubernetes/orchestration)
    @app.get("/ready", tags=["Health"])
    async def readiness_check(request: Request):
        """
        Readiness probe - indicates if app is ready to receive traffic.
        """
        if await request.app.state.ledger.ping():
            return {"status": "ready"}
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "ledger_unavailable"}
        )

    # Liveness probe (for Kubernetes/orchestration)
    @app.get("/live", tags=["Health"])
    async def liveness_check():
        """
        Liveness probe - indicates if app is alive.
        """
        return {"status": "alive"}

    @app.get("/stats", tags=["Health"])
    async def stats(request: Request):
        """
        Registration funnel: number of senders in each state.
        """
        counts = await request.app.state.ledger.count_by_state()
        return {
            "total_users": sum(counts.values()),
            "registered_users": counts.get("completed", 0),
            "by_state": counts
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sochma.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )
