"""
whatsapp_bridge/main.py

Purpose: Application entry point

- Initializes FastAPI app
- Loads configuration and logging
- Recovers merchant sessions from stored credentials on startup
- Registers API routes (WhatsApp façade) and health probes
- Closes connections and collaborator clients on shutdown
- No business logic should be written here
"""

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time

from whatsapp_bridge.core.config import settings, validate_settings
from whatsapp_bridge.core.errors import add_exception_handlers
from whatsapp_bridge.core.logging import setup_logging, get_logger
from whatsapp_bridge.services.ai_service import close_ai_service
from whatsapp_bridge.services.connection_manager import (
    ConnectionManager,
    close_connection_manager,
    get_connection_manager,
)
from whatsapp_bridge.services.session_db_service import close_session_db_service
from whatsapp_bridge.services.session_store import SessionStore, get_session_store
from whatsapp_bridge.services.startup_recovery import recover_sessions
from whatsapp_bridge.whatsapp.states import ConnectionState
from whatsapp_bridge.api import whatsapp

# Initialize logging first
setup_logging()
logger = get_logger(__name__)

APP_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("🚀 Starting WhatsApp bridge...")

    try:
        logger.info("Validating configuration...")
        validate_settings()
        logger.info("✅ Configuration validated")

        manager = get_connection_manager()
        manager.credentials.ensure_root()
        logger.info(f"✅ Session directory ready: {settings.SESSION_DIR}")

        started = await recover_sessions(manager)
        logger.info(f"✅ {len(started)} session(s) recovering")

        logger.info("🎉 WhatsApp bridge started successfully!")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        logger.info(f"Debug Mode: {settings.DEBUG}")

    except Exception as e:
        logger.critical(f"Failed to start application: {str(e)}", exc_info=True)
        raise

    yield  # Application runs here

    # Shutdown
    logger.info("🛑 Shutting down WhatsApp bridge...")

    try:
        await close_connection_manager()
        logger.info("✅ WhatsApp connections closed")

        await close_ai_service()
        await close_session_db_service()
        logger.info("✅ Collaborator clients closed")

        logger.info("👋 WhatsApp bridge shut down successfully")

    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}", exc_info=True)


app = FastAPI(
    title="WhatsApp Bridge",
    description="Multi-merchant WhatsApp bridge to the AI response service",
    version=APP_VERSION,
    lifespan=lifespan,
    debug=settings.DEBUG,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
)

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

    if process_time > 5.0:
        logger.warning(
            f"Slow request detected: {request.method} {request.url.path}",
            extra={"process_time": process_time}
        )

    return response


add_exception_handlers(app)

app.include_router(whatsapp.router, tags=["WhatsApp"])


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic info."""
    return {
        "name": "WhatsApp Bridge",
        "version": APP_VERSION,
        "status": "running",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health", tags=["Health"])
async def health_check(
    manager: ConnectionManager = Depends(get_connection_manager),
    store: SessionStore = Depends(get_session_store),
):
    """
    Health summary: merchants per connection state and cached contexts.
    Expired conversation contexts are swept on each call.
    """
    store.purge_expired_contexts()

    return {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.ENVIRONMENT,
        "version": APP_VERSION,
        "checks": {
            "connections": manager.state_counts(),
            "supervised_merchants": len(manager.running_merchants()),
            "conversation_contexts": store.context_count(),
        }
    }


# Readiness probe (for Kubernetes/orchestration)
@app.get("/ready", tags=["Health"])
async def readiness_check(manager: ConnectionManager = Depends(get_connection_manager)):
    """
    Readiness probe - ready once the session directory is usable.
    """
    try:
        manager.credentials.ensure_root()
    except OSError as e:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": str(e)}
        )

    return {
        "status": "ready",
        "open_connections": manager.state_counts()[ConnectionState.OPEN.value],
    }


# Liveness probe (for Kubernetes/orchestration)
@app.get("/live", tags=["Health"])
async def liveness_check():
    """
    Liveness probe - indicates if app is alive.
    """
    return {"status": "alive"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "whatsapp_bridge.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )
