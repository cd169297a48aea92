"""
FastAPI backend for the store automation workflow engine.

Hosts event intake, manual triggers, run inspection and live run status
over WebSocket. Runs execute in-process or, with TEMPORAL_ENABLED, as
durable Temporal workflows served by an in-process worker.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.logging import configure_logging, get_logger
from routers import automation, websocket
from services.execution.models import utcnow

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    settings = container.settings()
    logger.info("Starting automation engine",
               temporal_enabled=settings.temporal_enabled,
               schedule_enabled=settings.schedule_enabled)

    # Wire dependency injection
    container.wire(modules=[
        "routers.automation",
        "routers.websocket",
    ])

    await container.database().startup()

    worker_manager = None
    if settings.temporal_enabled:
        from services.temporal import TemporalWorkerManager
        client = await container.temporal_client().connect()
        worker_manager = TemporalWorkerManager(
            client,
            container.temporal_activities(),
            task_queue=settings.temporal_task_queue,
        )
        await worker_manager.start()

    poller = None
    if settings.schedule_enabled:
        poller = container.poller()
        poller.start()

    logger.info("Services started successfully")
    yield

    # Shutdown
    if poller is not None:
        poller.stop()
    await container.launcher().shutdown()
    if worker_manager is not None:
        await worker_manager.stop()
        await container.temporal_client().disconnect()
    await container.clients().aclose()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Store Automation Engine",
    version="1.0.0",
    description="Event-triggered workflow execution for store automations",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception",
                        path=request.url.path,
                        error_type=type(e).__name__,
                        error=str(e),
                        exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": f"{type(e).__name__}: {str(e)}",
                    "detail": "Internal server error"
                }
            )


app.add_middleware(CatchAllExceptionsMiddleware)

# CORS middleware (must be AFTER exception middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(automation.router)
app.include_router(websocket.router)


@app.get("/health")
async def health_check():
    """Engine health and configuration summary."""
    settings = container.settings()
    launcher = container.launcher()
    return {
        "status": "OK",
        "service": "automation",
        "version": "1.0.0",
        "environment": "development" if settings.debug else "production",
        "engine": {
            "mode": "temporal" if settings.temporal_enabled else "local",
            "active_runs": launcher.active_runs,
            "recent_runs": launcher.recent_summary(),
            "workspace_concurrency_limit": settings.workspace_concurrency_limit,
            "registered_actions": container.registry().supported_actions(),
        },
        "schedule": {
            "enabled": settings.schedule_enabled,
            "poll_interval": settings.schedule_poll_interval,
            "cron_evaluation": settings.cron_evaluation,
        },
        "timestamp": utcnow().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting automation engine",
               host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["."] if settings.debug else None,
        reload_excludes=["*.pyc", "__pycache__", "*.log", "*.db"] if settings.debug else None,
    )
