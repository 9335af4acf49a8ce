"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from content_autopilot import __version__
from content_autopilot.api.routes import health, optimizer, plans, scheduler, system
from content_autopilot.config import settings
from content_autopilot.logging import get_logger, setup_logging
from content_autopilot.scheduler import Scheduler
from content_autopilot.services.cycle import build_cycle_runner

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info("application_starting", version=__version__)

    # Startup: verify database connection
    try:
        from content_autopilot.db.session import init_db

        init_db(create_tables=settings.database_url.startswith("sqlite"))
        logger.info("database_connected")
    except Exception as e:
        logger.error("database_connection_failed", error=str(e))
        # Don't raise - let health checks report the issue

    runner = build_cycle_runner()
    app.state.runner = runner
    app.state.scheduler = Scheduler(runner)

    if settings.scheduler_autostart:
        result = await app.state.scheduler.start()
        if not result.success:
            logger.error("scheduler_autostart_failed", error=result.error)

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await app.state.scheduler.shutdown()
    await runner.publisher.close()


# Create FastAPI app
app = FastAPI(
    title="Content Autopilot",
    description="Autonomous publishing loop with bandit-driven content selection",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health.router)
app.include_router(scheduler.router, prefix="/api/v1")
app.include_router(system.router, prefix="/api/v1")
app.include_router(optimizer.router, prefix="/api/v1")
app.include_router(plans.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Root endpoint redirect to docs."""
    return {
        "name": "Content Autopilot",
        "version": __version__,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "content_autopilot.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
