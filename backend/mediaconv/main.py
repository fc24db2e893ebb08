"""FastAPI application entry point."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mediaconv.api.routes import router
from mediaconv.cleanup import CleanupScheduler
from mediaconv.config import Settings, configure_logging, load_settings, logger as config_logger
from mediaconv.conversion import ConversionService
from mediaconv.db import init_db

logging.getLogger("uvicorn").setLevel(logging.INFO)


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[ConversionService] = None,
    start_scheduler: bool = True,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings.uploads_dir.mkdir(parents=True, exist_ok=True)
        init_db(settings.database_url)
        app.state.settings = settings
        app.state.conversion_service = service or ConversionService(settings)
        scheduler = CleanupScheduler(settings)
        app.state.cleanup_scheduler = scheduler
        config_logger.info("Limits: %s", "DISABLED" if settings.disable_limits else "enabled")
        if settings.disable_limits:
            # desktop mode: nothing from a previous run is still wanted
            config_logger.info("Clearing uploads directory (DISABLE_LIMITS=true)")
            await asyncio.to_thread(scheduler.wipe_all)
        if start_scheduler:
            scheduler.start()
        config_logger.info("Media converter API started (uploads: %s)", settings.uploads_dir)
        yield
        await scheduler.stop()
        config_logger.info("Media converter API shutting down")

    app = FastAPI(
        title="Media Converter API",
        description="Batch image, SVG and video conversion with auto-expiring outputs.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins) if settings.cors_origins else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


def run() -> None:
    import uvicorn

    settings = load_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
