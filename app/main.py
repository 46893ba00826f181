import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import Settings, settings as default_settings
from app.core.errors import StorageError
from app.routers import heartbeat
from app.services.heartbeat_store import HeartbeatStore
from app.services.query import QueryService

logger = logging.getLogger("device-presence")


def create_app(settings: Settings = None) -> FastAPI:
    settings = settings or default_settings

    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=log_level)
    logging.getLogger().setLevel(log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = HeartbeatStore.from_url(settings.DATABASE_URL, echo=settings.SQL_ECHO)
        app.state.store = store
        app.state.query_service = QueryService(
            store,
            window=timedelta(seconds=settings.ACTIVE_WINDOW_SECONDS),
            default_limit=settings.HISTORY_DEFAULT_LIMIT,
            max_limit=settings.HISTORY_MAX_LIMIT,
            stats_window=timedelta(seconds=settings.HEARTBEAT_STATS_WINDOW_SECONDS),
            recent_limit=settings.RECENT_HEARTBEAT_LIMIT
        )
        logger.info(
            "Device presence service starting (active window %ss)",
            settings.ACTIVE_WINDOW_SECONDS
        )
        try:
            yield
        finally:
            store.close()
            logger.info("Device presence service stopped")

    app = FastAPI(
        title="Device Presence API",
        description="Heartbeat ingestion and device presence tracking",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(heartbeat.router)

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    @app.get("/ready")
    def ready():
        try:
            app.state.store.ping()
        except StorageError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"status": "ready"}

    return app


app = create_app()
