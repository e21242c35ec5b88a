import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from api.routes import auth, clients, documents, health, tasks
from app.config import Settings, get_settings
from app.db import Database, DatabaseUnavailable
from app.errors import register_error_handlers
from app.logger import setup_logging
from app.notifier import NotificationDispatcher
from app.storage import StorageRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    logger.info("Starting application...")

    database: Database = app.state.database
    # Failure here is not fatal; the next request retries.
    if not await run_in_threadpool(database.connect):
        logger.error("Initial database connection failed; will retry on demand")

    yield

    logger.info("Shutting down application...")
    database.dispose()
    logger.info("Application shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    storage: Optional[StorageRegistry] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    app = FastAPI(
        title="Client Portal Backend",
        description="Back-office API for managing clients, their tasks and documents",
        version="1.0.0",
        lifespan=app_lifespan,
    )

    app.state.settings = settings
    app.state.database = database or Database(settings)
    app.state.storage = storage or StorageRegistry(settings)
    app.state.notifier = notifier or NotificationDispatcher(settings)

    register_error_handlers(app, settings)

    @app.middleware("http")
    async def connect_to_database(request: Request, call_next):
        """Bring the database handle to READY before any route runs and keep the JSON body."""
        try:
            await run_in_threadpool(request.app.state.database.ensure_ready)
        except DatabaseUnavailable as e:
            body = {"message": e.message}
            if not settings.is_production and e.detail:
                body["error"] = e.detail
            return JSONResponse(status_code=500, content=body)
        if request.headers.get("content-type", "").startswith("application/json"):
            # Kept for the failure log; the route consumes the stream itself.
            request.state.raw_body = await request.body()
        return await call_next(request)

    # Added last so it wraps everything, including preflight requests.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(clients.router)
    app.include_router(tasks.router)
    app.include_router(documents.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    if _settings.is_production:
        logger.info("Production mode: serve main:app from the hosting platform")
    else:
        uvicorn.run(app, host=_settings.host, port=_settings.port)
