from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI, Request, Response
from fastapi.staticfiles import StaticFiles

from friends_api.api import friends as friends_router
from friends_api.core.config import Settings, get_settings
from friends_api.core.logging import configure_logging
from friends_api.db.migrate import run_migrations
from friends_api.db.pool import ConnectionPool
from friends_api.db.session import create_db_engine


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings

    engine = create_db_engine(settings)
    pool = ConnectionPool(engine, size=settings.pool_size, acquire_timeout=settings.pool_acquire_timeout)
    try:
        await run_migrations(pool)
    except Exception:
        logger.exception("Startup aborted: migrations failed")
        pool.dispose()
        raise

    app.state.pool = pool
    logger.info("Serving %s", settings.project_name, extra={"pool_size": settings.pool_size})
    try:
        yield
    finally:
        pool.dispose()
        logger.info("Connection pool closed")


async def log_requests(request: Request, call_next) -> Response:
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("%s %s failed", request.method, request.url.path)
        raise
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "%s %s -> %s (%.1f ms)",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        extra={"method": request.method, "path": request.url.path, "status_code": response.status_code},
    )
    return response


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title=settings.project_name, lifespan=lifespan)
    app.state.settings = settings

    app.middleware("http")(log_requests)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(friends_router.router)
    if not settings.assets_dir.is_dir():
        logger.warning("Assets directory %s does not exist; /assets will return 404", settings.assets_dir.resolve())
    app.mount("/assets", StaticFiles(directory=settings.assets_dir, check_dir=False), name="assets")
    return app
