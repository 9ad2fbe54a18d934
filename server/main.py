"""
Flashcard generation API.

Requests are answered from the tiered cache, queued as background jobs, or
generated inline when the queue cannot take them.
"""

from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from routers import generation, websocket

settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    """Turn anything a route leaks into a JSON 500."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled request error", path=request.url.path,
                         method=request.method, error_type=type(e).__name__, exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"success": False, "error": f"{type(e).__name__}: {e}"}
            )


async def _start_worker():
    if not (settings.queue_enabled and settings.worker_enabled):
        logger.info("Background worker disabled", queue_enabled=settings.queue_enabled)
        return None

    queue = container.queue()
    worker = queue.worker
    if worker is None:
        worker = queue.init_worker(container.generation_service().process_job,
                                   concurrency=settings.worker_concurrency)
    await worker.start()
    return worker


@asynccontextmanager
async def lifespan(app: FastAPI):
    set_startup_time()
    cache = container.cache()
    await cache.startup()
    worker = await _start_worker()

    adapters = container.adapter_manager()
    logger.info("Flashcard service ready",
                providers=adapters.registered_adapters(),
                priority=adapters.priority(),
                remote_cache=cache.is_redis_available())
    try:
        yield
    finally:
        # Worker reads from the same connection, stop it first
        if worker is not None:
            await worker.stop()
        await cache.shutdown()
        logger.info("Flashcard service stopped")


def create_app() -> FastAPI:
    application = FastAPI(
        title="Flashcard Generation Service",
        version="1.0.0",
        description="Flashcard generation with provider fallback, caching and background jobs",
        lifespan=lifespan,
        default_response_class=ORJSONResponse
    )

    # Registered first so CORS wraps it and error responses keep CORS headers
    application.add_middleware(CatchAllExceptionsMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(generation.router)
    application.include_router(websocket.router)

    @application.get("/health")
    async def health_check():
        report = await get_health_status(
            cache=container.cache(),
            queue=container.queue(),
            adapters=container.adapter_manager(),
            breakers=container.breakers(),
            settings=settings
        )
        report.update(
            service="flashcards",
            version=application.version,
            environment="development" if settings.debug else "production",
            timestamp=datetime.now().isoformat()
        )
        return report

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers
    )
