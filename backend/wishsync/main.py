from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from wishsync.api.routes import items, lists, ws
from wishsync.core.config import Settings, settings as default_settings
from wishsync.core.logger import configure_logging
from wishsync.db.session import DocumentStore


logger = configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    store: DocumentStore = app.state.store
    try:
        db_url = make_url(store.dsn)
        logger.info(
            "DB config driver=%s host=%s database=%s",
            db_url.get_backend_name(),
            db_url.host,
            db_url.database,
        )
    except ArgumentError:
        logger.warning("DB config parse failed", exc_info=True)
    await store.ensure_schema_ready()
    try:
        yield
    finally:
        await store.close()


def create_app(store: DocumentStore | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the API around one DocumentStore, the composition root of the server."""
    settings = settings or default_settings
    app = FastAPI(
        title=settings.app_name,
        description="Shared wishlists with private reservations",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store or DocumentStore.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.backend_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    @app.middleware("http")
    async def tracing_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        start = perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (perf_counter() - start) * 1000.0
            logger.exception(
                "Request failed id=%s method=%s path=%s duration_ms=%.2f",
                request_id,
                request.method,
                request.url.path,
                duration_ms,
            )
            raise

        duration_ms = (perf_counter() - start) * 1000.0
        logger.info(
            "Request completed id=%s method=%s path=%s status=%s duration_ms=%.2f",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        response.headers["X-Request-Id"] = request_id
        return response

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    app.include_router(lists.router)
    app.include_router(items.router)
    app.include_router(ws.router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics")
    async def get_metrics() -> dict[str, object]:
        store: DocumentStore = app.state.store
        return {
            "pending_writes": store.pending_writes,
            "listeners": store.feed.listener_count(),
            **store.metrics.snapshot(),
        }

    return app


app = create_app()
