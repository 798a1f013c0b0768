"""
Transit core FastAPI service -- process wiring for the dual-store entity core.

Builds the store clients and one synchronizer per entity type once at
startup and hangs them on app.state; request handlers take them from there.

Entrypoint: uvicorn services.transit.main:app --host 0.0.0.0 --port 8000
"""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from starlette.responses import JSONResponse

from services.transit.config import settings
from services.transit.db.engine import create_engine, create_session_factory
from services.transit.middleware.sentry import setup_sentry
from services.transit.routers import health
from services.transit.sync.detail_store import create_redis_client
from services.transit.sync.synchronizer import EntityRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    setup_sentry()
    app.state.settings = settings

    # Core records -- SA engine, NullPool behind PgBouncer
    engine = create_engine()
    app.state.db_engine = engine
    app.state.db_session_factory = create_session_factory(engine)

    # Detail documents -- Redis. A failed ping is not fatal: the synchronizer
    # degrades to core-only writes until Redis comes back.
    redis_client = create_redis_client()
    try:
        await redis_client.ping()
    except Exception:
        logger.warning("Detail store unreachable at startup; continuing degraded", exc_info=True)
    app.state.redis = redis_client

    app.state.entities = EntityRegistry.build(app.state.db_session_factory, redis_client)
    logger.info("Entity registry ready: %d entity types", len(app.state.entities))

    yield

    await redis_client.aclose()
    await engine.dispose()


app = FastAPI(
    title="Transit Core API",
    version=settings.app_version,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.include_router(health.router)


# Request ID injection
@app.middleware("http")
async def request_envelope_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# -- Exception Handlers --

@app.exception_handler(404)
async def not_found_handler(request: Request, exc) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={
            "success": False,
            "error": {"code": "NOT_FOUND", "message": "Resource not found."},
            "requestId": getattr(request.state, "request_id", str(uuid.uuid4())),
        },
    )
