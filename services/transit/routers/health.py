"""Health check endpoint -- reports both stores."""

import logging

from fastapi import APIRouter, Request
from sqlalchemy import text

logger = logging.getLogger(__name__)

router = APIRouter()


async def _check_core_store(request: Request) -> str:
    factory = getattr(request.app.state, "db_session_factory", None)
    if factory is None:
        return "unconfigured"
    try:
        async with factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        logger.warning("health: core store check failed", exc_info=True)
        return "unavailable"
    return "ok"


async def _check_detail_store(request: Request) -> str:
    redis = getattr(request.app.state, "redis", None)
    if redis is None:
        return "unconfigured"
    try:
        await redis.ping()
    except Exception:
        logger.warning("health: detail store check failed", exc_info=True)
        return "unavailable"
    return "ok"


@router.get("/health")
async def health_check(request: Request) -> dict:
    core = await _check_core_store(request)
    detail = await _check_detail_store(request)

    # The detail store degrades gracefully; only the core store decides health
    if core != "ok":
        status = "unhealthy"
    elif detail != "ok":
        status = "degraded"
    else:
        status = "healthy"

    return {
        "success": True,
        "data": {
            "status": status,
            "version": request.app.state.settings.app_version,
            "stores": {"core": core, "detail": detail},
        },
        "requestId": request.state.request_id,
    }
