"""
Table Service — Health endpoint
"""
import asyncio

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from tableservice.core.config import get_settings
from tableservice.core.container import Services, get_services
from tableservice.core.redis_client import get_redis

settings = get_settings()
router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(services: Services = Depends(get_services)):
    deps: dict[str, str] = {}
    healthy = True
    try:
        await asyncio.wait_for(services.store.ping(), timeout=settings.HEALTH_CHECK_TIMEOUT)
        deps["store"] = "ok"
    except Exception as e:
        deps["store"] = f"error: {str(e)[:100]}"
        healthy = False

    try:
        redis = get_redis()
        await asyncio.wait_for(redis.ping(), timeout=settings.HEALTH_CHECK_TIMEOUT)
        deps["redis"] = "ok"
    except Exception as e:
        deps["redis"] = f"error: {str(e)[:100]}"
        healthy = False

    return JSONResponse(
        content={"status": "healthy" if healthy else "degraded",
                 "service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION,
                 "dependencies": deps},
        status_code=200 if healthy else 503,
    )
