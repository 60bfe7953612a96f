"""
Table Service — Webhook update de-duplication

Telegram re-delivers an update until it gets a 2xx. The update_id of every
handled update is remembered in Redis, so a re-delivery is acknowledged
without pressing the same button twice:
  - seen update_id → 200 immediately (no business logic)
  - new update_id  → execute handler, remember it unless the handler failed
Redis being down never blocks the webhook.
"""
import json
import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from tableservice.core.config import get_settings
from tableservice.core.redis_client import get_redis

settings = get_settings()
logger = logging.getLogger(__name__)

UPDATE_PREFIX = "telegram-update:"
WEBHOOK_PATHS = {"/telegram/webhook", "/telegram/webhook/"}


class UpdateDedupMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method != "POST" or request.url.path not in WEBHOOK_PATHS:
            return await call_next(request)

        body = await request.body()
        try:
            update_id = json.loads(body).get("update_id")
        except (ValueError, AttributeError):
            update_id = None
        if update_id is None:
            return await call_next(request)

        cache_key = f"{UPDATE_PREFIX}{update_id}"
        redis = get_redis()
        try:
            if await redis.exists(cache_key):
                logger.info("Dropping re-delivered Telegram update %s", update_id)
                return JSONResponse(
                    content={"ok": True, "duplicate": True},
                    headers={"X-Update-Replay": "true"},
                )
        except Exception as e:
            logger.warning("Update de-duplication unavailable: %s", e)
            return await call_next(request)

        response = await call_next(request)

        if response.status_code < 500:
            try:
                await redis.setex(cache_key, settings.WEBHOOK_UPDATE_TTL_SECONDS, "1")
            except Exception as e:
                logger.warning("Could not remember Telegram update %s: %s", update_id, e)
        return response
