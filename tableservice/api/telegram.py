"""
Table Service — Telegram webhook
"""
import logging
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, status

from tableservice.core.config import get_settings
from tableservice.core.container import Services, get_services
from tableservice.schemas.telegram import TelegramUpdate

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/telegram", tags=["telegram"])


@router.post("/webhook")
async def telegram_webhook(
    update: TelegramUpdate,
    x_telegram_bot_api_secret_token: str | None = Header(None),
    services: Services = Depends(get_services),
):
    if settings.TELEGRAM_WEBHOOK_SECRET and not secrets.compare_digest(
        x_telegram_bot_api_secret_token or "", settings.TELEGRAM_WEBHOOK_SECRET,
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")

    if update.callback_query is not None:
        reply = await services.callbacks.handle(update.callback_query)
        return {"ok": True, "reply": reply}

    logger.debug("Ignoring Telegram update %s without a callback query", update.update_id)
    return {"ok": True}
