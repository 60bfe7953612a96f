"""
Table Service — Telegram Bot API messenger

Outbound only: sendMessage with an inline keyboard and answerCallbackQuery.
Any transport or API failure surfaces as DependencyFailure.
"""
import logging
from collections.abc import Sequence
from typing import Protocol

import httpx
from pydantic import BaseModel

from tableservice.core.config import get_settings
from tableservice.core.errors import DependencyFailure
from tableservice.schemas.commands import Command

settings = get_settings()
logger = logging.getLogger(__name__)


class Button(BaseModel):
    text: str
    command: Command


class Messenger(Protocol):
    async def send_message(self, channel_id: str, text: str, buttons: Sequence[Button] | None = None) -> None:
        ...

    async def answer_callback(self, callback_id: str, text: str = "") -> None:
        ...


def inline_keyboard(buttons: Sequence[Button]) -> dict:
    # One row per message, matching the approve / reject pairs staff expect
    return {
        "inline_keyboard": [[
            {"text": button.text, "callback_data": button.command.encode()}
            for button in buttons
        ]]
    }


class TelegramMessenger:

    def __init__(
        self,
        token: str,
        api_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._base_url = f"{(api_url or settings.TELEGRAM_API_URL).rstrip('/')}/bot{token}"
        self._client = client or httpx.AsyncClient(timeout=timeout or settings.HTTP_TIMEOUT_SECONDS)
        self._has_token = bool(token)

    async def send_message(self, channel_id: str, text: str, buttons: Sequence[Button] | None = None) -> None:
        payload: dict = {"chat_id": channel_id, "text": text, "parse_mode": "HTML"}
        if buttons:
            payload["reply_markup"] = inline_keyboard(buttons)
        await self._call("sendMessage", payload)

    async def answer_callback(self, callback_id: str, text: str = "") -> None:
        payload = {"callback_query_id": callback_id}
        if text:
            payload["text"] = text
        await self._call("answerCallbackQuery", payload)

    async def _call(self, method: str, payload: dict) -> dict:
        if not self._has_token:
            raise DependencyFailure(f"Telegram {method} skipped: TELEGRAM_BOT_TOKEN is not set")
        try:
            resp = await self._client.post(f"{self._base_url}/{method}", json=payload)
        except httpx.HTTPError as exc:
            raise DependencyFailure(f"Telegram {method} failed: {exc}") from exc
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code != 200 or not body.get("ok"):
            raise DependencyFailure(
                f"Telegram {method} failed ({resp.status_code}): {body.get('description', resp.text)}"
            )
        return body

    async def aclose(self) -> None:
        await self._client.aclose()


async def deliver(
    messenger: Messenger,
    channel_id: str | None,
    text: str,
    buttons: Sequence[Button] | None = None,
) -> bool:
    """Fire-and-forget send. Failures are logged, never raised."""
    if not channel_id:
        logger.warning("No delivery channel configured; message dropped: %.60s", text)
        return False
    try:
        await messenger.send_message(channel_id, text, buttons)
        return True
    except Exception as e:
        logger.warning("Message to channel %s not delivered: %s", channel_id, e)
        return False
