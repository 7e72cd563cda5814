"""Telegram implementation of the NotificationChannel protocol."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import telegram

from cadence.config import settings
from cadence.notifications.channels import DeliveryResult
from cadence.notifications.formatting import split_message

logger = logging.getLogger(__name__)

# Telegram rejects messages longer than this.
MAX_MESSAGE_LENGTH = 4096


class TelegramChannel:
    """Sends results via the Telegram Bot API.

    Each target carries its own ``botToken`` and ``chatId``, so a bot is
    built per delivery.
    """

    def __init__(self, timeout: float | None = None, chunk_delay: float = 1.0) -> None:
        self._timeout = timeout or settings.notification_timeout_seconds
        self._chunk_delay = chunk_delay

    @property
    def name(self) -> str:
        return "telegram"

    def _make_bot(self, token: str) -> telegram.Bot:
        return telegram.Bot(token=token)

    async def send(self, target: dict[str, Any], message: str) -> DeliveryResult:
        """Send *message* to ``target["chatId"]``, split into API-sized parts."""
        token = target.get("botToken")
        chat_id = target.get("chatId")
        if not token or not chat_id:
            return DeliveryResult(error="Bot token and chat ID are required")

        chunks = split_message(message, MAX_MESSAGE_LENGTH)
        try:
            async with self._make_bot(token) as bot:
                for index, chunk in enumerate(chunks):
                    if index:
                        await asyncio.sleep(self._chunk_delay)
                    await bot.send_message(
                        chat_id=chat_id,
                        text=chunk,
                        disable_web_page_preview=True,
                        read_timeout=self._timeout,
                        write_timeout=self._timeout,
                    )
        except Exception as exc:
            logger.exception("TelegramChannel.send failed for chat_id=%s", chat_id)
            return DeliveryResult(error=str(exc) or type(exc).__name__)
        return DeliveryResult(detail={"messageCount": len(chunks)})
