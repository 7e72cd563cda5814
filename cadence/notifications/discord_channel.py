"""Discord webhook implementation of the NotificationChannel protocol."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from cadence.config import settings
from cadence.notifications.channels import DeliveryResult

logger = logging.getLogger(__name__)

# Embed description limit imposed by Discord.
MAX_DESCRIPTION_LENGTH = 4096
EMBED_COLOR = 0x5865F2


class DiscordChannel:
    """Posts results to a Discord webhook as a single embed."""

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout or settings.notification_timeout_seconds

    @property
    def name(self) -> str:
        return "discord"

    async def send(self, target: dict[str, Any], message: str) -> DeliveryResult:
        webhook_url = target.get("webhookUrl")
        if not webhook_url:
            return DeliveryResult(error="Webhook URL is required")

        title, _, body = message.partition("\n")
        description = body.strip() or title
        if len(description) > MAX_DESCRIPTION_LENGTH:
            description = description[: MAX_DESCRIPTION_LENGTH - 3] + "..."
        payload = {
            "username": "Cadence Scheduler",
            "embeds": [
                {"title": title[:256], "description": description, "color": EMBED_COLOR}
            ],
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(webhook_url, json=payload)
        except httpx.HTTPError as exc:
            logger.exception("DiscordChannel.send failed")
            return DeliveryResult(error=f"Discord webhook failed: {exc}")

        if resp.status_code < 200 or resp.status_code >= 300:
            return DeliveryResult(
                error=f"Discord webhook failed: {resp.status_code} {resp.text[:200]}"
            )
        return DeliveryResult()
