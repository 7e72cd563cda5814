"""NotificationRouter — singleton that relays results to each entry's targets."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from cadence.notifications.channels import DeliveryResult
from cadence.notifications.formatting import format_summary

if TYPE_CHECKING:
    from cadence.notifications.channels import NotificationChannel
    from cadence.notifications.formatting import ResultSummary

logger = logging.getLogger(__name__)


class NotificationRouter:
    """Routes execution summaries to the channels an entry has enabled.

    Singleton accessed via ``NotificationRouter.get()``.
    """

    _instance: NotificationRouter | None = None

    def __init__(self) -> None:
        self._channels: dict[str, NotificationChannel] = {}

    @classmethod
    def get(cls) -> NotificationRouter:
        """Return the singleton instance, creating it if needed."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset singleton — for tests only."""
        cls._instance = None

    def register_channel(self, channel: NotificationChannel) -> None:
        """Register a notification channel. Raises ValueError on duplicate name."""
        if channel.name in self._channels:
            msg = f"Channel '{channel.name}' is already registered"
            raise ValueError(msg)
        self._channels[channel.name] = channel

    def get_channel(self, name: str) -> NotificationChannel | None:
        """Look up a channel by name."""
        return self._channels.get(name)

    def list_channels(self) -> list[str]:
        """Return names of all registered channels."""
        return list(self._channels.keys())

    async def dispatch(
        self,
        targets: dict[str, Any] | None,
        summary: ResultSummary,
    ) -> dict[str, DeliveryResult]:
        """Send *summary* to every enabled target. One channel's failure never
        stops the others; every attempt gets a ``DeliveryResult``."""
        results: dict[str, DeliveryResult] = {}
        if not targets:
            return results

        message = format_summary(summary)
        for name, target in targets.items():
            if not isinstance(target, dict) or not target.get("enabled"):
                continue
            channel = self._channels.get(name)
            if channel is None:
                logger.warning("No channel registered for target '%s'", name)
                results[name] = DeliveryResult(error=f"Channel '{name}' is not registered")
                continue
            try:
                result = await channel.send(target, message)
            except Exception as exc:
                logger.exception(
                    "Delivery via %s failed for schedule %s", name, summary.entry_id
                )
                result = DeliveryResult(error=str(exc) or type(exc).__name__)
            logger.info(
                "%s delivery for '%s': %s",
                name,
                summary.entry_name,
                "ok" if result.success else result.error,
            )
            results[name] = result
        return results
