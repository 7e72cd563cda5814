"""Notification relay — delivers execution results to configured channels."""

from cadence.notifications.channels import DeliveryResult, NotificationChannel
from cadence.notifications.discord_channel import DiscordChannel
from cadence.notifications.formatting import ResultSummary, format_summary
from cadence.notifications.router import NotificationRouter
from cadence.notifications.telegram_channel import TelegramChannel

__all__ = [
    "DeliveryResult",
    "DiscordChannel",
    "NotificationChannel",
    "NotificationRouter",
    "ResultSummary",
    "TelegramChannel",
    "format_summary",
]
