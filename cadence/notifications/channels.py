"""NotificationChannel protocol — interface for all notification delivery channels."""

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass
class DeliveryResult:
    """Outcome of one delivery attempt on one channel."""

    error: str | None = None
    detail: dict[str, Any] | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.error:
            data["error"] = self.error
        if self.detail:
            data.update(self.detail)
        return data


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol that all notification channels must satisfy."""

    @property
    def name(self) -> str:
        """Key of the channel in an entry's notification targets (e.g. 'telegram')."""
        ...

    async def send(self, target: dict[str, Any], message: str) -> DeliveryResult:
        """Deliver *message* using the per-entry *target* config."""
        ...
