"""
User-facing notifications (the toast equivalent).

Components report outcomes the user should see through a Notifier.
Delivery is best-effort: a broken sink is logged and never breaks the
operation that triggered it.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

import structlog

logger = structlog.get_logger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str


NotificationSink = Callable[[Notification], Awaitable[None] | None]


def log_sink(notification: Notification) -> None:
    """Default sink: write the notification to the log."""
    log = logger.warning if notification.level in (
        NotificationLevel.WARNING,
        NotificationLevel.ERROR,
    ) else logger.info
    log("Notification", level=notification.level.value, message=notification.message)


class Notifier:
    """Dispatch notifications to a sink."""

    def __init__(self, sink: NotificationSink | None = None):
        self._sink = sink or log_sink

    async def notify(self, level: NotificationLevel, message: str) -> None:
        notification = Notification(level=level, message=message)
        try:
            result = self._sink(notification)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Notification sink failed", error=str(e), message=message)

    async def success(self, message: str) -> None:
        await self.notify(NotificationLevel.SUCCESS, message)

    async def info(self, message: str) -> None:
        await self.notify(NotificationLevel.INFO, message)

    async def warning(self, message: str) -> None:
        await self.notify(NotificationLevel.WARNING, message)

    async def error(self, message: str) -> None:
        await self.notify(NotificationLevel.ERROR, message)
