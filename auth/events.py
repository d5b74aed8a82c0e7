from __future__ import annotations

import asyncio
import enum
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Union

LOGGER = logging.getLogger(__name__)


class NotificationLevel(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    title: str
    content: str
    level: NotificationLevel = NotificationLevel.INFO


@dataclass(frozen=True)
class AuthStateChanged:
    signed_in: bool


Event = Union[Notification, AuthStateChanged]
Subscriber = Callable[[Event], None]


class EventChannel:
    """Delivers auth events and notifications to subscribers on the event loop.

    Publishers never run subscribers on their own stack while a loop is
    available: delivery is queued with ``call_soon`` (or
    ``call_soon_threadsafe`` from a worker thread). Without any loop, events
    are delivered synchronously.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: Event) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        loop = self._loop or running
        if loop is None or loop.is_closed():
            self._deliver(event)
            return

        if loop is running:
            loop.call_soon(self._deliver, event)
        else:
            loop.call_soon_threadsafe(self._deliver, event)

    def notify(
        self,
        title: str,
        content: str,
        level: NotificationLevel = NotificationLevel.INFO,
    ) -> None:
        self.publish(Notification(title=title, content=content, level=level))

    def _deliver(self, event: Event) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                LOGGER.exception("Event subscriber failed while handling %s", type(event).__name__)
