from __future__ import annotations

import threading


class PendingStateSlot:
    """Holds at most one outstanding OAuth state value.

    A new value replaces any previous one. ``consume`` reads and clears in a
    single step, so a given value can be consumed by exactly one caller.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: str | None = None

    def set(self, state: str | None) -> None:
        with self._lock:
            self._value = state

    def consume(self) -> str | None:
        with self._lock:
            value, self._value = self._value, None
            return value

    def clear(self) -> None:
        self.set(None)

    def peek(self) -> str | None:
        with self._lock:
            return self._value
