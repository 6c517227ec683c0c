"""Change-listener registration shared by the catalog and the stats cache."""

from __future__ import annotations

import logging
from typing import Any, Callable, List

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class ListenerRegistry:
    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def notify(self, source: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(source)
            except Exception:
                logger.warning(
                    "Listener %s failed", getattr(listener, "__name__", repr(listener)), exc_info=True,
                )

    def clear(self) -> None:
        self._listeners.clear()
