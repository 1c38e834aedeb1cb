"""Change notifications for series-dependent views.

Views that render recurrence-derived data subscribe explicitly to a
``ChangeNotifier`` owned by whoever performs the mutations, instead of
listening on a process-wide event bus.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeriesChange:
    """Describes one committed change to a series or its exceptions."""

    action: str
    series_type: str
    series_id: str
    occurrence_date: Optional[date] = None
    new_series_id: Optional[str] = None


Listener = Callable[[SeriesChange], None]


class ChangeNotifier:
    """Registry of listeners called after each committed change.

    A failing listener is logged and does not stop delivery to the others or
    undo the change that was already committed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``. Returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, change: SeriesChange) -> None:
        with self._lock:
            listeners = list(self._listeners)
        logger.debug("Publishing %s for %s %s to %d listener(s)", change.action, change.series_type,
                     change.series_id, len(listeners))
        for listener in listeners:
            try:
                listener(change)
            except Exception:
                logger.exception("Series change listener %r failed", listener)
