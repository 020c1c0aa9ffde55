"""Discrete engine events for the feedback layer (sound, toasts, UI)."""

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

DISTRICT_UNLOCKED = "district_unlocked"
RUN_STARTED = "run_started"
RUN_STOPPED = "run_stopped"

Listener = Callable[[str, dict[str, Any]], None]


class Notifier:
    """Synchronous fan-out of named events to subscribed listeners.

    A failing listener is logged and skipped; it never aborts the engine
    mutation that emitted the event.
    """

    def __init__(self):
        self._listeners: list[Listener] = []
        self.history: list[tuple[str, dict[str, Any]]] = []
        self.history_limit = 100

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def emit(self, event: str, **payload: Any):
        self.history.append((event, payload))
        del self.history[:-self.history_limit]
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Listener failed on %s", event)

    def district_unlocked(self, district_id: str, name: str = ""):
        self.emit(DISTRICT_UNLOCKED, id=district_id, name=name)

    def run_started(self, started_at: int):
        self.emit(RUN_STARTED, started_at=started_at)

    def run_stopped(self, summary):
        self.emit(RUN_STOPPED, summary=summary)
