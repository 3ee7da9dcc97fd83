from __future__ import annotations

import time
from typing import Callable, Iterable

from loguru import logger

from nexus.models.events import ThoughtEvent

ThoughtObserver = Callable[[ThoughtEvent], None]


class ThoughtLog:
    """Append-only, ordered record of one run's orchestration events.

    Timestamps are relative to construction. Observers are called
    synchronously, in subscription order, for every appended event.
    """

    def __init__(
        self,
        observers: Iterable[ThoughtObserver] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._started_at = clock()
        self._events: list[ThoughtEvent] = []
        self._observers: list[ThoughtObserver] = list(observers)

    @property
    def events(self) -> tuple[ThoughtEvent, ...]:
        return tuple(self._events)

    def elapsed(self) -> float:
        return self._clock() - self._started_at

    def subscribe(self, observer: ThoughtObserver) -> None:
        self._observers.append(observer)

    def add(self, event_type: str, detail: str) -> ThoughtEvent:
        event = ThoughtEvent(type=event_type, detail=detail, elapsed=self.elapsed())
        self._events.append(event)
        logger.debug(f"THOUGHT {event.time} {event.type}: {event.detail}")
        for observer in self._observers:
            try:
                observer(event)
            except Exception as e:
                # A broken progress display must not break the run.
                logger.warning(f"Thought observer failed: {e}")
        return event

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(self._events)
