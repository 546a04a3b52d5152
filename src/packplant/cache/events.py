from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    CACHE_INVALIDATED = "cache-invalidated"
    DATA_UPDATED = "data-updated"
    PALLET_ASSIGNED = "pallet-assigned"
    PALLET_UNASSIGNED = "pallet-unassigned"
    INDICATORS_UPDATED = "indicators-updated"
    FILTERS_CHANGED = "filters-changed"


@dataclass(frozen=True)
class BusEvent:
    type: EventType
    source: str
    payload: Any = None
    timestamp: float = field(default_factory=time.time)


Handler = Callable[[BusEvent], None]


class EventBus:
    """In-process publish/subscribe for screens that share no call path."""

    def __init__(self):
        self._handlers: dict[EventType, list[Handler]] = {t: [] for t in EventType}

    def on(self, event_type: EventType | str, handler: Handler) -> Callable[[], None]:
        et = EventType(event_type)
        self._handlers[et].append(handler)

        def _unsubscribe() -> None:
            try:
                self._handlers[et].remove(handler)
            except ValueError:
                pass

        return _unsubscribe

    def on_many(self, event_types: Iterable[EventType | str], handler: Handler) -> Callable[[], None]:
        unsubscribers = [self.on(t, handler) for t in event_types]

        def _unsubscribe_all() -> None:
            for unsub in unsubscribers:
                unsub()

        return _unsubscribe_all

    def emit(self, event_type: EventType | str, source: str = "unknown", payload: Any = None) -> BusEvent:
        event = BusEvent(type=EventType(event_type), source=source, payload=payload)
        logger.debug("%s from %s", event.type.value, source)
        for handler in list(self._handlers[event.type]):
            try:
                handler(event)
            except Exception:
                # One broken listener must not hide the event from the rest.
                logger.exception("Handler for %s failed", event.type.value)
        return event

    def listener_counts(self) -> dict[str, int]:
        return {t.value: len(hs) for t, hs in self._handlers.items()}

    def reset(self) -> None:
        for hs in self._handlers.values():
            hs.clear()
