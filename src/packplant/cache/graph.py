from __future__ import annotations

import logging
from typing import Any

from packplant.cache.events import EventBus, EventType
from packplant.cache.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

PALLETS = "pallets"
SUMMARY = "summary"

# Invalidating a key also invalidates everything it points to.
DEFAULT_DEPENDENCIES: dict[str, tuple[str, ...]] = {
    PALLETS: (SUMMARY,),
    SUMMARY: (),
}


class CacheGraph:
    """Cascading invalidation across dependent caches, announced on the bus."""

    def __init__(
        self,
        caches: dict[str, TTLCache],
        bus: EventBus,
        dependencies: dict[str, tuple[str, ...]] | None = None,
    ):
        self.caches = caches
        self.bus = bus
        self.dependencies = dict(DEFAULT_DEPENDENCIES if dependencies is None else dependencies)
        for name, deps in self.dependencies.items():
            for dep in (name, *deps):
                if dep not in self.caches:
                    raise ValueError(f"cache desconocido en dependencias: {dep!r}")

    def affected(self, cache: str) -> list[str]:
        """`cache` followed by every cache depending on it, each once."""
        order: list[str] = []
        stack = [cache]
        while stack:
            name = stack.pop(0)
            if name in order:
                continue
            order.append(name)
            stack.extend(self.dependencies.get(name, ()))
        return order

    def invalidate(self, source: str = "manual", *, cache: str = PALLETS) -> list[str]:
        if cache not in self.caches:
            raise ValueError(f"cache desconocido: {cache!r}")
        cleared = self.affected(cache)
        for name in cleared:
            self.caches[name].invalidate()
        logger.info("Invalidated %s (source=%s)", " -> ".join(cleared), source)
        self.bus.emit(EventType.CACHE_INVALIDATED, source, {"caches": cleared})
        return cleared

    def notify_updated(self, source: str, payload: Any = None) -> None:
        self.bus.emit(EventType.DATA_UPDATED, source, payload)

    def notify_assigned(self, source: str, payload: Any = None) -> None:
        self.bus.emit(EventType.PALLET_ASSIGNED, source, payload)
        self.notify_updated(source, payload)

    def notify_unassigned(self, source: str, payload: Any = None) -> None:
        self.bus.emit(EventType.PALLET_UNASSIGNED, source, payload)
        self.notify_updated(source, payload)

    def reset(self) -> None:
        for c in self.caches.values():
            c.clear()
        self.bus.reset()

    def state(self) -> dict[str, dict]:
        return {name: c.state() for name, c in self.caches.items()}


def build_cache_graph(*, pallet_ttl: float, summary_ttl: float, bus: EventBus | None = None) -> CacheGraph:
    caches = {
        PALLETS: TTLCache(PALLETS, pallet_ttl),
        SUMMARY: TTLCache(SUMMARY, summary_ttl),
    }
    return CacheGraph(caches, bus or EventBus())
