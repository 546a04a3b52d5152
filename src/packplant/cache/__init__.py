"""Shared read caches.

A TTL/single-flight cache per dataset, an event bus, and the graph that
cascades invalidation from the pallet cache to the derived summary cache.
"""

from packplant.cache.events import BusEvent, EventBus, EventType
from packplant.cache.graph import PALLETS, SUMMARY, CacheGraph, build_cache_graph
from packplant.cache.ttl_cache import TTLCache

__all__ = [
    "BusEvent",
    "CacheGraph",
    "EventBus",
    "EventType",
    "PALLETS",
    "SUMMARY",
    "TTLCache",
    "build_cache_graph",
]
