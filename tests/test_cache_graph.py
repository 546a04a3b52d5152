"""Tests for cascading cache invalidation and the event bus."""

import asyncio

import pytest

from packplant.cache import PALLETS, SUMMARY, CacheGraph, EventBus, EventType, TTLCache, build_cache_graph


async def _value(v):
    return v


def _fill(graph: CacheGraph) -> None:
    async def scenario():
        await graph.caches[PALLETS].get("all", lambda: _value(["P-001"]))
        await graph.caches[SUMMARY].get("dashboard-2026-10-19", lambda: _value({"pallets": 1}))

    asyncio.run(scenario())


@pytest.fixture
def graph():
    return build_cache_graph(pallet_ttl=300, summary_ttl=120)


def test_invalidating_pallets_also_clears_summary(graph):
    _fill(graph)
    events = []
    graph.bus.on(EventType.CACHE_INVALIDATED, events.append)

    cleared = graph.invalidate("test")

    assert cleared == [PALLETS, SUMMARY]
    assert graph.caches[PALLETS].peek("all") is None
    assert graph.caches[SUMMARY].peek("dashboard-2026-10-19") is None
    assert len(events) == 1
    assert events[0].source == "test"
    assert events[0].payload == {"caches": [PALLETS, SUMMARY]}


@pytest.mark.parametrize("source", ["manual", "AddQuantityFlow.submit", "inventario.asignar"])
def test_cascade_holds_for_every_source(graph, source):
    _fill(graph)
    graph.invalidate(source)
    assert graph.caches[SUMMARY].state()["entries"] == {}


def test_invalidating_summary_leaves_pallets(graph):
    _fill(graph)
    assert graph.invalidate("test", cache=SUMMARY) == [SUMMARY]
    assert graph.caches[PALLETS].peek("all") == ["P-001"]


def test_unknown_cache_is_rejected(graph):
    with pytest.raises(ValueError):
        graph.invalidate("test", cache="nope")


def test_dependencies_must_name_known_caches():
    caches = {PALLETS: TTLCache(PALLETS, 10)}
    with pytest.raises(ValueError):
        CacheGraph(caches, EventBus(), {PALLETS: (SUMMARY,)})


def test_affected_visits_each_cache_once():
    caches = {n: TTLCache(n, 10) for n in ("a", "b", "c")}
    g = CacheGraph(caches, EventBus(), {"a": ("b", "c"), "b": ("c",), "c": ()})
    assert g.affected("a") == ["a", "b", "c"]


def test_notify_assigned_emits_specific_event_then_data_updated(graph):
    seen = []
    graph.bus.on_many(EventType, lambda e: seen.append(e.type))

    graph.notify_assigned("test", {"pallet": "P-001"})
    graph.notify_unassigned("test")

    assert seen == [
        EventType.PALLET_ASSIGNED,
        EventType.DATA_UPDATED,
        EventType.PALLET_UNASSIGNED,
        EventType.DATA_UPDATED,
    ]


def test_broken_handler_does_not_stop_delivery():
    bus = EventBus()
    received = []

    def broken(_event):
        raise RuntimeError("listener bug")

    bus.on(EventType.DATA_UPDATED, broken)
    bus.on(EventType.DATA_UPDATED, received.append)

    event = bus.emit(EventType.DATA_UPDATED, "test", {"x": 1})

    assert received == [event]


def test_unsubscribe_and_reset():
    bus = EventBus()
    received = []
    unsubscribe = bus.on("data-updated", received.append)
    bus.emit("data-updated")
    unsubscribe()
    unsubscribe()
    bus.emit("data-updated")
    assert len(received) == 1

    bus.on(EventType.FILTERS_CHANGED, received.append)
    assert bus.listener_counts()["filters-changed"] == 1
    bus.reset()
    assert set(bus.listener_counts().values()) == {0}


def test_graph_reset_clears_caches_and_listeners(graph):
    _fill(graph)
    graph.bus.on(EventType.DATA_UPDATED, lambda e: None)
    graph.reset()
    assert all(not s["entries"] for s in graph.state().values())
    assert graph.bus.listener_counts()["data-updated"] == 0
