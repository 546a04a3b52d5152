from __future__ import annotations

from dataclasses import dataclass

from packplant.cache.events import EventBus
from packplant.cache.graph import CacheGraph, build_cache_graph
from packplant.data.db import Db
from packplant.data.repository import Repository
from packplant.services.inventory import InventoryService, SummaryService
from packplant.settings import Settings, load_settings


@dataclass
class AppContext:
    """Everything a page needs, built once per process."""

    settings: Settings
    repo: Repository
    bus: EventBus
    graph: CacheGraph
    inventory: InventoryService
    summary: SummaryService


def build_context(base: Settings) -> AppContext:
    db = Db(base.db_path)
    db.ensure_schema()
    repo = Repository(db)
    settings = load_settings(repo, base)

    bus = EventBus()
    graph = build_cache_graph(pallet_ttl=settings.pallet_cache_ttl, summary_ttl=settings.summary_cache_ttl, bus=bus)
    return AppContext(
        settings=settings,
        repo=repo,
        bus=bus,
        graph=graph,
        inventory=InventoryService(repo, graph),
        summary=SummaryService(repo, graph),
    )
