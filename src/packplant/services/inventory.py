from __future__ import annotations

import asyncio
import logging
from datetime import date

from packplant.cache.events import EventType
from packplant.cache.graph import PALLETS, SUMMARY, CacheGraph
from packplant.core.models import InventoryIndicators, InventoryRow, Pallet, PalletStatus
from packplant.data.repository import Repository

logger = logging.getLogger(__name__)

UNASSIGNED = "Sin asignar"


def inventory_rows(pallets: list[Pallet]) -> list[InventoryRow]:
    """One row per pallet classification; customer data comes from the first linked order."""
    rows: list[InventoryRow] = []
    for pallet in pallets:
        first = pallet.customer_orders[0] if pallet.customer_orders else None
        for cls in pallet.classifications:
            rows.append(
                InventoryRow(
                    code=pallet.code,
                    type=cls.type,
                    total_weight=cls.total_weight,
                    customer=first.customer if first else UNASSIGNED,
                    branch=(first.branch or UNASSIGNED) if first else UNASSIGNED,
                    lot=cls.lot or "",
                    registered_at=pallet.registered_at or "",
                    status=pallet.status.value,
                    pallet_id=pallet.id,
                )
            )
    return rows


def inventory_indicators(pallets: list[Pallet]) -> InventoryIndicators:
    assigned = [p for p in pallets if p.is_assigned]
    unassigned = [p for p in pallets if not p.is_assigned]
    return InventoryIndicators(
        total_weight=sum(p.total_weight for p in pallets),
        assigned_pallets=len(assigned),
        unassigned_pallets=len(unassigned),
        unassigned_weight=sum(p.total_weight for p in unassigned),
    )


class InventoryService:
    """Pallet inventory read through the shared pallet cache."""

    def __init__(self, repo: Repository, graph: CacheGraph):
        self.repo = repo
        self.graph = graph

    async def pallets(self) -> list[Pallet]:
        cached = await self.graph.caches[PALLETS].get("all", lambda: asyncio.to_thread(self.repo.get_pallets))
        return list(cached)

    async def inventory_rows(self) -> list[InventoryRow]:
        return inventory_rows(await self.pallets())

    async def indicators(self) -> InventoryIndicators:
        indicators = inventory_indicators(await self.pallets())
        self.graph.bus.emit(EventType.INDICATORS_UPDATED, "InventoryService.indicators", indicators)
        return indicators

    async def partial_pallets(self) -> list[Pallet]:
        return [p for p in await self.pallets() if p.status is PalletStatus.PARTIAL]

    async def assign_pallet(self, *, pallet_id: int, customer_order_id: int, source: str = "InventoryService.assign_pallet") -> Pallet:
        pallet = await asyncio.to_thread(
            lambda: self.repo.assign_pallet(pallet_id=pallet_id, customer_order_id=customer_order_id)
        )
        logger.info("Pallet %s assigned to customer order %s", pallet.code, customer_order_id)
        self.graph.invalidate(source)
        self.graph.notify_assigned(source, {"pallet": pallet, "customer_order_id": customer_order_id})
        return pallet

    async def unassign_pallet(
        self, *, pallet_id: int, customer_order_id: int | None = None, source: str = "InventoryService.unassign_pallet"
    ) -> Pallet:
        pallet = await asyncio.to_thread(
            lambda: self.repo.unassign_pallet(pallet_id=pallet_id, customer_order_id=customer_order_id)
        )
        logger.info("Pallet %s unassigned", pallet.code)
        self.graph.invalidate(source)
        self.graph.notify_unassigned(source, {"pallet": pallet, "customer_order_id": customer_order_id})
        return pallet

    def invalidate(self, source: str = "manual") -> list[str]:
        return self.graph.invalidate(source)

    def cache_state(self) -> dict[str, dict]:
        return self.graph.state()


class SummaryService:
    """Dashboard/analytics aggregates, cached separately and cleared with the pallet cache."""

    def __init__(self, repo: Repository, graph: CacheGraph):
        self.repo = repo
        self.graph = graph

    @property
    def _cache(self):
        return self.graph.caches[SUMMARY]

    async def dashboard(self, day: date) -> dict:
        key = f"dashboard-{day.isoformat()}"
        return await self._cache.get(key, lambda: asyncio.to_thread(lambda: self.repo.get_dashboard_summary(day=day)))

    async def daily_weight(self, date_from: date, date_to: date) -> list[dict]:
        if date_to < date_from:
            raise ValueError("rango de fechas inválido")
        key = f"peso-diario-{date_from.isoformat()}-{date_to.isoformat()}"
        return await self._cache.get(
            key,
            lambda: asyncio.to_thread(
                lambda: self.repo.get_daily_weight_by_type(date_from=date_from, date_to=date_to)
            ),
        )
