from __future__ import annotations

import asyncio
from dataclasses import replace

from packplant.core import lifecycle
from packplant.core.errors import InvalidState
from packplant.core.models import Order, PalletWeighing
from packplant.core.weighing import next_pallet_number, recompute
from packplant.data.repository import Repository
from packplant.editing.coordinator import EditCoordinator, Notifier, StateListener
from packplant.settings import Settings


class WeighingTable:
    """Editable weighing rows of one inbound order."""

    def __init__(
        self,
        repo: Repository,
        order: Order,
        settings: Settings,
        *,
        on_state: StateListener | None = None,
        on_notify: Notifier | None = None,
    ):
        self.repo = repo
        self.order = order
        self.editor = EditCoordinator(
            repo.get_weighings(order_id=order.id),
            key=lambda row: row.number,
            submit=self._submit,
            submit_add=self._submit_add,
            submit_delete=self._submit_delete,
            derive=recompute,
            debounce=settings.edit_debounce,
            settle_delay=settings.edit_settle_delay,
            on_state=on_state,
            on_notify=on_notify,
            label="Tarima",
        )

    @property
    def editable(self) -> bool:
        return lifecycle.can_edit(self.order.state)

    async def _submit(self, number: str, row: PalletWeighing) -> PalletWeighing:
        return await asyncio.to_thread(lambda: self.repo.update_weighing(order_id=self.order.id, number=number, row=row))

    async def _submit_add(self, row: PalletWeighing) -> PalletWeighing:
        return await asyncio.to_thread(lambda: self.repo.add_weighing(order_id=self.order.id, row=row))

    async def _submit_delete(self, number: str) -> None:
        await asyncio.to_thread(lambda: self.repo.delete_weighing(order_id=self.order.id, number=number))

    def next_number(self) -> str:
        return next_pallet_number(list(self.editor.rows))

    def edit(self, number: str, **changes) -> PalletWeighing:
        if not self.editable:
            raise InvalidState(f"La orden {self.order.code} no admite cambios de pesaje", entity_id=number)
        return self.editor.apply(number, **changes)

    async def add(self, template: PalletWeighing | None = None) -> PalletWeighing | None:
        if not self.editable:
            raise InvalidState(f"La orden {self.order.code} no admite nuevas tarimas", entity_id=self.order.code)
        base = template or PalletWeighing(number="")
        row = replace(base, number=self.next_number())
        return await self.editor.add(row)

    async def delete(self, number: str) -> bool:
        if not self.editable:
            raise InvalidState(f"La orden {self.order.code} no admite eliminar tarimas", entity_id=number)
        return await self.editor.delete(number)

    def totals(self) -> dict:
        rows = self.editor.values()
        return {
            "pallets": len(rows),
            "boxes": sum(r.box_count for r in rows),
            "gross_weight": sum(r.gross_weight for r in rows),
            "net_weight": sum(r.net_weight for r in rows),
        }
