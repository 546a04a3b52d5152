"""Tests for the weighing table wired to the repository."""

import asyncio

import pytest

from fixtures_packplant import advance, make_repo
from packplant.core.errors import InvalidState
from packplant.core.models import EditState, OrderState, PalletWeighing
from packplant.editing.weighing import WeighingTable
from packplant.settings import Settings


@pytest.fixture
def repo(tmp_path):
    return make_repo(tmp_path)


@pytest.fixture
def settings(tmp_path):
    return Settings(db_path=tmp_path / "packplant.db", edit_debounce=0.01, edit_settle_delay=0.05)


def test_edits_are_persisted_after_flush(repo, settings):
    order = repo.create_order(code="OE-1")
    repo.add_weighing(order_id=order.id, row=PalletWeighing(number="T-001", gross_weight=500))
    notes = []

    async def scenario():
        table = WeighingTable(repo, order, settings, on_notify=lambda level, msg: notes.append(level))
        table.edit("T-001", gross_weight=600)
        table.edit("T-001", box_count=40, box_weight=2.0)
        await table.editor.flush()
        return table

    table = asyncio.run(scenario())
    stored = repo.get_weighings(order_id=order.id)[0]
    assert stored.gross_weight == 600
    assert stored.net_weight == pytest.approx(520)
    assert table.editor.state("T-001") is EditState.SUCCESS
    assert notes == ["positive"]
    assert table.totals()["net_weight"] == pytest.approx(520)


def test_add_uses_next_free_number(repo, settings):
    order = repo.create_order(code="OE-2")
    repo.add_weighing(order_id=order.id, row=PalletWeighing(number="T-002", gross_weight=100))

    async def scenario():
        table = WeighingTable(repo, order, settings)
        first = await table.add(PalletWeighing(number="", gross_weight=700))
        second = await table.add(PalletWeighing(number="", gross_weight=800))
        return first, second

    first, second = asyncio.run(scenario())
    assert (first.number, second.number) == ("T-001", "T-003")
    assert [r.number for r in repo.get_weighings(order_id=order.id)] == ["T-001", "T-002", "T-003"]


def test_add_invalid_row_is_rolled_back(repo, settings):
    order = repo.create_order(code="OE-3")

    async def scenario():
        table = WeighingTable(repo, order, settings)
        # gross weight 0 fails validation on the server side
        created = await table.add()
        return table, created

    table, created = asyncio.run(scenario())
    assert created is None
    assert table.editor.rows == {}
    assert table.editor.state("T-001") is EditState.ERROR


def test_delete_row(repo, settings):
    order = repo.create_order(code="OE-4")
    repo.add_weighing(order_id=order.id, row=PalletWeighing(number="T-001", gross_weight=100))

    async def scenario():
        table = WeighingTable(repo, order, settings)
        return await table.delete("T-001")

    assert asyncio.run(scenario()) is True
    assert repo.get_weighings(order_id=order.id) == []


def test_row_deleted_elsewhere_is_dropped(repo, settings):
    order = repo.create_order(code="OE-5")
    repo.add_weighing(order_id=order.id, row=PalletWeighing(number="T-001", gross_weight=100))

    async def scenario():
        table = WeighingTable(repo, order, settings)
        repo.delete_weighing(order_id=order.id, number="T-001")
        table.edit("T-001", gross_weight=150)
        await table.editor.flush()
        return table

    table = asyncio.run(scenario())
    assert "T-001" not in table.editor.rows


def test_received_order_is_read_only(repo, settings):
    order = repo.create_order(code="OE-6")
    advance(repo, order.id, OrderState.PROCESSING, OrderState.RECEIVED)
    order = repo.get_order(order.id)
    table = WeighingTable(repo, order, settings)

    assert not table.editable
    with pytest.raises(InvalidState):
        table.edit("T-001", gross_weight=1)
    with pytest.raises(InvalidState):
        asyncio.run(table.add())
    with pytest.raises(InvalidState):
        asyncio.run(table.delete("T-001"))
