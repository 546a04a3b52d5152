"""Tests for the SQLite repository."""

import io

import pandas as pd
import pytest

from fixtures_packplant import advance, make_repo, seed_plant
from packplant.core.errors import InvalidState, NotFound, ValidationFailed
from packplant.core.models import OrderState, PalletStatus, PalletWeighing


@pytest.fixture
def repo(tmp_path):
    return make_repo(tmp_path)


@pytest.fixture
def plant(repo):
    return seed_plant(repo)


def test_ensure_schema_creates_all_tables(repo):
    with repo.db.connect() as con:
        tables = {r[0] for r in con.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    for name in (
        "audit_log",
        "app_config",
        "product",
        "inbound_order",
        "pallet_weighing",
        "classification",
        "pallet",
        "pallet_classification",
        "customer_order",
        "customer_order_line",
        "pallet_assignment",
        "waste",
        "order_return",
    ):
        assert name in tables


def test_ensure_schema_is_idempotent(repo):
    repo.db.ensure_schema()
    repo.db.ensure_schema()


def test_config_roundtrip_is_audited(repo):
    assert repo.get_config(key="planta", default="x") == "x"
    repo.set_config(key="planta", value="Empacadora Norte")
    repo.set_config(key="planta", value="Empacadora Sur")
    assert repo.get_config(key="planta") == "Empacadora Sur"
    entries = repo.get_recent_audit_entries()
    assert entries[0].category == "CONFIG"
    assert "Empacadora Norte" in entries[0].details
    with pytest.raises(ValueError):
        repo.get_config(key=" ")


def test_order_lifecycle(repo):
    order = repo.create_order(code="OE-9")
    assert order.state is OrderState.PENDING

    order = repo.change_order_state(order_id=order.id, target="Procesando")
    order = repo.change_order_state(order_id=order.id, target=OrderState.RECEIVED)
    assert order.received_at

    cancelled = repo.change_order_state(order_id=order.id, target=OrderState.CANCELLED)
    assert cancelled.state is OrderState.CANCELLED
    with pytest.raises(InvalidState):
        repo.change_order_state(order_id=order.id, target=OrderState.PENDING)
    assert repo.get_order(order.id).state is OrderState.CANCELLED


def test_order_errors(repo):
    repo.create_order(code="OE-1")
    with pytest.raises(ValidationFailed):
        repo.create_order(code="OE-1")
    with pytest.raises(ValidationFailed):
        repo.create_order(code="  ")
    with pytest.raises(NotFound):
        repo.get_order(999)
    with pytest.raises(NotFound):
        repo.get_order_by_code("OE-404")


def test_get_orders_by_state(repo, plant):
    repo.create_order(code="OE-2")
    assert [o.code for o in repo.get_orders(state="Pendiente")] == ["OE-2"]
    classifying = repo.get_orders(state=OrderState.CLASSIFYING)
    assert [o.code for o in classifying] == ["OE-001"]
    assert classifying[0].product_name == "Mango Ataulfo"


def test_import_orders_from_excel(repo):
    repo.create_product(code="MANGO-ATA", name="Mango Ataulfo")
    df = pd.DataFrame(
        [
            {"Código": "OE-10", "Proveedor": "Huerta", "Producto": "Mango Ataulfo", "Fecha estimada": "20/10/2026"},
            {"Código": "", "Proveedor": "X", "Producto": "", "Fecha estimada": ""},
            {"Código": "OE-11", "Proveedor": "Finca", "Producto": "MANGO-ATA", "Fecha estimada": "no es fecha"},
            {"Código": "OE-12", "Proveedor": "Finca", "Producto": "Otro", "Fecha estimada": ""},
        ]
    )
    bio = io.BytesIO()
    df.to_excel(bio, index=False)

    result = repo.import_orders_excel_bytes(content=bio.getvalue())

    assert result["created"] == ["OE-10", "OE-12"]
    assert len(result["errors"]) == 2
    order = repo.get_order_by_code("OE-10")
    assert order.estimated_date == "2026-10-20"
    assert order.product_name == "Mango Ataulfo"
    assert repo.get_order_by_code("OE-12").product_id is None


def test_weighing_rows(repo):
    order = repo.create_order(code="OE-5")
    row = repo.add_weighing(
        order_id=order.id, row=PalletWeighing(number="T-001", gross_weight=1000, box_count=42, box_weight=1.5)
    )
    assert row.tare_weight == pytest.approx(63)
    assert row.net_weight == pytest.approx(937)

    with pytest.raises(ValidationFailed):
        repo.add_weighing(order_id=order.id, row=PalletWeighing(number="T-001", gross_weight=1))
    with pytest.raises(ValidationFailed):
        repo.add_weighing(order_id=order.id, row=PalletWeighing(number="T-002", gross_weight=0))

    updated = repo.update_weighing(
        order_id=order.id, number="T-001", row=PalletWeighing(number="T-001", gross_weight=900, box_count=42, box_weight=1.5)
    )
    # Same snapshot twice leaves the same row.
    repo.update_weighing(order_id=order.id, number="T-001", row=updated)
    assert repo.get_weighings(order_id=order.id) == [updated]

    repo.delete_weighing(order_id=order.id, number="T-001")
    assert repo.get_weighings(order_id=order.id) == []
    with pytest.raises(NotFound):
        repo.delete_weighing(order_id=order.id, number="T-001")
    with pytest.raises(NotFound):
        repo.update_weighing(order_id=order.id, number="T-001", row=updated)


def test_weighing_blocked_once_order_is_received(repo):
    order = repo.create_order(code="OE-6")
    advance(repo, order.id, OrderState.PROCESSING, OrderState.RECEIVED)
    with pytest.raises(InvalidState):
        repo.add_weighing(order_id=order.id, row=PalletWeighing(number="T-001", gross_weight=10))


def test_classification_buckets(repo, plant):
    bucket = repo.get_classification_bucket(classification_id=plant["primera"])
    assert (bucket.capacity, bucket.committed, bucket.remaining) == (100, 80, 20)
    assert bucket.unit == "cajas"

    kg = repo.get_classification_bucket(classification_id=plant["segunda"], box_weight=2.0)
    assert kg.committed == 0
    assert kg.per_unit == 2.0
    repo.add_quantity_to_partial(pallet_id=plant["pallet_id"], classification_id=plant["segunda"], quantity=10)
    kg = repo.get_classification_bucket(classification_id=plant["segunda"], box_weight=2.0)
    assert kg.committed == pytest.approx(20.0)

    with pytest.raises(NotFound):
        repo.get_classification_bucket(classification_id=999)
    with pytest.raises(ValidationFailed):
        repo.create_classification(order_id=plant["order_id"], type="Tercera", capacity=0)


def test_add_quantity_is_relative(repo, plant):
    pallet = repo.add_quantity_to_partial(pallet_id=plant["pallet_id"], classification_id=plant["primera"], quantity=5)
    primera = [c for c in pallet.classifications if c.type == "Primera"][0]
    assert primera.quantity == 85
    assert primera.lot == "L-01"
    assert pallet.total_weight == pytest.approx(170.0)


def test_add_quantity_to_complete_pallet_is_rejected(repo, plant):
    pallet = repo.add_quantity_to_partial(
        pallet_id=plant["pallet_id"], classification_id=plant["primera"], quantity=1, complete=True
    )
    assert pallet.status is PalletStatus.COMPLETE
    with pytest.raises(InvalidState):
        repo.add_quantity_to_partial(pallet_id=plant["pallet_id"], classification_id=plant["primera"], quantity=1)

    reopened = repo.change_pallet_status(pallet_id=plant["pallet_id"], target="PARCIAL")
    assert reopened.status is PalletStatus.PARTIAL
    with pytest.raises(InvalidState):
        repo.change_pallet_status(pallet_id=plant["pallet_id"], target=PalletStatus.PARTIAL)


def test_pallets_and_links(repo, plant):
    pallet = repo.get_pallet(plant["pallet_id"])
    assert pallet.is_assigned
    assert pallet.customer_orders[0].code == "CO-42"
    assert [p.code for p in repo.get_pallets(status="PARCIAL")] == ["P-001"]
    assert repo.get_pallets(status=PalletStatus.COMPLETE) == []
    with pytest.raises(ValidationFailed):
        repo.create_pallet(code="P-001", box_weight=1)
    with pytest.raises(NotFound):
        repo.get_pallet(999)


def test_customer_order_availability(repo, plant):
    availability = repo.get_customer_order_availability(
        customer_order_id=plant["customer_order_id"], type="Primera", product_id=plant["product_id"]
    )
    assert availability.required_quantity == 95
    assert availability.assigned_quantity == 80
    assert availability.remaining == 15

    assert repo.get_customer_order_availability(customer_order_id=plant["customer_order_id"], type="Segunda") is None


def test_assign_and_unassign(repo, plant):
    pallet = repo.unassign_pallet(pallet_id=plant["pallet_id"])
    assert not pallet.is_assigned
    availability = repo.get_customer_order_availability(customer_order_id=plant["customer_order_id"], type="Primera")
    assert availability.remaining == 95

    pallet = repo.assign_pallet(pallet_id=plant["pallet_id"], customer_order_id=plant["customer_order_id"])
    assert pallet.is_assigned
    with pytest.raises(NotFound):
        repo.assign_pallet(pallet_id=plant["pallet_id"], customer_order_id=999)


def test_summary_queries(repo, plant):
    summary = repo.get_dashboard_summary(day="2026-10-19")
    assert summary["pallets"] == 1
    assert summary["complete"] == 0
    assert summary["total_weight"] == pytest.approx(160.0)
    assert summary["by_type"][0]["type"] == "Primera"

    daily = repo.get_daily_weight_by_type(date_from="2026-10-01", date_to="2026-10-31")
    assert daily == [{"day": "2026-10-19", "type": "Primera", "weight": pytest.approx(160.0)}]
    assert repo.get_dashboard_summary(day="2026-01-01")["pallets"] == 0


def test_classification_types(repo, plant):
    assert repo.get_classification_types() == ["Primera", "Segunda"]


def test_waste_records(repo, plant):
    waste = repo.add_waste(order_id=plant["order_id"], weight=12.5, notes="fruta golpeada")
    assert (waste.type, waste.weight, waste.notes) == ("GENERAL", 12.5, "fruta golpeada")
    repo.add_waste(order_id=plant["order_id"], type="Primera", weight=3)

    updated = repo.update_waste(waste_id=waste.id, weight=10)
    assert (updated.type, updated.weight) == ("GENERAL", 10.0)
    assert [w.weight for w in repo.get_wastes(order_id=plant["order_id"])] == [10.0, 3.0]

    with pytest.raises(ValidationFailed):
        repo.add_waste(order_id=plant["order_id"], weight=0)
    with pytest.raises(ValidationFailed):
        repo.add_waste(order_id=plant["order_id"], type=" ", weight=1)

    repo.delete_waste(waste_id=waste.id)
    with pytest.raises(NotFound):
        repo.delete_waste(waste_id=waste.id)
    assert repo.get_recent_audit_entries()[0].category == "MERMA"


def test_return_records_are_numbered(repo, plant):
    first = repo.add_return(order_id=plant["order_id"], weight=20)
    second = repo.add_return(order_id=plant["order_id"], weight=5.5)
    assert (first.number, second.number) == ("R-001", "R-002")

    with pytest.raises(ValidationFailed):
        repo.add_return(order_id=plant["order_id"], weight=1, number="R-001")
    with pytest.raises(ValidationFailed):
        repo.update_return(return_id=second.id, number="R-001")

    repo.delete_return(return_id=first.id)
    assert repo.add_return(order_id=plant["order_id"], weight=1).number == "R-001"
    with pytest.raises(NotFound):
        repo.get_return(9999)


def test_waste_and_returns_require_classifying_order(repo):
    order = repo.create_order(code="OE-7")
    with pytest.raises(InvalidState):
        repo.add_waste(order_id=order.id, weight=1)
    with pytest.raises(InvalidState):
        repo.add_return(order_id=order.id, weight=1)


def test_weight_indicators_include_returns_and_waste(repo):
    order = repo.create_order(code="OE-8")
    repo.add_weighing(
        order_id=order.id, row=PalletWeighing(number="T-001", gross_weight=500, box_count=40, box_weight=2.5)
    )
    advance(repo, order.id, OrderState.PROCESSING, OrderState.RECEIVED, OrderState.CLASSIFYING)
    primera = repo.create_classification(order_id=order.id, type="Primera", capacity=200)
    pallet = repo.create_pallet(code="P-800", box_weight=2.0)
    repo.add_quantity_to_partial(pallet_id=pallet.id, classification_id=primera, quantity=100)
    repo.add_return(order_id=order.id, weight=20)
    repo.add_waste(order_id=order.id, weight=30)

    ind = repo.get_weight_indicators(order_id=order.id)

    assert ind.weights_by_type == {"Primera": pytest.approx(200.0)}
    assert ind.classified_weight == pytest.approx(200.0)
    assert ind.processed_weight == pytest.approx(250.0)
    assert ind.expected_weight == pytest.approx(400.0)
    assert ind.progress == pytest.approx(62.5)


def test_weight_indicators_without_weighings(repo, plant):
    ind = repo.get_weight_indicators(order_id=plant["order_id"])
    assert ind.classified_weight == pytest.approx(160.0)
    assert ind.expected_weight == 0
    assert ind.progress == 0.0
