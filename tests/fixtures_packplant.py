"""Shared plant data for repository and service tests.

Order OE-001 (Mango Ataulfo) is classifying with a "Primera" bucket of 100
boxes. Pallet P-001 (2 kg/box) already holds 80 of those boxes and is
assigned to customer order CO-42, which needs 95 boxes of Primera in total,
so CO-42 still needs 15.
"""

from packplant.core.models import OrderState
from packplant.data.db import Db
from packplant.data.repository import Repository


def make_repo(tmp_path) -> Repository:
    db = Db(tmp_path / "packplant.db")
    db.ensure_schema()
    return Repository(db)


def advance(repo: Repository, order_id: int, *targets: OrderState) -> None:
    for target in targets:
        repo.change_order_state(order_id=order_id, target=target)


def seed_plant(repo: Repository) -> dict:
    product_id = repo.create_product(code="MANGO-ATA", name="Mango Ataulfo")
    order = repo.create_order(code="OE-001", supplier="Huerta Norte", product_id=product_id)
    advance(repo, order.id, OrderState.PROCESSING, OrderState.RECEIVED, OrderState.CLASSIFYING)

    primera = repo.create_classification(order_id=order.id, type="Primera", capacity=100, lot="L-01")
    segunda = repo.create_classification(order_id=order.id, type="Segunda", capacity=500, unit="kg")

    pallet = repo.create_pallet(code="P-001", box_weight=2.0, registered_at="2026-10-19")
    repo.add_quantity_to_partial(pallet_id=pallet.id, classification_id=primera, quantity=80)

    customer_order_id = repo.create_customer_order(
        code="CO-42", customer="Mercado Central", branch="CDMX", lines=[("Primera", product_id, 95)]
    )
    repo.assign_pallet(pallet_id=pallet.id, customer_order_id=customer_order_id)

    return {
        "product_id": product_id,
        "order_id": order.id,
        "primera": primera,
        "segunda": segunda,
        "pallet_id": pallet.id,
        "customer_order_id": customer_order_id,
    }
