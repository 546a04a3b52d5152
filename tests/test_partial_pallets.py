"""Tests for adding boxes to partial pallets."""

import asyncio

import pytest

from fixtures_packplant import make_repo, seed_plant
from packplant.cache import EventType, build_cache_graph
from packplant.core.errors import InvalidState, ValidationFailed
from packplant.services.partial_pallets import AddQuantityFlow


@pytest.fixture
def repo(tmp_path):
    return make_repo(tmp_path)


@pytest.fixture
def plant(repo):
    return seed_plant(repo)


@pytest.fixture
def graph():
    return build_cache_graph(pallet_ttl=300, summary_ttl=120)


def _flow(repo, graph, plant, **kwargs) -> AddQuantityFlow:
    return AddQuantityFlow(
        repo,
        graph,
        pallet=repo.get_pallet(plant["pallet_id"]),
        classification_id=plant["primera"],
        product_id=plant["product_id"],
        **kwargs,
    )


def test_open_reads_bucket_and_availability(repo, graph, plant):
    flow = _flow(repo, graph, plant)
    availability = asyncio.run(flow.open())
    assert availability.remaining == 15
    assert flow.bucket.remaining == 20


def test_customer_order_limit_is_reported_before_submit(repo, graph, plant):
    """20 boxes fit the bucket (80 + 20 = 100) but CO-42 only needs 15."""
    flow = _flow(repo, graph, plant)
    asyncio.run(flow.open())

    result = flow.validate(20)
    assert not result.is_valid
    assert "solo necesita 15 cajas" in result.message
    assert flow.validate(15).is_valid


def test_submit_rejects_over_availability_without_writing(repo, graph, plant):
    flow = _flow(repo, graph, plant)

    async def scenario():
        await flow.open()
        with pytest.raises(ValidationFailed):
            await flow.submit(20)

    asyncio.run(scenario())
    assert repo.get_classification_bucket(classification_id=plant["primera"]).committed == 80


def test_submit_adds_invalidates_and_notifies(repo, graph, plant):
    seen = []
    graph.bus.on_many([EventType.CACHE_INVALIDATED, EventType.DATA_UPDATED], lambda e: seen.append(e.type))
    flow = _flow(repo, graph, plant)

    async def scenario():
        await graph.caches["pallets"].get("all", lambda: asyncio.to_thread(repo.get_pallets))
        await flow.open()
        return await flow.submit(15, complete=True)

    pallet = asyncio.run(scenario())
    assert pallet.status.value == "COMPLETA"
    assert repo.get_classification_bucket(classification_id=plant["primera"]).committed == 95
    assert graph.caches["pallets"].peek("all") is None
    assert seen == [EventType.CACHE_INVALIDATED, EventType.DATA_UPDATED]


def test_complete_pallet_fails_fast(repo, graph, plant):
    repo.add_quantity_to_partial(
        pallet_id=plant["pallet_id"], classification_id=plant["primera"], quantity=1, complete=True
    )
    calls = []

    class SpyRepo:
        def __getattr__(self, name):
            calls.append(name)
            return getattr(repo, name)

    flow = AddQuantityFlow(
        SpyRepo(), graph, pallet=repo.get_pallet(plant["pallet_id"]), classification_id=plant["primera"]
    )

    with pytest.raises(InvalidState):
        asyncio.run(flow.submit(1))
    assert calls == []


def test_zero_quantity_is_rejected(repo, graph, plant):
    flow = _flow(repo, graph, plant)

    async def scenario():
        await flow.open()
        with pytest.raises(ValidationFailed) as exc:
            await flow.submit(0)
        return exc.value

    err = asyncio.run(scenario())
    assert err.message == "Debes ingresar una cantidad válida mayor a 0"


def test_availability_failure_fails_open(repo, graph, plant):
    async def broken(customer_order_id, type, product_id):
        raise ConnectionError("servicio de pedidos caído")

    flow = _flow(repo, graph, plant, availability_fetcher=broken)

    async def scenario():
        assert await flow.open() is None
        assert flow.validate(20).is_valid
        return await flow.submit(20)

    pallet = asyncio.run(scenario())
    primera = [c for c in pallet.classifications if c.type == "Primera"][0]
    assert primera.quantity == 100


def test_bucket_is_reread_before_commit(repo, graph, plant):
    """Another operator filling the bucket after the dialog opened blocks the add."""
    other = repo.create_pallet(code="P-002", box_weight=2.0)
    flow = _flow(repo, graph, plant, availability_fetcher=_no_availability)

    async def scenario():
        await flow.open()
        assert flow.validate(10).is_valid
        repo.add_quantity_to_partial(pallet_id=other.id, classification_id=plant["primera"], quantity=15)
        with pytest.raises(ValidationFailed) as exc:
            await flow.submit(10)
        return exc.value

    err = asyncio.run(scenario())
    assert "Disponible: 5 cajas" in err.message


def test_unlinked_pallet_skips_availability(repo, graph, plant):
    pallet = repo.create_pallet(code="P-003", box_weight=2.0)
    fetched = []

    async def fetcher(*args):
        fetched.append(args)

    flow = AddQuantityFlow(repo, graph, pallet=pallet, classification_id=plant["primera"], availability_fetcher=fetcher)
    assert asyncio.run(flow.open()) is None
    assert fetched == []


def test_validate_requires_open(repo, graph, plant):
    with pytest.raises(RuntimeError):
        _flow(repo, graph, plant).validate(1)


async def _no_availability(customer_order_id, type, product_id):
    return None


@pytest.mark.parametrize("quantity", [2.7, 0.4, float("nan"), 1001])
def test_malformed_box_count_is_rejected_without_writing(repo, graph, plant, quantity):
    flow = _flow(repo, graph, plant, availability_fetcher=_no_availability)

    async def scenario():
        await flow.open()
        assert not flow.validate(quantity).is_valid
        with pytest.raises(ValidationFailed):
            await flow.submit(quantity)

    asyncio.run(scenario())
    assert repo.get_classification_bucket(classification_id=plant["primera"]).committed == 80


def test_whole_float_box_count_is_added_exactly(repo, graph, plant):
    flow = _flow(repo, graph, plant, availability_fetcher=_no_availability)

    async def scenario():
        await flow.open()
        return await flow.submit(3.0)

    asyncio.run(scenario())
    assert repo.get_classification_bucket(classification_id=plant["primera"]).committed == 83
