import pytest

from packplant.core.models import PalletWeighing
from packplant.core.weighing import (
    calc_net,
    calc_tare,
    next_pallet_number,
    next_return_number,
    recompute,
    validate_recorded_weight,
    validate_weighing,
)


def test_tare_and_net():
    assert calc_tare(42, 1.5) == pytest.approx(63.0)
    assert calc_tare(None, 1.5) == 0.0
    assert calc_net(1000, 63, 25, 5) == pytest.approx(907.0)
    assert calc_net(None, None, None, None) == 0.0


def test_recompute_updates_derived_fields():
    row = recompute(PalletWeighing(number="T-001", gross_weight=900, box_count=40, box_weight=2, pallet_weight=20))
    assert row.tare_weight == pytest.approx(80)
    assert row.net_weight == pytest.approx(800)


@pytest.mark.parametrize(
    "existing,expected",
    [
        ([], "T-001"),
        (["T-001", "T-002"], "T-003"),
        (["T-001", "T-003"], "T-002"),
        (["T-002", "X-9", "", "T-000"], "T-001"),
        (["T-001", "T-002", "T-1000"], "T-003"),
    ],
)
def test_next_pallet_number_fills_gaps(existing, expected):
    assert next_pallet_number(existing) == expected


def test_validate_weighing():
    ok = PalletWeighing(number="T-001", gross_weight=500)
    assert validate_weighing(ok) == {}

    bad = PalletWeighing(number="T-002", gross_weight=0, box_count=0, pallet_weight=-1)
    errs = validate_weighing(bad)
    assert set(errs) == {"gross_weight", "box_count", "pallet_weight"}


def test_return_numbers_use_their_own_sequence():
    assert next_return_number(["T-001", "R-001", "R-003"]) == "R-002"
    assert next_return_number([]) == "R-001"


@pytest.mark.parametrize(
    "weight,message",
    [
        (12.5, ""),
        (0.01, ""),
        (0, "El peso debe ser mayor a 0"),
        (float("nan"), "El peso debe ser mayor a 0"),
        (None, "El peso es requerido"),
    ],
)
def test_validate_recorded_weight(weight, message):
    assert validate_recorded_weight(weight) == message
