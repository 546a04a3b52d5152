from __future__ import annotations

import math
import re
from dataclasses import replace

from packplant.core.models import PalletWeighing

WASTE_TYPES = ("GENERAL", "XL", "L", "M", "S")


def calc_tare(box_count: int | None, box_weight: float | None) -> float:
    return float(box_count or 0) * float(box_weight or 0)


def calc_net(gross: float | None, tare: float | None, pallet: float | None, skid: float | None) -> float:
    return float(gross or 0) - float(tare or 0) - float(pallet or 0) - float(skid or 0)


def recompute(row: PalletWeighing) -> PalletWeighing:
    """Refresh the derived tare and net weights of a weighing row."""
    tare = calc_tare(row.box_count, row.box_weight)
    net = calc_net(row.gross_weight, tare, row.pallet_weight, row.skid_weight)
    return replace(row, tare_weight=tare, net_weight=net)


def next_number(existing: list[str], prefix: str = "T") -> str:
    """First free <prefix>-### number; gaps left by deleted rows are reused."""
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")
    used = set()
    for number in existing:
        m = pattern.match(str(number or "").strip())
        if m and int(m.group(1)) > 0:
            used.add(int(m.group(1)))
    candidate = 1
    while candidate in used:
        candidate += 1
    return f"{prefix}-{candidate:03d}"


def next_pallet_number(existing: list[str]) -> str:
    return next_number(existing, "T")


def next_return_number(existing: list[str]) -> str:
    return next_number(existing, "R")


def validate_weighing(row: PalletWeighing) -> dict[str, str]:
    errs: dict[str, str] = {}
    if row.box_count <= 0:
        errs["box_count"] = "Debe ser mayor a 0"
    if row.box_weight <= 0:
        errs["box_weight"] = "Debe ser mayor a 0"
    if row.gross_weight <= 0:
        errs["gross_weight"] = "Debe ser mayor a 0"
    if row.pallet_weight < 0:
        errs["pallet_weight"] = "No puede ser negativo"
    if row.skid_weight < 0:
        errs["skid_weight"] = "No puede ser negativo"
    return errs


def validate_recorded_weight(weight: float | None) -> str:
    """Waste and returns: a finite weight of at least 0.01 kg. Empty string when valid."""
    try:
        value = float(weight)
    except (TypeError, ValueError):
        return "El peso es requerido"
    if not math.isfinite(value) or value < 0.01:
        return "El peso debe ser mayor a 0"
    return ""
