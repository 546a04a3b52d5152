"""Order and pallet lifecycle rules.

Pure functions: they are consulted before a mutation is committed and never
change an entity themselves. The `state`/`status` field of an Order/Pallet is
replaced only after the repository accepts the change.
"""

from __future__ import annotations

from packplant.core.errors import InvalidState
from packplant.core.models import OrderState, Pallet, PalletStatus

ORDER_TRANSITIONS: dict[OrderState, tuple[OrderState, ...]] = {
    OrderState.PENDING: (OrderState.PROCESSING, OrderState.CANCELLED),
    OrderState.PROCESSING: (OrderState.RECEIVED, OrderState.CANCELLED),
    OrderState.RECEIVED: (OrderState.CLASSIFYING, OrderState.CANCELLED),
    OrderState.CLASSIFYING: (OrderState.CLASSIFIED,),
    # Terminal: a cancelled order cannot be reactivated.
    OrderState.CANCELLED: (),
    OrderState.CLASSIFIED: (),
}

PALLET_TRANSITIONS: dict[PalletStatus, tuple[PalletStatus, ...]] = {
    PalletStatus.PARTIAL: (PalletStatus.COMPLETE,),
    PalletStatus.COMPLETE: (PalletStatus.PARTIAL,),
}


def coerce_order_state(value: OrderState | str) -> OrderState:
    if isinstance(value, OrderState):
        return value
    s = str(value or "").strip()
    for state in OrderState:
        if s.lower() in {state.value.lower(), state.name.lower()}:
            return state
    raise ValueError(f"estado de orden inválido: {value!r}")


def coerce_pallet_status(value: PalletStatus | str) -> PalletStatus:
    if isinstance(value, PalletStatus):
        return value
    s = str(value or "").strip().upper()
    for status in PalletStatus:
        if s in {status.value, status.name}:
            return status
    # The back end also reports "COMPLETO" for finished pallets.
    if s == "COMPLETO":
        return PalletStatus.COMPLETE
    raise ValueError(f"estatus de tarima inválido: {value!r}")


def next_states(current: OrderState | str) -> list[OrderState]:
    return list(ORDER_TRANSITIONS[coerce_order_state(current)])


def can_transition(current: OrderState | str, target: OrderState | str) -> bool:
    try:
        source = coerce_order_state(current)
        dest = coerce_order_state(target)
    except ValueError:
        return False
    return dest in ORDER_TRANSITIONS[source]


def ensure_transition(current: OrderState | str, target: OrderState | str, *, entity_id: str | None = None) -> None:
    if not can_transition(current, target):
        raise InvalidState(
            f"Transición no permitida: {getattr(current, 'value', current)} -> {getattr(target, 'value', target)}",
            entity_id=entity_id,
        )


def can_transition_pallet(current: PalletStatus | str, target: PalletStatus | str) -> bool:
    return coerce_pallet_status(target) in PALLET_TRANSITIONS[coerce_pallet_status(current)]


def can_add_quantity(status: PalletStatus | str) -> bool:
    # Additions are relative (not idempotent), so a complete pallet never accepts one.
    return coerce_pallet_status(status) is PalletStatus.PARTIAL


def ensure_can_add_quantity(pallet: Pallet) -> None:
    if not can_add_quantity(pallet.status):
        raise InvalidState(
            f"La tarima {pallet.code} está completa; no se puede agregar cantidad",
            entity_id=pallet.code,
        )


def is_completed(state: OrderState | str) -> bool:
    return coerce_order_state(state) in {OrderState.RECEIVED, OrderState.CLASSIFIED}


def can_edit(state: OrderState | str) -> bool:
    return coerce_order_state(state) in {OrderState.PENDING, OrderState.PROCESSING}


def is_cancellable(state: OrderState | str) -> bool:
    return coerce_order_state(state) in {OrderState.PENDING, OrderState.PROCESSING, OrderState.RECEIVED}


def can_classify(state: OrderState | str) -> bool:
    return coerce_order_state(state) is OrderState.RECEIVED


def can_view_weighing(state: OrderState | str) -> bool:
    return coerce_order_state(state) is not OrderState.CANCELLED


def can_view_classification(state: OrderState | str) -> bool:
    return coerce_order_state(state) in {OrderState.CLASSIFYING, OrderState.CLASSIFIED}


def can_record_classification(state: OrderState | str) -> bool:
    """Waste and returns are recorded only while the order is being classified."""
    return coerce_order_state(state) is OrderState.CLASSIFYING
