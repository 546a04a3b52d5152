"""Two-stage capacity check used before adding boxes to a partial pallet.

1. Classification bucket: the (order, type) running total must stay within
   its declared capacity.
2. Customer-order availability: only when the pallet is linked to a customer
   order and an availability snapshot could be fetched.

Checks run in that order and the first failure wins. Both bounds are
inclusive: adding exactly what remains is valid.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from packplant.core.errors import ValidationFailed
from packplant.core.models import ClassificationBucket, CustomerOrderAvailability

_EPSILON = 1e-9
WARNING_PROGRESS_PCT = 95.0
MAX_BOXES_PER_ADD = 1000


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    message: str = ""
    remaining: float | None = None
    warning: str = ""


def _fmt(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def check_quantity(quantity_to_add: float) -> ValidationResult:
    """Input shape of a box count: a finite whole number in 1..MAX_BOXES_PER_ADD."""
    if quantity_to_add is None or isinstance(quantity_to_add, bool):
        return ValidationResult(False, "Debes ingresar una cantidad válida mayor a 0")
    try:
        value = float(quantity_to_add)
    except (TypeError, ValueError):
        return ValidationResult(False, "La cantidad debe ser un número")
    if not math.isfinite(value):
        return ValidationResult(False, "La cantidad debe ser un número")
    if value <= 0:
        return ValidationResult(False, "Debes ingresar una cantidad válida mayor a 0")
    if not value.is_integer():
        return ValidationResult(False, "La cantidad debe ser un número entero de cajas")
    if value > MAX_BOXES_PER_ADD:
        return ValidationResult(False, f"No se pueden agregar más de {MAX_BOXES_PER_ADD:,} cajas a la vez")
    return ValidationResult(True)


def as_box_count(quantity_to_add: float, *, entity_id: str | None = None) -> int:
    result = check_quantity(quantity_to_add)
    if not result.is_valid:
        raise ValidationFailed(result.message, entity_id=entity_id)
    return int(float(quantity_to_add))


def check_classification(quantity_to_add: float, bucket: ClassificationBucket) -> ValidationResult:
    amount = quantity_to_add * bucket.per_unit
    remaining = bucket.remaining
    if bucket.committed + amount > bucket.capacity + _EPSILON:
        return ValidationResult(
            False,
            (
                f"No se puede agregar más a la clasificación {bucket.type}: el límite es de "
                f"{_fmt(bucket.capacity)} {bucket.unit}. Disponible: {_fmt(max(remaining, 0))} {bucket.unit}"
            ),
            remaining=remaining,
        )

    warning = ""
    if bucket.capacity > 0:
        progress = (bucket.committed + amount) / bucket.capacity * 100
        if progress > WARNING_PROGRESS_PCT:
            warning = f"Advertencia: al agregar esto el progreso será del {progress:.1f}%"
    return ValidationResult(True, remaining=remaining, warning=warning)


def check_availability(quantity_to_add: float, availability: CustomerOrderAvailability | None) -> ValidationResult:
    if availability is None:
        # Could not be fetched: do not block the operator.
        return ValidationResult(True)
    remaining = availability.remaining
    if quantity_to_add > remaining + _EPSILON:
        return ValidationResult(
            False,
            (
                f"El pedido del cliente solo necesita {_fmt(remaining)} cajas más de tipo "
                f"{availability.type}; no se pueden agregar {_fmt(quantity_to_add)}"
            ),
            remaining=remaining,
        )
    return ValidationResult(True, remaining=remaining)


def validate(
    quantity_to_add: float,
    bucket: ClassificationBucket,
    availability: CustomerOrderAvailability | None = None,
) -> ValidationResult:
    result = check_quantity(quantity_to_add)
    if not result.is_valid:
        return result

    classification = check_classification(quantity_to_add, bucket)
    if not classification.is_valid:
        return classification

    order = check_availability(quantity_to_add, availability)
    if not order.is_valid:
        return order

    return ValidationResult(True, remaining=classification.remaining, warning=classification.warning)


def ensure_valid(
    quantity_to_add: float,
    bucket: ClassificationBucket,
    availability: CustomerOrderAvailability | None = None,
) -> ValidationResult:
    result = validate(quantity_to_add, bucket, availability)
    if not result.is_valid:
        raise ValidationFailed(result.message)
    return result


def progress_info(bucket: ClassificationBucket) -> dict:
    progress = (bucket.committed / bucket.capacity * 100) if bucket.capacity > 0 else 0.0
    return {
        "progress": progress,
        "remaining": bucket.remaining,
        "committed": bucket.committed,
        "capacity": bucket.capacity,
        "unit": bucket.unit,
    }
