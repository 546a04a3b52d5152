from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class OrderState(str, Enum):
    PENDING = "Pendiente"
    PROCESSING = "Procesando"
    RECEIVED = "Recibida"
    CLASSIFYING = "Clasificando"
    CLASSIFIED = "Clasificado"
    CANCELLED = "Cancelada"


class PalletStatus(str, Enum):
    PARTIAL = "PARCIAL"
    COMPLETE = "COMPLETA"


class EditState(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Order:
    id: int
    code: str
    state: OrderState
    supplier: str | None = None
    product_id: int | None = None
    product_name: str | None = None
    estimated_date: str | None = None
    registered_at: str | None = None
    received_at: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PalletClassification:
    classification_id: int
    type: str
    quantity: int
    weight: float
    lot: str | None = None

    @property
    def total_weight(self) -> float:
        return self.quantity * self.weight


@dataclass(frozen=True)
class CustomerOrderLink:
    customer_order_id: int
    code: str
    customer: str
    branch: str | None = None
    status: str | None = None


@dataclass(frozen=True)
class Pallet:
    id: int
    code: str
    status: PalletStatus
    classifications: tuple[PalletClassification, ...] = ()
    customer_orders: tuple[CustomerOrderLink, ...] = ()
    box_weight: float = 0.0
    registered_at: str | None = None
    upc: str | None = None
    notes: str | None = None

    @property
    def total_weight(self) -> float:
        return sum(c.total_weight for c in self.classifications)

    @property
    def is_assigned(self) -> bool:
        return bool(self.customer_orders)


@dataclass(frozen=True)
class ClassificationBucket:
    """Capacity already committed under one (order, type) pair."""

    order_id: int
    type: str
    capacity: float
    committed: float
    unit: str = "cajas"
    # Converts the quantity being added (boxes) into the bucket's unit.
    per_unit: float = 1.0

    @property
    def remaining(self) -> float:
        return self.capacity - self.committed

    @classmethod
    def from_entries(
        cls,
        *,
        order_id: int,
        type: str,
        capacity: float,
        entries: list[float],
        unit: str = "cajas",
        per_unit: float = 1.0,
    ) -> ClassificationBucket:
        return cls(
            order_id=order_id,
            type=type,
            capacity=float(capacity),
            committed=float(sum(entries)),
            unit=unit,
            per_unit=per_unit,
        )


@dataclass(frozen=True)
class CustomerOrderAvailability:
    customer_order_id: int
    type: str
    product_id: int | None
    required_quantity: int
    assigned_quantity: int

    @property
    def remaining(self) -> int:
        return max(self.required_quantity - self.assigned_quantity, 0)


@dataclass(frozen=True)
class PalletWeighing:
    number: str
    gross_weight: float = 0.0
    tare_weight: float = 0.0
    pallet_weight: float = 0.0
    skid_weight: float = 0.0
    net_weight: float = 0.0
    box_count: int = 42
    box_weight: float = 1.6
    notes: str = ""


@dataclass(frozen=True)
class Waste:
    """Weight discarded while classifying an order (merma)."""

    id: int
    order_id: int
    type: str
    weight: float
    notes: str = ""
    registered_at: str = ""


@dataclass(frozen=True)
class ReturnRecord:
    """Weight sent back to the supplier while classifying an order (retorno)."""

    id: int
    order_id: int
    number: str
    weight: float
    notes: str = ""
    registered_at: str = ""


@dataclass(frozen=True)
class WeightIndicators:
    weights_by_type: dict[str, float]
    returns_weight: float
    waste_weight: float
    expected_weight: float

    @property
    def classified_weight(self) -> float:
        return sum(self.weights_by_type.values())

    @property
    def processed_weight(self) -> float:
        return self.classified_weight + self.returns_weight + self.waste_weight

    @property
    def progress(self) -> float:
        if self.expected_weight <= 0:
            return 0.0
        return max(round(self.processed_weight / self.expected_weight * 100, 3), 0.0)


@dataclass(frozen=True)
class InventoryRow:
    code: str
    type: str
    total_weight: float
    customer: str
    branch: str
    lot: str
    registered_at: str
    status: str
    pallet_id: int


@dataclass(frozen=True)
class InventoryIndicators:
    total_weight: float
    assigned_pallets: int
    unassigned_pallets: int
    unassigned_weight: float


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    stored_at: float


@dataclass
class AuditEntry:
    id: int
    timestamp: str
    category: str
    message: str
    details: str | None = None
