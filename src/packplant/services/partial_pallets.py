from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from packplant.cache.graph import CacheGraph
from packplant.core import capacity, lifecycle
from packplant.core.capacity import ValidationResult
from packplant.core.errors import ValidationFailed
from packplant.core.models import ClassificationBucket, CustomerOrderAvailability, Pallet
from packplant.data.repository import Repository

logger = logging.getLogger(__name__)

AvailabilityFetcher = Callable[[int, str, "int | None"], Awaitable["CustomerOrderAvailability | None"]]


class AddQuantityFlow:
    """Add boxes to one partial pallet under one classification.

    Order of gates: lifecycle (pallet must be partial), whole box count,
    classification bucket capacity, customer-order availability. Only when
    all pass is the relative add sent to the repository.
    """

    def __init__(
        self,
        repo: Repository,
        graph: CacheGraph,
        *,
        pallet: Pallet,
        classification_id: int,
        product_id: int | None = None,
        availability_fetcher: AvailabilityFetcher | None = None,
    ):
        self.repo = repo
        self.graph = graph
        self.pallet = pallet
        self.classification_id = classification_id
        self.product_id = product_id
        self._fetch_availability = availability_fetcher or self._fetch_from_repo
        self.availability: CustomerOrderAvailability | None = None
        self.bucket: ClassificationBucket | None = None

    async def _fetch_from_repo(
        self, customer_order_id: int, type: str, product_id: int | None
    ) -> CustomerOrderAvailability | None:
        return await asyncio.to_thread(
            lambda: self.repo.get_customer_order_availability(
                customer_order_id=customer_order_id, type=type, product_id=product_id
            )
        )

    async def load_bucket(self) -> ClassificationBucket:
        self.bucket = await asyncio.to_thread(
            lambda: self.repo.get_classification_bucket(
                classification_id=self.classification_id, box_weight=self.pallet.box_weight
            )
        )
        return self.bucket

    async def open(self) -> CustomerOrderAvailability | None:
        """Read the bucket and a fresh availability snapshot for this dialog."""
        bucket = await self.load_bucket()
        self.availability = None
        if not self.pallet.customer_orders:
            return None
        customer_order_id = self.pallet.customer_orders[0].customer_order_id
        try:
            self.availability = await self._fetch_availability(customer_order_id, bucket.type, self.product_id)
        except Exception as exc:
            # Fail open: this check must not block the operator.
            logger.warning(
                "Availability for customer order %s unavailable, skipping check: %s", customer_order_id, exc
            )
            self.availability = None
        return self.availability

    def validate(self, quantity: float) -> ValidationResult:
        if self.bucket is None:
            raise RuntimeError("open() must run before validate()")
        return capacity.validate(quantity, self.bucket, self.availability)

    async def submit(
        self, quantity: float, *, complete: bool = False, source: str = "AddQuantityFlow.submit"
    ) -> Pallet:
        lifecycle.ensure_can_add_quantity(self.pallet)
        boxes = capacity.as_box_count(quantity, entity_id=self.pallet.code)

        # Re-read the bucket right before committing: other operators may have added boxes.
        await self.load_bucket()
        result = self.validate(boxes)
        if not result.is_valid:
            raise ValidationFailed(result.message, entity_id=self.pallet.code)

        pallet = await asyncio.to_thread(
            lambda: self.repo.add_quantity_to_partial(
                pallet_id=self.pallet.id,
                classification_id=self.classification_id,
                quantity=boxes,
                complete=complete,
            )
        )
        logger.info("Added %s boxes to pallet %s (complete=%s)", boxes, pallet.code, complete)
        self.pallet = pallet
        self.graph.invalidate(source)
        self.graph.notify_updated(source, {"pallet": pallet, "quantity": boxes})
        return pallet
