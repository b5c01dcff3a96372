"""Pydantic 2 models for posqueue.

Type-safe models for the offline order queue data structures.

Hierarchy Level: 2
- Imports: PosConstants (Level 0)
- Used by: storage.py, api.py, network.py, scheduler.py, offline_queue.py, service.py

Usage:

    # Build a new order from line items
    order = PosModels.Order.create(items, is_offline=True)

    # Wire body for the remote API
    payload = order.to_request()

    # Parse API response
    result = PosModels.SubmissionResult.model_validate(response_json)
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Self

from pydantic import BaseModel, ConfigDict, Field

from posqueue.constants import PosConstants as c


def generate_order_id() -> str:
    """Generate a random UUID4 order identifier."""
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PosModels:
    """Container for all posqueue Pydantic models.

    All models are nested for clean namespace:
    - OrderItem: One order line
    - Order: Order with lifecycle status and retry bookkeeping
    - NetworkStatus: Published connectivity state
    - SubmissionResult: Remote API response
    - QueueStats: Derived pending-queue statistics
    - ProcessResult: Aggregate counts of a bulk run
    - PlacementResult: Outcome of placing a new order
    - StorageInfo: Record counts of the persistent store
    """

    class OrderItem(BaseModel):
        """One line of an order.

        Example:
            >>> item = PosModels.OrderItem(
            ...     drink_id="2",
            ...     name="Latte",
            ...     size=c.Order.Size.MEDIUM,
            ...     price=4.5,
            ...     quantity=2,
            ... )
            >>> item.line_total
            9.0

        """

        model_config = ConfigDict(frozen=True)

        id: str = Field(default_factory=generate_order_id)
        drink_id: str
        name: str = Field(min_length=1)
        size: c.Order.Size
        price: float = Field(ge=0)
        quantity: int = Field(ge=1, default=1)
        emoji: str = ""

        @property
        def line_total(self) -> float:
            """Unit price times quantity."""
            return self.price * self.quantity

        def to_request(self) -> dict[str, str | float | int]:
            """Export to the remote API line shape."""
            return {
                "name": self.name,
                "size": self.size.value,
                "price": self.price,
                "quantity": self.quantity,
            }

    class Order(BaseModel):
        """Order awaiting (or done with) remote submission.

        Frozen: the id never changes, and status or retry updates
        produce new instances via the store.
        """

        model_config = ConfigDict(frozen=True)

        id: str = Field(default_factory=generate_order_id, min_length=1)
        items: tuple[PosModels.OrderItem, ...] = Field(min_length=1)
        total_price: float = Field(ge=0)
        timestamp: datetime = Field(default_factory=_utcnow)
        status: c.Order.Status = c.Order.Status.PENDING
        retry_count: int = Field(ge=0, default=0)
        is_offline: bool = False

        @classmethod
        def create(
            cls,
            items: list[PosModels.OrderItem] | tuple[PosModels.OrderItem, ...],
            *,
            is_offline: bool = False,
        ) -> Self:
            """Create a new pending order with its total computed from items."""
            return cls(
                items=tuple(items),
                total_price=sum(item.line_total for item in items),
                is_offline=is_offline,
            )

        @property
        def computed_total(self) -> float:
            """Total recomputed from the items (do not trust total_price)."""
            return sum(item.line_total for item in self.items)

        @property
        def is_pending(self) -> bool:
            """Check if the order still awaits submission."""
            return self.status == c.Order.Status.PENDING

        @property
        def is_failed(self) -> bool:
            """Check if the order exhausted its retries."""
            return self.status == c.Order.Status.FAILED

        def to_request(self) -> dict[str, list[dict[str, str | float | int]]]:
            """Export to the remote API request body."""
            return {"items": [item.to_request() for item in self.items]}

    class NetworkStatus(BaseModel):
        """Connectivity state published by the network monitor."""

        model_config = ConfigDict(frozen=True)

        is_connected: bool
        is_internet_reachable: bool
        type: str = c.Network.TYPE_UNKNOWN

        @classmethod
        def initial(cls) -> Self:
            """Optimistic status assumed before the first check."""
            return cls(is_connected=True, is_internet_reachable=True)

        @classmethod
        def offline(cls, network_type: str = c.Network.TYPE_UNKNOWN) -> Self:
            """Fail-safe status used when connectivity cannot be determined."""
            return cls(
                is_connected=False,
                is_internet_reachable=False,
                type=network_type,
            )

    class SubmissionResult(BaseModel):
        """Result of one remote submission.

        Field aliases match the API wire shape (``orderId``).
        """

        model_config = ConfigDict(frozen=True, populate_by_name=True)

        success: bool
        order_id: str | None = Field(default=None, alias="orderId")
        message: str = ""
        timestamp: str | None = None
        timed_out: bool = False

        @property
        def failure_reason(self) -> c.Order.FailureReason | None:
            """Classify an unsuccessful result, None on success."""
            if self.success:
                return None
            if self.timed_out:
                return c.Order.FailureReason.TIMEOUT
            return c.Order.FailureReason.REJECTED

    class QueueStats(BaseModel):
        """Statistics derived from the pending collection."""

        model_config = ConfigDict(frozen=True)

        total: int = 0
        pending: int = 0
        failed: int = 0
        oldest_order: datetime | None = None

        @classmethod
        def from_orders(cls, orders: list[PosModels.Order]) -> Self:
            """Compute statistics from a pending-collection snapshot.

            Ties on the oldest timestamp resolve to the first order in
            store iteration order.
            """
            oldest: datetime | None = None
            for order in orders:
                if oldest is None or order.timestamp < oldest:
                    oldest = order.timestamp
            return cls(
                total=len(orders),
                pending=sum(1 for o in orders if o.status == c.Order.Status.PENDING),
                failed=sum(1 for o in orders if o.status == c.Order.Status.FAILED),
                oldest_order=oldest,
            )

    class ProcessResult(BaseModel):
        """Aggregate counts of one bulk processing run."""

        model_config = ConfigDict(frozen=True)

        processed: int = 0
        successful: int = 0
        failed: int = 0

    class PlacementResult(BaseModel):
        """Outcome of placing a new order."""

        model_config = ConfigDict(frozen=True)

        order: PosModels.Order
        submitted: bool
        message: str = ""
        remote_order_id: str | None = None

        @property
        def stored_offline(self) -> bool:
            """Check if the order went to the offline queue."""
            return not self.submitted

    class StorageInfo(BaseModel):
        """Record counts of the persistent store."""

        model_config = ConfigDict(frozen=True)

        offline_orders_count: int = 0
        order_history_count: int = 0
        has_settings: bool = False


for _model in (
    PosModels.Order,
    PosModels.QueueStats,
    PosModels.PlacementResult,
):
    _model.model_rebuild()
