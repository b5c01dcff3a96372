"""Tests for PosModels - order data structures.

Tests verify:
1. Order creation, totals and wire shape
2. Immutability of orders
3. SubmissionResult parsing from the API shape
4. QueueStats derivation
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from posqueue.constants import PosConstants as c
from posqueue.models import PosModels, generate_order_id

if TYPE_CHECKING:
    from collections.abc import Callable

Order = PosModels.Order


class TestOrderItem:
    """Test OrderItem model."""

    def test_line_total(self, make_item: Callable[..., PosModels.OrderItem]) -> None:
        item = make_item(price=4.5, quantity=2)
        assert item.line_total == 9.0

    def test_to_request_shape(
        self, make_item: Callable[..., PosModels.OrderItem]
    ) -> None:
        item = make_item("Espresso", 3.0, 1, c.Order.Size.SMALL)
        assert item.to_request() == {
            "name": "Espresso",
            "size": "small",
            "price": 3.0,
            "quantity": 1,
        }

    @pytest.mark.parametrize(
        "fields",
        [{"price": -1.0}, {"quantity": 0}, {"size": "huge"}, {"name": ""}],
    )
    def test_invalid_line_rejected(self, fields: dict[str, object]) -> None:
        data = {
            "drink_id": "1",
            "name": "Latte",
            "size": "medium",
            "price": 4.5,
            "quantity": 1,
        }
        with pytest.raises(ValidationError):
            PosModels.OrderItem.model_validate(data | fields)


class TestOrder:
    """Test Order model."""

    def test_create_sets_defaults(
        self, make_item: Callable[..., PosModels.OrderItem]
    ) -> None:
        order = Order.create([make_item(price=4.5, quantity=2)], is_offline=True)

        assert order.status == c.Order.Status.PENDING
        assert order.retry_count == 0
        assert order.is_offline is True
        assert order.total_price == 9.0
        assert order.timestamp.tzinfo is not None
        assert order.is_pending
        assert not order.is_failed

    def test_ids_are_unique(self, make_order: Callable[..., Order]) -> None:
        ids = {make_order().id for _ in range(50)}
        assert len(ids) == 50

    def test_empty_items_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Order.create([])

    def test_order_is_frozen(self, make_order: Callable[..., Order]) -> None:
        order = make_order()
        with pytest.raises(ValidationError):
            order.status = c.Order.Status.FAILED  # type: ignore[misc]

    def test_computed_total_ignores_stored_total(
        self, make_order: Callable[..., Order]
    ) -> None:
        """Consumers recompute the total from the items."""
        order = make_order(total_price=999.0)
        assert order.computed_total == 4.5 + 5.0 * 2

    def test_to_request_sends_only_items(
        self, make_order: Callable[..., Order]
    ) -> None:
        payload = make_order().to_request()
        assert list(payload) == ["items"]
        assert [line["name"] for line in payload["items"]] == ["Latte", "Mocha"]

    def test_json_dump_is_revalidated_unchanged(
        self, make_order: Callable[..., Order]
    ) -> None:
        order = make_order(retry_count=2, status=c.Order.Status.FAILED)
        assert Order.model_validate(order.model_dump(mode="json")) == order


class TestIdentifiers:
    """Test id helpers."""

    def test_order_id_is_uuid4(self) -> None:
        order_id = generate_order_id()
        assert len(order_id) == 36
        assert order_id[14] == "4"


class TestNetworkStatus:
    """Test NetworkStatus factories."""

    def test_initial_is_optimistic(self) -> None:
        status = PosModels.NetworkStatus.initial()
        assert status.is_connected
        assert status.is_internet_reachable
        assert status.type == c.Network.TYPE_UNKNOWN

    def test_offline(self) -> None:
        status = PosModels.NetworkStatus.offline()
        assert not status.is_connected
        assert not status.is_internet_reachable

    def test_equality_compares_all_fields(self) -> None:
        a = PosModels.NetworkStatus(is_connected=True, is_internet_reachable=True)
        b = PosModels.NetworkStatus(is_connected=True, is_internet_reachable=False)
        assert a != b
        assert a == PosModels.NetworkStatus.initial()


class TestSubmissionResult:
    """Test SubmissionResult model."""

    def test_parses_api_shape(self) -> None:
        result = PosModels.SubmissionResult.model_validate(
            {
                "success": True,
                "orderId": "A-17",
                "message": "Order received",
                "timestamp": "2025-01-01T10:00:00Z",
            }
        )
        assert result.order_id == "A-17"
        assert result.failure_reason is None

    def test_failure_reason(self) -> None:
        timeout = PosModels.SubmissionResult(success=False, timed_out=True)
        rejected = PosModels.SubmissionResult(success=False, message="Bad order")
        assert timeout.failure_reason == c.Order.FailureReason.TIMEOUT
        assert rejected.failure_reason == c.Order.FailureReason.REJECTED


class TestQueueStats:
    """Test QueueStats derivation."""

    def test_empty(self) -> None:
        stats = PosModels.QueueStats.from_orders([])
        assert (stats.total, stats.pending, stats.failed) == (0, 0, 0)
        assert stats.oldest_order is None

    def test_counts_and_oldest(self, make_order: Callable[..., Order]) -> None:
        now = datetime.now(UTC)
        orders = [
            make_order(timestamp=now),
            make_order(timestamp=now - timedelta(minutes=5)),
            make_order(
                timestamp=now - timedelta(minutes=1),
                status=c.Order.Status.FAILED,
            ),
        ]

        stats = PosModels.QueueStats.from_orders(orders)

        assert stats.total == 3
        assert stats.pending == 2
        assert stats.failed == 1
        assert stats.oldest_order == now - timedelta(minutes=5)

    @given(
        statuses=st.lists(
            st.sampled_from([c.Order.Status.PENDING, c.Order.Status.FAILED]),
            max_size=20,
        )
    )
    def test_pending_plus_failed_is_total(
        self, statuses: list[c.Order.Status]
    ) -> None:
        item = PosModels.OrderItem(
            drink_id="1", name="Latte", size=c.Order.Size.SMALL, price=3.0
        )
        orders = [
            Order.create([item]).model_copy(update={"status": status})
            for status in statuses
        ]
        stats = PosModels.QueueStats.from_orders(orders)
        assert stats.pending + stats.failed == stats.total == len(statuses)
