"""Tests for RetryScheduler - per-order exponential backoff.

Tests verify:
1. Backoff delays and the retry ceiling
2. At most one outstanding retry task per order
3. Cancellation and shutdown

NO MOCKING - tests use real SQLite database in temp directory.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from posqueue.constants import PosConstants as c
from posqueue.scheduler import RetryScheduler
from posqueue.settings import PosSettings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable

    from posqueue.models import PosModels
    from posqueue.storage import OrderStore

    Order = PosModels.Order


class FireRecorder:
    """on_fire callback recording the order ids it was called with."""

    def __init__(self) -> None:
        self.fired: list[str] = []
        self.error: Exception | None = None

    async def __call__(self, order_id: str) -> None:
        self.fired.append(order_id)
        if self.error is not None:
            raise self.error


@pytest.fixture
def recorder() -> FireRecorder:
    return FireRecorder()


@pytest.fixture
async def scheduler(
    store: OrderStore,
    fast_settings: PosSettings,
    recorder: FireRecorder,
) -> AsyncGenerator[RetryScheduler, None]:
    """Return scheduler with millisecond delays."""
    s = RetryScheduler(store, fast_settings, on_fire=recorder)
    yield s
    await s.shutdown()


class TestBackoff:
    """Test delay calculation."""

    @pytest.mark.parametrize(
        ("retry_count", "expected"), [(1, 1.0), (2, 2.0), (3, 4.0), (4, 8.0)]
    )
    async def test_default_delays(
        self, store: OrderStore, retry_count: int, expected: float
    ) -> None:
        s = RetryScheduler(store, PosSettings(_env_file=None), on_fire=FireRecorder())
        assert s.delay_for(retry_count) == expected
        assert s.max_retries == c.Retry.MAX_RETRIES


class TestHandleFailure:
    """Test handle_failure()."""

    async def test_first_failure_schedules_retry(
        self,
        scheduler: RetryScheduler,
        store: OrderStore,
        recorder: FireRecorder,
        make_order: Callable[..., Order],
        wait_until: Callable[..., Awaitable[None]],
    ) -> None:
        order = make_order()
        await store.append(order)

        updated = await scheduler.handle_failure(order)

        assert updated is not None
        assert updated.retry_count == 1
        assert updated.status == c.Order.Status.PENDING
        assert scheduler.has_pending(order.id)
        assert scheduler.pending_retries == 1

        await wait_until(lambda: recorder.fired == [order.id])
        await wait_until(lambda: scheduler.pending_retries == 0)

    async def test_retry_count_is_persisted(
        self,
        scheduler: RetryScheduler,
        store: OrderStore,
        make_order: Callable[..., Order],
    ) -> None:
        order = make_order(retry_count=2)
        await store.append(order)

        await scheduler.handle_failure(order)

        stored = await store.get(order.id)
        assert stored is not None
        assert stored.retry_count == 3

    async def test_exceeding_ceiling_marks_failed(
        self,
        scheduler: RetryScheduler,
        store: OrderStore,
        recorder: FireRecorder,
        make_order: Callable[..., Order],
    ) -> None:
        """retry_count 3 -> 4 exceeds the ceiling of 3: failed, nothing scheduled."""
        order = make_order(retry_count=3)
        await store.append(order)

        updated = await scheduler.handle_failure(order)

        assert updated is not None
        assert updated.status == c.Order.Status.FAILED
        assert updated.retry_count == 4
        assert not scheduler.has_pending(order.id)

        await asyncio.sleep(0.1)
        assert recorder.fired == []

    async def test_removed_order_is_not_scheduled(
        self,
        scheduler: RetryScheduler,
        make_order: Callable[..., Order],
    ) -> None:
        order = make_order()  # never stored

        assert await scheduler.handle_failure(order) is None
        assert scheduler.pending_retries == 0


class TestScheduling:
    """Test task bookkeeping."""

    async def test_reschedule_replaces_task(
        self,
        scheduler: RetryScheduler,
        recorder: FireRecorder,
        wait_until: Callable[..., Awaitable[None]],
    ) -> None:
        scheduler.schedule("o-1", 10.0)
        scheduler.schedule("o-1", 0.01)

        assert scheduler.pending_retries == 1
        await wait_until(lambda: recorder.fired == ["o-1"])
        await asyncio.sleep(0.05)
        assert recorder.fired == ["o-1"]

    async def test_cancel(
        self, scheduler: RetryScheduler, recorder: FireRecorder
    ) -> None:
        scheduler.schedule("o-1", 0.02)

        assert scheduler.cancel("o-1") is True
        assert scheduler.cancel("o-1") is False

        await asyncio.sleep(0.05)
        assert recorder.fired == []

    async def test_cancel_all(
        self, scheduler: RetryScheduler, recorder: FireRecorder
    ) -> None:
        for order_id in ("a", "b", "c"):
            scheduler.schedule(order_id, 0.02)

        assert scheduler.cancel_all() == 3
        assert scheduler.pending_retries == 0

        await asyncio.sleep(0.05)
        assert recorder.fired == []

    async def test_fire_error_is_contained(
        self,
        scheduler: RetryScheduler,
        recorder: FireRecorder,
        wait_until: Callable[..., Awaitable[None]],
    ) -> None:
        recorder.error = RuntimeError("submit step crashed")
        scheduler.schedule("o-1", 0.0)

        await wait_until(lambda: recorder.fired == ["o-1"])
        await wait_until(lambda: scheduler.pending_retries == 0)


class TestShutdown:
    """Test shutdown()."""

    async def test_nothing_fires_after_shutdown(
        self,
        scheduler: RetryScheduler,
        store: OrderStore,
        recorder: FireRecorder,
        make_order: Callable[..., Order],
    ) -> None:
        order = make_order()
        await store.append(order)
        scheduler.schedule("o-1", 0.01)

        await scheduler.shutdown()

        assert scheduler.is_closed
        assert scheduler.pending_retries == 0
        assert await scheduler.handle_failure(order) is None
        scheduler.schedule("o-2", 0.0)
        assert scheduler.pending_retries == 0

        await asyncio.sleep(0.05)
        assert recorder.fired == []
        stored = await store.get(order.id)
        assert stored is not None
        assert stored.retry_count == 0
