"""Backoff/retry scheduler for posqueue.

Owns at most one cancellable delayed retry task per order id. On a failed
submission it bumps the order's retry_count, either marks the order failed
(retry ceiling exceeded) or persists the new count and schedules a task that
re-runs the queue's single-order submit step after an exponential delay.

Delay for retry n (1-indexed):
    min(retry_initial_delay * retry_exponential_base ** (n - 1), retry_max_delay)

With defaults: 1s, 2s, 4s, then the order fails on the 4th failure.

Hierarchy Level: 4
- Imports: PosConstants, PosSettings, OrderStore, exceptions
- Used by: offline_queue.py

Usage:
    scheduler = RetryScheduler(store, config, on_fire=queue.submit_one)
    await scheduler.handle_failure(order)
    scheduler.cancel(order.id)
    await scheduler.shutdown()
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import TYPE_CHECKING

from posqueue.constants import PosConstants as c
from posqueue.exceptions import MaxRetriesExceededError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from posqueue.models import PosModels
    from posqueue.settings import PosSettings
    from posqueue.storage import OrderStore

log = logging.getLogger(__name__)


class RetryScheduler:
    """Per-order exponential backoff with a retry ceiling."""

    def __init__(
        self,
        store: OrderStore,
        config: PosSettings,
        on_fire: Callable[[str], Awaitable[object]],
    ) -> None:
        """Initialize retry scheduler.

        Args:
            store: Store holding the pending orders.
            config: PosSettings with retry_* settings.
            on_fire: Single-order submit step, called with the order id.

        """
        self._store = store
        self._settings = config
        self._on_fire = on_fire
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._closed = False

    @property
    def max_retries(self) -> int:
        """Retry ceiling."""
        return self._settings.retry_max_attempts

    @property
    def pending_retries(self) -> int:
        """Number of outstanding retry tasks."""
        return len(self._tasks)

    @property
    def is_closed(self) -> bool:
        """Check if the scheduler was shut down."""
        return self._closed

    def has_pending(self, order_id: str) -> bool:
        """Check if an order has an outstanding retry task."""
        return order_id in self._tasks

    def delay_for(self, retry_count: int) -> float:
        """Backoff delay in seconds before retry number ``retry_count``."""
        return self._settings.calculate_retry_delay(retry_count)

    async def handle_failure(
        self,
        order: PosModels.Order,
    ) -> PosModels.Order | None:
        """Record a failed submission and schedule the next attempt.

        Args:
            order: Order as it was when the attempt started.

        Returns:
            The updated order, or None if it left the pending store meanwhile.

        Raises:
            StorageError: If the new retry state cannot be persisted.

        """
        if self._closed:
            return None

        retry_count = order.retry_count + 1

        if retry_count > self.max_retries:
            error = MaxRetriesExceededError(order.id, retry_count, self.max_retries)
            log.warning("%s, marking as failed", error)
            self.cancel(order.id)
            return await self._store.update_fields(
                order.id,
                status=c.Order.Status.FAILED,
                retry_count=retry_count,
            )

        delay = self.delay_for(retry_count)
        updated = await self._store.update_fields(order.id, retry_count=retry_count)
        if updated is None:
            log.debug("Order %s left the queue, not scheduling retry", order.id)
            return None

        log.info(
            "Scheduling retry %d/%d for order %s in %.2fs",
            retry_count,
            self.max_retries,
            order.id,
            delay,
        )
        self.schedule(order.id, delay)
        return updated

    def schedule(self, order_id: str, delay: float) -> None:
        """Schedule a retry, replacing any outstanding one for the same order."""
        if self._closed:
            return

        self.cancel(order_id)
        task = asyncio.create_task(self._fire(order_id, delay))
        self._tasks[order_id] = task
        task.add_done_callback(lambda t: self._forget(order_id, t))

    def _forget(self, order_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(order_id) is task:
            del self._tasks[order_id]

    async def _fire(self, order_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._closed:
            return
        log.info("Retrying order %s", order_id)
        try:
            await self._on_fire(order_id)
        except Exception:
            log.exception("Retry of order %s failed", order_id)

    def cancel(self, order_id: str) -> bool:
        """Cancel the outstanding retry of one order.

        A retry task never cancels itself; it finishes its own attempt.

        Returns:
            True if a task was cancelled.

        """
        task = self._tasks.pop(order_id, None)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()
            log.debug("Cleared retry task for order %s", order_id)
        return True

    def cancel_all(self) -> int:
        """Cancel and discard every outstanding retry task.

        Returns:
            Number of tasks cancelled.

        """
        tasks = list(self._tasks.values())
        self._tasks.clear()
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        if tasks:
            log.info("Cleared %d retry tasks", len(tasks))
        return len(tasks)

    async def shutdown(self) -> None:
        """Cancel every retry and wait until none of them can run.

        After shutdown no retry fires and no order is mutated by this
        scheduler.
        """
        self._closed = True
        tasks = list(self._tasks.values())
        self.cancel_all()
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                with suppress(asyncio.CancelledError):
                    await task
