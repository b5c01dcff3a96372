"""Offline order queue orchestrator for posqueue.

Top-level driver of offline order delivery:

1. process() reads ONE snapshot of the pending orders
2. pending orders are submitted SEQUENTIALLY with a fixed pause between
   submissions (client-side rate limit, no concurrency across orders)
3. success: order removed from the queue, archived in the history, its
   retry task cancelled
4. failure: order handed to the RetryScheduler, whose task later re-runs
   the same submit_one() step

Concurrency guarantees:
- process() is single-flight: a call during a run returns zero counts and
  does no work
- submit_one() holds a per-order in-flight guard shared by the bulk run and
  retry tasks, so one order is never submitted twice at the same time
- close() lets in-flight submissions settle (a confirmed delivery is
  always archived), then no retry fires and no order is mutated

Hierarchy Level: 5
- Imports: PosConstants, PosSettings, PosModels, OrderStore, RetryScheduler
- Used by: service.py, __main__.py

Usage:
    queue = OfflineQueue(store, api_client, config)
    await queue.add(order)
    result = await queue.process()
    stats = await queue.stats()
    await queue.close()
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from posqueue.constants import PosConstants as c
from posqueue.exceptions import StorageError, SubmissionError
from posqueue.models import PosModels
from posqueue.scheduler import RetryScheduler
from posqueue.settings import PosSettings

if TYPE_CHECKING:
    from posqueue.protocols import SubmissionClient
    from posqueue.storage import OrderStore

log = logging.getLogger(__name__)

Order = PosModels.Order


class OfflineQueue:
    """Delivers stored orders exactly once with bounded, backed-off retries.

    Each instance owns its single-flight flag, in-flight set and retry
    scheduler, so independent instances never interfere.
    """

    def __init__(
        self,
        store: OrderStore,
        client: SubmissionClient,
        config: PosSettings | None = None,
    ) -> None:
        """Initialize offline queue.

        Args:
            store: Persistent order store.
            client: Remote submission client.
            config: PosSettings (process_interval and retry_* settings).

        """
        self._store = store
        self._client = client
        self._settings = config or PosSettings()
        self._scheduler = RetryScheduler(store, self._settings, on_fire=self.submit_one)
        self._processing = False
        self._in_flight: set[str] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

    @property
    def is_processing(self) -> bool:
        """Check if a bulk run is in progress."""
        return self._processing

    @property
    def is_closed(self) -> bool:
        """Check if the queue was closed."""
        return self._closed

    @property
    def scheduler(self) -> RetryScheduler:
        """Get the retry scheduler."""
        return self._scheduler

    @property
    def store(self) -> OrderStore:
        """Get the order store."""
        return self._store

    # =========================================================================
    # BULK PROCESSING
    # =========================================================================

    async def process(self) -> PosModels.ProcessResult:
        """Submit every pending order once, sequentially.

        Failed orders are skipped until retry_failed() resets them.
        Per-order failures are counted, never raised.

        Returns:
            Aggregate counts; all zero if a run was already in progress.

        """
        if self._processing:
            log.info("Already processing offline orders")
            return PosModels.ProcessResult()
        if self._closed:
            return PosModels.ProcessResult()

        self._processing = True
        processed = successful = failed = 0
        try:
            try:
                snapshot = await self._store.list_orders()
            except StorageError:
                log.exception("Failed to process offline orders")
                snapshot = []

            batch = [order for order in snapshot if order.is_pending]
            if not batch:
                log.info("No offline orders to process")
            else:
                log.info("Processing %d offline orders", len(batch))

            for index, order in enumerate(batch):
                if self._closed:
                    break
                if index:
                    await asyncio.sleep(self._settings.process_interval)

                try:
                    outcome = await self.submit_one(order.id)
                except StorageError:
                    log.exception("Error processing order %s", order.id)
                    outcome = False

                if outcome is None:
                    continue
                processed += 1
                if outcome:
                    successful += 1
                else:
                    failed += 1

            if batch:
                log.info(
                    "Offline orders processed: %d successful, %d failed",
                    successful,
                    failed,
                )
        finally:
            self._processing = False

        return PosModels.ProcessResult(
            processed=processed,
            successful=successful,
            failed=failed,
        )

    # =========================================================================
    # SINGLE-ORDER SUBMIT STEP
    # =========================================================================

    async def submit_one(self, order_id: str) -> bool | None:
        """Submit one stored order and settle its outcome.

        Used by process() and by retry tasks. Reads the current order state
        from the store before submitting.

        Args:
            order_id: Order to submit.

        Returns:
            True on success, False on failure, None if skipped (closed, no
            longer pending, or already being submitted).

        Raises:
            StorageError: If the outcome cannot be persisted.

        """
        if self._closed:
            return None
        if order_id in self._in_flight:
            log.debug("Order %s already in flight, skipping", order_id)
            return None

        self._in_flight.add(order_id)
        self._idle.clear()
        try:
            order = await self._store.get(order_id)
            if order is None or not order.is_pending:
                return None
            return await self._attempt(order)
        finally:
            self._in_flight.discard(order_id)
            if not self._in_flight:
                self._idle.set()

    async def _attempt(self, order: Order) -> bool:
        log.info("Processing order %s", order.id)
        try:
            result = await self._client.submit_order(order)
        except Exception as e:  # noqa: BLE001 - any client error is retryable
            log.warning("Error submitting order %s: %s", order.id, e)
            result = PosModels.SubmissionResult(
                success=False,
                message=str(e) or c.Network.UNEXPECTED_MESSAGE,
            )

        if result.success:
            self._scheduler.cancel(order.id)
            archived = order.model_copy(
                update={"status": c.Order.Status.SUBMITTED, "is_offline": False},
            )
            await self._store.archive(archived)
            log.info("Order %s submitted successfully", order.id)
            return True

        error = SubmissionError.from_result(
            result,
            order_id=order.id,
            timeout=self._settings.api_timeout,
        )
        log.warning("Order %s submission failed: %s", order.id, error)
        await self._scheduler.handle_failure(order)
        return False

    # =========================================================================
    # CONTROL OPERATIONS
    # =========================================================================

    async def add(self, order: Order) -> None:
        """Store a new pending order.

        Raises:
            StorageError: If the order cannot be stored.

        """
        await self._store.append(order)
        log.info("Added offline order %s", order.id)

    async def retry_failed(self) -> PosModels.ProcessResult:
        """Reset every failed order to pending/0 retries, then process().

        Raises:
            StorageError: If the reset cannot be stored.

        """
        reset_ids = await self._store.reset_failed()
        if reset_ids:
            log.info("Force retrying %d failed orders", len(reset_ids))
        else:
            log.info("No failed orders to retry")
        return await self.process()

    async def remove(self, order_id: str) -> bool:
        """Cancel the retry of one order and drop it from the queue.

        Returns:
            True if an order was removed.

        """
        self._scheduler.cancel(order_id)
        removed = await self._store.remove(order_id)
        if removed:
            log.info("Removed offline order %s", order_id)
        return removed

    async def clear(self) -> None:
        """Cancel every retry task and delete all pending orders."""
        self._scheduler.cancel_all()
        await self._store.clear()
        log.info("Cleared all offline orders")

    async def close(self) -> None:
        """Stop new submissions, settle in-flight ones, cancel every retry.

        A submission already sent when close() is called is awaited, and its
        outcome is stored like any other.
        """
        self._closed = True
        await self._idle.wait()
        await self._scheduler.shutdown()

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def stats(self) -> PosModels.QueueStats:
        """Compute queue statistics from the current pending collection."""
        return PosModels.QueueStats.from_orders(await self._store.list_orders())

    async def orders(self) -> list[Order]:
        """Return the pending collection."""
        return await self._store.list_orders()

    async def history(self) -> list[Order]:
        """Return archived orders, newest first."""
        return await self._store.list_history()

    def processing_status(self) -> dict[str, bool | int]:
        """Return the bulk-run flag and the number of outstanding retries."""
        return {
            "is_processing": self._processing,
            "pending_retries": self._scheduler.pending_retries,
        }
