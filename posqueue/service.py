"""Presentation-facing order service for posqueue.

Wires the order store, the API client, the network monitor and the offline
queue together and exposes the operations a point-of-sale front end calls:

- place_order(): submit online, or keep the order offline
- add/remove/clear offline orders, queue statistics
- process_offline_orders() / retry_failed_orders() on demand
- automatic processing when connectivity returns (after order_sync_delay)
- refresh_network_status(), is_checking, is_processing

Hierarchy Level: 6
- Imports: all lower levels
- Used by: __main__.py, front ends

Usage:
    async with PosOrderService(PosSettings()) as service:
        placement = await service.place_order(items)
        stats = await service.get_queue_stats()
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import TYPE_CHECKING, Self

from posqueue.api import OrderApiClient
from posqueue.constants import PosConstants as c
from posqueue.exceptions import EmptyOrderError, PosQueueError
from posqueue.models import PosModels
from posqueue.network import HttpConnectivityProbe, NetworkMonitor
from posqueue.offline_queue import OfflineQueue
from posqueue.settings import PosSettings
from posqueue.storage import OrderStore

if TYPE_CHECKING:
    from collections.abc import Sequence

    from posqueue.protocols import ConnectivityProbe, SubmissionClient

log = logging.getLogger(__name__)

_SAVED_OFFLINE_MSG = "Order saved offline. Will submit when connection is restored"
_RETRY_LATER_MSG = "Order saved offline. Will retry when connection improves"


class PosOrderService:
    """Order entry service with guaranteed offline delivery."""

    def __init__(
        self,
        config: PosSettings | None = None,
        *,
        store: OrderStore | None = None,
        client: SubmissionClient | None = None,
        probe: ConnectivityProbe | None = None,
    ) -> None:
        """Initialize order service.

        Collaborators not passed in are built from settings and owned (closed)
        by the service.

        Args:
            config: PosSettings; loaded from the environment when omitted.
            store: Persistent order store.
            client: Remote submission client.
            probe: Connectivity probe for the network monitor.

        """
        self._settings = config or PosSettings()
        self._store = store or OrderStore.from_settings(self._settings)
        self._owned: list[OrderApiClient | HttpConnectivityProbe] = []

        if client is None:
            api = OrderApiClient.from_settings(self._settings)
            self._owned.append(api)
            client = api
        self._client = client

        if probe is None:
            http_probe = HttpConnectivityProbe(
                self._settings.api_base_url,
                self._settings.api_timeout,
            )
            self._owned.append(http_probe)
            probe = http_probe

        self._monitor = NetworkMonitor(probe, self._settings.network_check_interval)
        self._queue = OfflineQueue(self._store, self._client, self._settings)
        self._sync_handle: asyncio.TimerHandle | None = None
        self._sync_task: asyncio.Task[None] | None = None
        self._started = False
        self._closed = False

        self._monitor.add_listener(self._on_network_change)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Open the store, start network monitoring and auto-processing."""
        if self._started:
            return
        await self._store.initialize()
        await self._monitor.start()
        self._started = True
        if self._monitor.is_connected:
            self._schedule_sync()

    async def close(self) -> None:
        """Stop monitoring, cancel every retry and release resources.

        After close() no retry fires and no order is mutated.
        """
        if self._closed:
            return
        self._closed = True
        await self._monitor.stop()
        self._cancel_pending_sync()
        await self._queue.close()
        if self._sync_task is not None:
            with suppress(asyncio.CancelledError):
                await self._sync_task
        for resource in self._owned:
            await resource.close()
        await self._store.close()
        log.info("Order service closed")

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Async context manager exit."""
        await self.close()

    # =========================================================================
    # AUTO-PROCESSING ON RECONNECT
    # =========================================================================

    def _on_network_change(self, status: PosModels.NetworkStatus) -> None:
        if status.is_connected:
            self._schedule_sync()
        else:
            self._cancel_pending_sync()

    def _schedule_sync(self) -> None:
        if not self._settings.enable_auto_process or self._closed:
            return
        if self._sync_handle is not None or self.sync_running:
            return
        # Let the connection settle before draining the queue
        loop = asyncio.get_running_loop()
        self._sync_handle = loop.call_later(
            self._settings.order_sync_delay,
            self._start_sync,
        )

    def _cancel_pending_sync(self) -> None:
        """Cancel an auto-processing run still waiting for its delay.

        A run already submitting is never interrupted mid-order.
        """
        if self._sync_handle is not None:
            self._sync_handle.cancel()
            self._sync_handle = None
            log.debug("Auto-processing cancelled, network lost")

    def _start_sync(self) -> None:
        self._sync_handle = None
        if self._closed:
            return
        self._sync_task = asyncio.create_task(self._auto_process())

    async def _auto_process(self) -> None:
        try:
            stats = await self._queue.stats()
            if stats.pending == 0 or self._queue.is_processing:
                return
            log.info("Network restored, auto-processing offline orders")
            await self.process_offline_orders()
        except PosQueueError:
            log.exception("Auto-processing of offline orders failed")

    @property
    def sync_scheduled(self) -> bool:
        """Check if an auto-processing run is waiting for its delay."""
        return self._sync_handle is not None

    @property
    def sync_running(self) -> bool:
        """Check if an auto-processing run is in progress."""
        return self._sync_task is not None and not self._sync_task.done()

    # =========================================================================
    # ORDER ENTRY
    # =========================================================================

    async def place_order(
        self,
        items: Sequence[PosModels.OrderItem],
    ) -> PosModels.PlacementResult:
        """Create an order and submit it, keeping it offline on any failure.

        Args:
            items: Order lines.

        Returns:
            PlacementResult telling whether the order was submitted or queued.

        Raises:
            EmptyOrderError: If items is empty.
            StorageError: If the order had to be queued and could not be stored.

        """
        if not items:
            raise EmptyOrderError

        connected = self._monitor.is_connected
        order = PosModels.Order.create(list(items), is_offline=not connected)

        if not connected:
            await self._queue.add(order)
            return PosModels.PlacementResult(
                order=order,
                submitted=False,
                message=_SAVED_OFFLINE_MSG,
            )

        try:
            result = await self._client.submit_order(order)
        except Exception as e:  # noqa: BLE001 - fall back to the offline queue
            log.warning("Immediate submission of order %s failed: %s", order.id, e)
            result = PosModels.SubmissionResult(
                success=False,
                message=str(e) or c.Network.UNEXPECTED_MESSAGE,
            )

        if result.success:
            log.info("Order %s submitted (remote id %s)", order.id, result.order_id)
            return PosModels.PlacementResult(
                order=order.model_copy(update={"status": c.Order.Status.SUBMITTED}),
                submitted=True,
                message=result.message,
                remote_order_id=result.order_id,
            )

        log.warning(
            "Order %s not accepted (%s), saving offline",
            order.id,
            result.message,
        )
        await self._queue.add(order)
        return PosModels.PlacementResult(
            order=order,
            submitted=False,
            message=_RETRY_LATER_MSG,
        )

    # =========================================================================
    # OFFLINE QUEUE SURFACE
    # =========================================================================

    async def add_offline_order(self, order: PosModels.Order) -> None:
        """Store an order in the offline queue."""
        await self._queue.add(order)

    async def process_offline_orders(self) -> PosModels.ProcessResult:
        """Submit pending orders now; zero counts while disconnected."""
        if not self._monitor.is_connected:
            log.info("Cannot process orders: network disconnected")
            return PosModels.ProcessResult()
        return await self._queue.process()

    async def retry_failed_orders(self) -> PosModels.ProcessResult:
        """Reset failed orders and process them; no-op while disconnected."""
        if not self._monitor.is_connected:
            log.info("Cannot retry orders: network disconnected")
            return PosModels.ProcessResult()
        return await self._queue.retry_failed()

    async def clear_offline_orders(self) -> None:
        """Cancel every retry and delete all pending orders."""
        await self._queue.clear()

    async def remove_offline_order(self, order_id: str) -> bool:
        """Cancel the retry of one order and delete it."""
        return await self._queue.remove(order_id)

    async def get_queue_stats(self) -> PosModels.QueueStats:
        """Return fresh queue statistics."""
        return await self._queue.stats()

    async def get_offline_orders(self) -> list[PosModels.Order]:
        """Return the pending collection."""
        return await self._queue.orders()

    async def get_order_history(self) -> list[PosModels.Order]:
        """Return archived orders, newest first."""
        return await self._queue.history()

    async def get_storage_info(self) -> PosModels.StorageInfo:
        """Return record counts of the persistent store."""
        return await self._store.storage_info()

    # =========================================================================
    # NETWORK
    # =========================================================================

    async def refresh_network_status(self) -> PosModels.NetworkStatus:
        """Check connectivity now."""
        return await self._monitor.refresh()

    @property
    def network_status(self) -> PosModels.NetworkStatus:
        """Last published network status."""
        return self._monitor.status

    @property
    def is_checking(self) -> bool:
        """Check if a connectivity check is in progress."""
        return self._monitor.is_checking

    @property
    def is_processing(self) -> bool:
        """Check if a bulk run is in progress."""
        return self._queue.is_processing

    @property
    def queue(self) -> OfflineQueue:
        """Get the offline queue."""
        return self._queue

    @property
    def monitor(self) -> NetworkMonitor:
        """Get the network monitor."""
        return self._monitor
