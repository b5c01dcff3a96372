"""Network status monitoring for posqueue.

Polls a ConnectivityProbe at a fixed interval and publishes status changes to
listeners. Identical consecutive results are suppressed. A failing probe is
treated as offline.

Hierarchy Level: 3
- Imports: PosConstants, PosSettings, PosModels, exceptions
- Used by: service.py, __main__.py

Usage:
    monitor = NetworkMonitor(HttpConnectivityProbe(config.api_base_url))
    monitor.add_listener(on_status)
    await monitor.start()
    ...
    await monitor.refresh()  # out-of-band check
    await monitor.stop()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import suppress
from typing import TYPE_CHECKING, Self

import httpx

from posqueue.constants import PosConstants as c
from posqueue.exceptions import NetworkCheckError
from posqueue.models import PosModels

if TYPE_CHECKING:
    from posqueue.protocols import ConnectivityProbe, StatusListener

log = logging.getLogger(__name__)

NetworkStatus = PosModels.NetworkStatus


class HttpConnectivityProbe:
    """Connectivity probe that calls the backend health endpoint.

    - Transport error: not connected, not reachable, type "none"
    - Any HTTP response: connected; reachable only for a 2xx status
    """

    def __init__(
        self,
        base_url: str = c.Network.API_BASE_URL,
        timeout: float = c.Network.API_TIMEOUT,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize HTTP probe.

        Args:
            base_url: API root URL.
            timeout: Timeout in seconds for one probe request.
            transport: Optional httpx transport (tests use MockTransport).

        """
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def get_state(self) -> NetworkStatus:
        """Probe the health endpoint once."""
        try:
            response = await self._client.get(c.Network.HEALTH_PATH)
        except httpx.TransportError as e:
            log.debug("Connectivity probe transport error: %s", e)
            return NetworkStatus.offline(c.Network.TYPE_NONE)
        return NetworkStatus(
            is_connected=True,
            is_internet_reachable=response.is_success,
            type=c.Network.TYPE_HTTP,
        )

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()


class NetworkMonitor:
    """Polling network status monitor.

    Publishes a status to listeners only when it differs from the last
    published one. ``refresh()`` is single-flight: a request made while a
    check is running returns without checking again.
    """

    def __init__(
        self,
        probe: ConnectivityProbe,
        interval: float = c.Network.CHECK_INTERVAL,
    ) -> None:
        """Initialize network monitor.

        Args:
            probe: Connectivity primitive to poll.
            interval: Seconds between two polls.

        """
        self._probe = probe
        self._interval = interval
        self._status = NetworkStatus.initial()
        self._checking = False
        self._listeners: list[StatusListener] = []
        self._poll_task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def status(self) -> NetworkStatus:
        """Last published network status."""
        return self._status

    @property
    def is_connected(self) -> bool:
        """Check if the last published status is connected."""
        return self._status.is_connected

    @property
    def is_checking(self) -> bool:
        """Check if a probe is in progress."""
        return self._checking

    @property
    def is_running(self) -> bool:
        """Check if the polling task is running."""
        return self._running

    def add_listener(self, listener: StatusListener) -> None:
        """Register a callback for published status changes."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        """Unregister a callback (no-op if not registered)."""
        with suppress(ValueError):
            self._listeners.remove(listener)

    async def refresh(self) -> NetworkStatus:
        """Check connectivity now, outside of the polling schedule.

        Returns:
            The current published status.

        """
        await self._check()
        return self._status

    async def _check(self) -> None:
        if self._checking:
            return

        self._checking = True
        try:
            try:
                status = await self._probe.get_state()
            except Exception as e:  # noqa: BLE001 - any probe failure means offline
                error = NetworkCheckError(details={"error": repr(e)})
                log.warning("%s, assuming offline", error)
                status = NetworkStatus.offline()

            if status != self._status:
                log.info(
                    "Network status changed: connected=%s reachable=%s type=%s",
                    status.is_connected,
                    status.is_internet_reachable,
                    status.type,
                )
                self._status = status
                await self._publish(status)
        finally:
            self._checking = False

    async def _publish(self, status: NetworkStatus) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(status)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception("Network status listener failed")

    async def _poll_loop(self) -> None:
        """Background task that checks connectivity every interval."""
        log.info("Network monitor started (interval: %.1fs)", self._interval)

        while self._running:
            try:
                await asyncio.sleep(self._interval)
                await self._check()
            except asyncio.CancelledError:
                log.info("Network monitor cancelled")
                break

        log.info("Network monitor stopped")

    async def start(self) -> None:
        """Run an initial check and start polling (idempotent)."""
        if self._poll_task is not None and not self._poll_task.done():
            log.debug("Network monitor already running")
            return

        self._running = True
        await self._check()
        self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        """Stop the polling task."""
        self._running = False

        if self._poll_task is not None:
            self._poll_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None

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
        await self.stop()
