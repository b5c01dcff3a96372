"""Test configuration and fixtures.

Every test runs against a real SQLite store in a temporary directory and
real asyncio timers. Only the two outer collaborators are replaced by
in-process fakes:

- FakeSubmissionClient: scripted submission outcomes, optional gate to hold
  a submission in flight
- FakeProbe: settable network state, optional failure

Settings use millisecond-scale delays so backoff chains finish quickly.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from posqueue.constants import PosConstants as c
from posqueue.models import PosModels
from posqueue.settings import PosSettings
from posqueue.storage import OrderStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable
    from pathlib import Path


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


class FakeSubmissionClient:
    """Submission client returning scripted outcomes.

    ``outcomes`` is consumed first (a SubmissionResult or an exception to
    raise); afterwards every call returns ``default``.
    """

    def __init__(self) -> None:
        self.outcomes: list[PosModels.SubmissionResult | Exception] = []
        self.default = PosModels.SubmissionResult(
            success=True,
            order_id="srv-1",
            message="Order received",
        )
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()

    def reject(self, message: str = "Server error", *, times: int = 1) -> None:
        self.outcomes.extend(
            PosModels.SubmissionResult(success=False, message=message)
            for _ in range(times)
        )

    def reject_always(self, message: str = "Server error") -> None:
        self.default = PosModels.SubmissionResult(success=False, message=message)

    def accept_always(self) -> None:
        self.outcomes.clear()
        self.default = PosModels.SubmissionResult(success=True, message="Success")

    def hold(self) -> asyncio.Event:
        """Block every submission until the returned event is set."""
        self.gate = asyncio.Event()
        return self.gate

    async def submit_order(
        self,
        order: PosModels.Order,
    ) -> PosModels.SubmissionResult:
        self.calls.append(order.id)
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeProbe:
    """Connectivity probe with a settable state."""

    def __init__(self, *, connected: bool = True) -> None:
        self.status = self._status_for(connected=connected)
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls = 0

    @staticmethod
    def _status_for(*, connected: bool) -> PosModels.NetworkStatus:
        if connected:
            return PosModels.NetworkStatus(
                is_connected=True,
                is_internet_reachable=True,
                type="wifi",
            )
        return PosModels.NetworkStatus.offline(c.Network.TYPE_NONE)

    def set_connected(self, *, connected: bool) -> None:
        self.status = self._status_for(connected=connected)

    async def get_state(self) -> PosModels.NetworkStatus:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.status


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Return temporary database path for tests."""
    return str(tmp_path / "store.db")


@pytest.fixture
def fast_settings(db_path: str) -> PosSettings:
    """Return settings with a temp store and millisecond-scale delays."""
    return PosSettings(
        _env_file=None,
        db_path=db_path,
        api_base_url="http://pos.test/api",
        retry_initial_delay=0.01,
        retry_max_delay=0.05,
        process_interval=0.0,
        order_sync_delay=0.05,
        network_check_interval=0.02,
    )


@pytest.fixture
async def store(fast_settings: PosSettings) -> AsyncGenerator[OrderStore, None]:
    """Return initialized order store on a temp SQLite database."""
    s = OrderStore.from_settings(fast_settings)
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def client() -> FakeSubmissionClient:
    """Return submission client that accepts every order."""
    return FakeSubmissionClient()


@pytest.fixture
def probe() -> FakeProbe:
    """Return connected connectivity probe."""
    return FakeProbe()


@pytest.fixture
def make_item() -> Callable[..., PosModels.OrderItem]:
    """Return factory for order lines."""

    def _make(
        name: str = "Latte",
        price: float = 4.5,
        quantity: int = 1,
        size: c.Order.Size = c.Order.Size.MEDIUM,
    ) -> PosModels.OrderItem:
        return PosModels.OrderItem(
            drink_id=name.lower(),
            name=name,
            size=size,
            price=price,
            quantity=quantity,
        )

    return _make


@pytest.fixture
def make_order(
    make_item: Callable[..., PosModels.OrderItem],
) -> Callable[..., PosModels.Order]:
    """Return factory for pending orders."""

    def _make(*, is_offline: bool = True, **fields: object) -> PosModels.Order:
        order = PosModels.Order.create(
            [make_item(), make_item("Mocha", 5.0, 2)],
            is_offline=is_offline,
        )
        if fields:
            order = order.model_copy(update=fields)
        return order

    return _make


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Return helper polling an async or sync predicate until it holds."""

    async def _wait(
        predicate: Callable[[], object],
        timeout: float = 3.0,
        interval: float = 0.005,
    ) -> None:
        async with asyncio.timeout(timeout):
            while True:
                result = predicate()
                if asyncio.iscoroutine(result):
                    result = await result
                if result:
                    return
                await asyncio.sleep(interval)

    return _wait
