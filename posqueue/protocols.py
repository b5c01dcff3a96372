"""Collaborator protocol definitions for posqueue.

The offline queue talks to three collaborators it does not own:

- SubmissionClient: performs the remote order submission
- ConnectivityProbe: reports the current network state
- StatusListener: receives published network status changes

Uses @runtime_checkable for both static (mypy/pyright) and runtime (isinstance)
validation of collaborator implementations, so tests can plug in fakes.

"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from posqueue.models import PosModels

# Type alias for JSON values stored in the app-settings record
type JSONPrimitive = str | int | float | bool | None
type JSONValue = JSONPrimitive | list[JSONValue] | dict[str, JSONValue]


@runtime_checkable
class SubmissionClient(Protocol):
    """Remote order submission.

    Implementations apply their own request timeout and report it with
    ``timed_out=True`` instead of raising.

    """

    async def submit_order(
        self,
        order: PosModels.Order,
    ) -> PosModels.SubmissionResult:
        """Submit one order to the backend.

        Args:
            order: Order to submit.

        Returns:
            SubmissionResult describing success, rejection or timeout.

        """
        ...


@runtime_checkable
class ConnectivityProbe(Protocol):
    """Underlying connectivity primitive polled by the network monitor."""

    async def get_state(self) -> PosModels.NetworkStatus:
        """Return the current network state.

        May raise; the monitor then fails safe to offline.

        """
        ...


@runtime_checkable
class StatusListener(Protocol):
    """Callback invoked with each newly published network status."""

    def __call__(
        self,
        status: PosModels.NetworkStatus,
    ) -> Awaitable[None] | None: ...
