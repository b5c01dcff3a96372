"""Remote order API client for posqueue.

Async HTTP client for the order backend using httpx. Implements the
SubmissionClient protocol used by the offline queue.

Every request is bounded by the client timeout. Failures never raise: they are
reported as an unsuccessful SubmissionResult, with ``timed_out=True`` when the
timeout elapsed, so the queue can tell a timeout from a rejection.

Hierarchy Level: 3
- Imports: PosConstants, PosSettings, PosModels
- Used by: offline_queue.py, service.py

Usage:
    async with OrderApiClient.from_settings(config) as api:
        result = await api.submit_order(order)
        if not result.success:
            print(result.message)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Self

import httpx

from posqueue.constants import PosConstants as c
from posqueue.models import PosModels

if TYPE_CHECKING:
    from posqueue.settings import PosSettings

log = logging.getLogger(__name__)


class OrderApiClient:
    """HTTP client for the order backend."""

    def __init__(
        self,
        base_url: str = c.Network.API_BASE_URL,
        timeout: float = c.Network.API_TIMEOUT,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize API client.

        Args:
            base_url: API root, e.g. "http://host:3000/api".
            timeout: Timeout in seconds applied to every request.
            transport: Optional httpx transport (tests use MockTransport).

        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        config: PosSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> Self:
        """Build a client from settings (api_base_url and api_timeout)."""
        return cls(config.api_base_url, config.api_timeout, transport=transport)

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    @property
    def timeout(self) -> float:
        """Get request timeout in seconds."""
        return self._timeout

    @property
    def base_url(self) -> str:
        """Get API root URL."""
        return self._base_url

    def set_timeout(self, seconds: float) -> None:
        """Update the request timeout.

        Raises:
            ValueError: If seconds <= 0.

        """
        if seconds <= 0:
            msg = f"timeout must be > 0, got {seconds}"
            raise ValueError(msg)
        self._timeout = seconds
        self._client.timeout = httpx.Timeout(seconds)
        log.info("API timeout updated to %.1fs", seconds)

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> PosModels.SubmissionResult:
        """Send one request and map the outcome to a SubmissionResult."""
        log.debug("API request: %s %s", method, endpoint)
        try:
            response = await self._client.request(
                method,
                endpoint,
                json=json,
                params=params,
            )
        except httpx.TimeoutException:
            log.warning("API request timeout: %s", endpoint)
            return PosModels.SubmissionResult(
                success=False,
                message=c.Network.TIMEOUT_MESSAGE,
                timed_out=True,
            )
        except httpx.HTTPError as e:
            log.warning("API request failed: %s %s: %s", method, endpoint, e)
            return PosModels.SubmissionResult(
                success=False,
                message=str(e) or c.Network.UNEXPECTED_MESSAGE,
            )

        data = self._parse_body(response)
        log.debug("API response: %s %s", response.status_code, data)

        if response.is_error:
            if isinstance(data, dict) and data.get("message"):
                message = str(data["message"])
            elif isinstance(data, str) and data:
                message = data
            else:
                message = f"HTTP error! status: {response.status_code}"
            return PosModels.SubmissionResult(success=False, message=message)

        if not isinstance(data, dict):
            return PosModels.SubmissionResult(success=True, message="Success")
        remote_id = data.get("orderId")
        timestamp = data.get("timestamp")
        return PosModels.SubmissionResult(
            success=True,
            order_id=None if remote_id is None else str(remote_id),
            message=str(data.get("message") or "Success"),
            timestamp=None if timestamp is None else str(timestamp),
        )

    @staticmethod
    def _parse_body(response: httpx.Response) -> object:
        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                return response.json()
            except ValueError:
                return response.text
        return response.text

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def submit_order(
        self,
        order: PosModels.Order,
    ) -> PosModels.SubmissionResult:
        """Submit one order (POST /orders).

        Args:
            order: Order to submit; only its items go over the wire.

        Returns:
            SubmissionResult with the backend order id on success.

        """
        payload = order.to_request()
        log.info("Submitting order %s (%d items)", order.id, len(order.items))
        return await self._request("POST", c.Network.ORDERS_PATH, json=payload)

    async def get_order_status(self, order_id: str) -> PosModels.SubmissionResult:
        """Fetch backend status of one submitted order."""
        return await self._request("GET", f"{c.Network.ORDERS_PATH}/{order_id}")

    async def get_orders_history(
        self,
        limit: int = c.Network.HISTORY_LIMIT,
    ) -> PosModels.SubmissionResult:
        """Fetch recent orders known to the backend."""
        return await self._request(
            "GET",
            c.Network.ORDERS_PATH,
            params={"limit": limit},
        )

    # =========================================================================
    # HEALTH
    # =========================================================================

    async def check_health(self) -> PosModels.SubmissionResult:
        """Call the backend health endpoint."""
        return await self._request("GET", c.Network.HEALTH_PATH)

    async def test_connection(self) -> bool:
        """Check whether the backend answers its health endpoint."""
        result = await self.check_health()
        return result.success
