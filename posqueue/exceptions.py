"""
Custom exceptions for posqueue.

This module provides a hierarchy of exceptions for the offline order queue.
None of them is fatal to the process: storage errors surface to the caller of
a direct operation, submission errors feed the retry path.

Exception Hierarchy:
    PosQueueError
    ├── StorageError
    ├── NetworkCheckError
    ├── SubmissionError
    │   ├── SubmissionTimeoutError
    │   └── SubmissionRejectedError
    ├── MaxRetriesExceededError
    └── EmptyOrderError
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from posqueue.models import PosModels


class PosQueueError(Exception):
    """
    Base exception for all posqueue errors.

    Attributes:
        message: Human-readable error description
        details: Optional additional error details
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with details."""
        msg = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} ({details_str})"
        return msg


class StorageError(PosQueueError):
    """
    Raised when the persistent store cannot be read or written.

    The stored collections are left unchanged when this is raised.
    """

    def __init__(
        self,
        message: str = "Storage operation failed",
        key: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key
        super().__init__(message, details=details, **kwargs)


class NetworkCheckError(PosQueueError):
    """
    Raised when the connectivity probe itself fails.

    Non-fatal: the network monitor treats it as offline.
    """

    def __init__(
        self,
        message: str = "Network status check failed",
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)


class SubmissionError(PosQueueError):
    """
    Base exception for a failed order submission.

    Every submission error is retryable until the retry ceiling is reached.
    """

    def __init__(
        self,
        message: str = "Order submission failed",
        order_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if order_id:
            details["order_id"] = order_id
        self.order_id = order_id
        super().__init__(message, details=details, **kwargs)

    @classmethod
    def from_result(
        cls,
        result: PosModels.SubmissionResult,
        order_id: str | None = None,
        timeout: float | None = None,
    ) -> SubmissionError:
        """Build the matching exception for an unsuccessful result.

        Args:
            result: Result returned by the submission client.
            order_id: Local order identifier.
            timeout: Client timeout in seconds, recorded on a timeout error.

        Returns:
            SubmissionTimeoutError for a timeout, SubmissionRejectedError
            otherwise.

        """
        if result.timed_out:
            return SubmissionTimeoutError(
                result.message,
                timeout=timeout,
                order_id=order_id,
            )
        return SubmissionRejectedError(result.message, order_id=order_id)


class SubmissionTimeoutError(SubmissionError):
    """Raised when the backend did not answer within the client timeout."""

    def __init__(
        self,
        message: str = "Order submission timed out",
        timeout: float | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if timeout:
            details["timeout_seconds"] = timeout
        super().__init__(message, details=details, **kwargs)


class SubmissionRejectedError(SubmissionError):
    """
    Raised when the backend answered with a non-success response.

    The server message is kept in ``message``.
    """

    def __init__(
        self,
        message: str = "Order rejected by server",
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)


class MaxRetriesExceededError(PosQueueError):
    """
    Raised when an order exhausted its retries and became failed.

    Terminal until an explicit retry of failed orders.
    """

    def __init__(
        self,
        order_id: str,
        retry_count: int,
        max_retries: int,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        details.update(
            order_id=order_id,
            retry_count=retry_count,
            max_retries=max_retries,
        )
        self.order_id = order_id
        self.retry_count = retry_count
        self.max_retries = max_retries
        super().__init__("Order exceeded max retries", details=details, **kwargs)


class EmptyOrderError(PosQueueError):
    """Raised when an order is placed without any items."""

    def __init__(
        self,
        message: str = "Please add items to your order",
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)


def raise_for_result(
    result: PosModels.SubmissionResult,
    order_id: str | None = None,
    timeout: float | None = None,
) -> None:
    """
    Raise the appropriate exception for an unsuccessful submission.

    Args:
        result: Result returned by the submission client.
        order_id: Local order identifier.
        timeout: Client timeout in seconds, recorded on a timeout error.

    Raises:
        SubmissionTimeoutError: If the request timed out.
        SubmissionRejectedError: If the server rejected the order.
    """
    if result.success:
        return
    raise SubmissionError.from_result(result, order_id=order_id, timeout=timeout)
