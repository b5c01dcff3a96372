"""POS Constants - Centralized domain constants for posqueue.

All magic numbers, storage keys and enums are defined here.
Access via: from posqueue.constants import PosConstants as c
Usage: c.Storage.OFFLINE_ORDERS, c.Order.Status.PENDING, etc.
"""

from enum import StrEnum
from typing import Final


class PosConstants:
    """Centralized constants organized by business domain namespaces.

    Namespaces are organized by business function, not data type.
    All constants are accessed via c.Namespace.CONSTANT or c.Namespace.Enum.VALUE
    """

    # ==================== STORAGE ====================
    class Storage:
        """Persistent record keys and limits."""

        OFFLINE_ORDERS: Final = "@pos_offline_orders"
        ORDER_HISTORY: Final = "@pos_order_history"
        APP_SETTINGS: Final = "@pos_app_settings"

        ALL_KEYS: Final = (OFFLINE_ORDERS, ORDER_HISTORY, APP_SETTINGS)

        HISTORY_LIMIT: Final = 100
        DB_PATH: Final = "~/.posqueue/store.db"
        MEMORY_PATH: Final = ":memory:"

    # ==================== RETRY & BACKOFF ====================
    class Retry:
        """Retry ceiling and exponential backoff defaults (seconds)."""

        MAX_RETRIES: Final = 3
        INITIAL_DELAY: Final = 1.0
        MAX_DELAY: Final = 10.0
        BACKOFF_FACTOR: Final = 2.0

    # ==================== QUEUE PROCESSING ====================
    class Queue:
        """Bulk processing pacing (seconds)."""

        PROCESS_INTERVAL: Final = 0.5  # Pause between submissions (rate limit)
        ORDER_SYNC_DELAY: Final = 2.0  # Settle time after reconnect

    # ==================== NETWORK ====================
    class Network:
        """Connectivity polling and HTTP client defaults."""

        CHECK_INTERVAL: Final = 3.0  # seconds
        API_BASE_URL: Final = "http://localhost:3000/api"
        API_TIMEOUT: Final = 10.0  # seconds
        HEALTH_PATH: Final = "/health"
        ORDERS_PATH: Final = "/orders"
        HISTORY_LIMIT: Final = 50

        TYPE_UNKNOWN: Final = "unknown"
        TYPE_NONE: Final = "none"
        TYPE_HTTP: Final = "http"

        TIMEOUT_MESSAGE: Final = "Request timeout - please check your connection"
        UNEXPECTED_MESSAGE: Final = "An unexpected error occurred"

    # ==================== ORDERS ====================
    class Order:
        """Order domain enums."""

        class Status(StrEnum):
            """Order lifecycle status.

            Transitions:
                PENDING -> SUBMITTED (terminal, success)
                PENDING -> PENDING (retry, retry_count + 1)
                PENDING -> FAILED (retry ceiling exceeded)
                FAILED -> PENDING (explicit force-retry only)
            """

            PENDING = "pending"
            SUBMITTED = "submitted"
            FAILED = "failed"

        class Size(StrEnum):
            """Drink size."""

            SMALL = "small"
            MEDIUM = "medium"
            LARGE = "large"

        class FailureReason(StrEnum):
            """Why a submission attempt did not succeed."""

            TIMEOUT = "timeout"
            REJECTED = "rejected"


c = PosConstants
