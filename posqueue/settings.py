"""posqueue configuration using Pydantic Settings.

Automatic environment variable loading with POS_ prefix.
Single source of truth for all configuration across the project.

Hierarchy Level: 1
- Imports: PosConstants (Level 0)
- Used by: storage.py, api.py, network.py, scheduler.py, offline_queue.py, service.py

Configuration Sources (precedence high to low):
1. Environment variables (POS_*)
2. .env file
3. Defaults defined here

Usage:
    >>> from posqueue.settings import PosSettings
    >>> config = PosSettings()  # loads from env
    >>> print(config.api_timeout)  # 10.0 or env override
    >>> delay = config.calculate_retry_delay(retry_count=2)
"""

import random

from pydantic_settings import BaseSettings, SettingsConfigDict

from posqueue.constants import PosConstants


class PosSettings(BaseSettings):
    """Offline order queue configuration with automatic env loading.

    All durations are in seconds.

    Usage:
        config = PosSettings()  # loads from env
        config = PosSettings(db_path=":memory:")  # override
    """

    model_config = SettingsConfigDict(
        env_prefix="POS_",
        frozen=True,
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # =========================================================================
    # REMOTE API
    # =========================================================================
    api_base_url: str = PosConstants.Network.API_BASE_URL
    api_timeout: float = PosConstants.Network.API_TIMEOUT

    # =========================================================================
    # STORAGE
    # =========================================================================
    db_path: str = PosConstants.Storage.DB_PATH
    history_limit: int = PosConstants.Storage.HISTORY_LIMIT

    # =========================================================================
    # RETRY SETTINGS
    # =========================================================================
    retry_max_attempts: int = PosConstants.Retry.MAX_RETRIES
    """Retry ceiling: an order whose retry_count exceeds this becomes failed."""

    retry_initial_delay: float = PosConstants.Retry.INITIAL_DELAY
    retry_max_delay: float = PosConstants.Retry.MAX_DELAY
    retry_exponential_base: float = PosConstants.Retry.BACKOFF_FACTOR
    retry_jitter: bool = False

    # =========================================================================
    # QUEUE PROCESSING
    # =========================================================================
    process_interval: float = PosConstants.Queue.PROCESS_INTERVAL
    """Pause between two submissions of one bulk run."""

    order_sync_delay: float = PosConstants.Queue.ORDER_SYNC_DELAY
    """Wait after a reconnect before auto-processing the queue."""

    enable_auto_process: bool = True
    """Process pending orders automatically when connectivity returns."""

    # =========================================================================
    # NETWORK MONITOR
    # =========================================================================
    network_check_interval: float = PosConstants.Network.CHECK_INTERVAL

    # =========================================================================
    # CALCULATION METHODS
    # =========================================================================

    def calculate_retry_delay(self, retry_count: int) -> float:
        """Calculate exponential backoff delay with optional jitter.

        Args:
            retry_count: Retry number about to be scheduled (1-indexed).

        Returns:
            Delay in seconds before the retry fires.

        """
        exponent = max(retry_count - 1, 0)
        delay = min(
            self.retry_initial_delay * (self.retry_exponential_base**exponent),
            self.retry_max_delay,
        )
        if self.retry_jitter:
            # Add 0-100% jitter (random is fine for jitter)
            delay *= 0.5 + random.random()  # noqa: S311
        return min(delay, self.retry_max_delay)
