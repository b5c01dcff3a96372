"""Tests for PosSettings - configuration and retry delay calculation.

Tests verify:
1. Defaults of every setting
2. POS_* environment overrides
3. Exponential backoff with its cap
4. Jitter bounds
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from posqueue.constants import PosConstants as c
from posqueue.settings import PosSettings


@pytest.fixture
def defaults() -> PosSettings:
    """Return settings built from defaults only."""
    return PosSettings(_env_file=None)


class TestDefaults:
    """Test default configuration values."""

    def test_api_defaults(self, defaults: PosSettings) -> None:
        assert defaults.api_base_url == c.Network.API_BASE_URL
        assert defaults.api_timeout == 10.0

    def test_retry_defaults(self, defaults: PosSettings) -> None:
        assert defaults.retry_max_attempts == 3
        assert defaults.retry_initial_delay == 1.0
        assert defaults.retry_exponential_base == 2.0
        assert defaults.retry_max_delay == 10.0
        assert defaults.retry_jitter is False

    def test_queue_defaults(self, defaults: PosSettings) -> None:
        assert defaults.process_interval == 0.5
        assert defaults.order_sync_delay == 2.0
        assert defaults.network_check_interval == 3.0
        assert defaults.enable_auto_process is True
        assert defaults.history_limit == 100

    def test_settings_are_frozen(self, defaults: PosSettings) -> None:
        with pytest.raises(ValidationError):
            defaults.api_timeout = 1.0  # type: ignore[misc]


class TestEnvironment:
    """Test POS_ environment variable loading."""

    def test_env_overrides_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("POS_API_TIMEOUT", "5")
        monkeypatch.setenv("POS_RETRY_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("POS_ENABLE_AUTO_PROCESS", "false")

        config = PosSettings(_env_file=None)

        assert config.api_timeout == 5.0
        assert config.retry_max_attempts == 5
        assert config.enable_auto_process is False

    def test_explicit_argument_beats_env(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("POS_DB_PATH", "/tmp/from-env.db")
        config = PosSettings(_env_file=None, db_path=":memory:")
        assert config.db_path == ":memory:"


class TestRetryDelay:
    """Test calculate_retry_delay()."""

    @pytest.mark.parametrize(
        ("retry_count", "expected"),
        [(1, 1.0), (2, 2.0), (3, 4.0), (4, 8.0), (5, 10.0), (10, 10.0)],
    )
    def test_backoff_sequence(
        self, defaults: PosSettings, retry_count: int, expected: float
    ) -> None:
        """Delays double from 1s and are capped at 10s."""
        assert defaults.calculate_retry_delay(retry_count) == expected

    def test_zero_retry_count_uses_initial_delay(self, defaults: PosSettings) -> None:
        assert defaults.calculate_retry_delay(0) == 1.0

    @given(retry_count=st.integers(min_value=1, max_value=30))
    def test_delay_never_exceeds_cap(self, retry_count: int) -> None:
        config = PosSettings(_env_file=None)
        assert 0 < config.calculate_retry_delay(retry_count) <= config.retry_max_delay

    @given(retry_count=st.integers(min_value=1, max_value=8))
    def test_jitter_stays_within_bounds(self, retry_count: int) -> None:
        plain = PosSettings(_env_file=None)
        jittered = PosSettings(_env_file=None, retry_jitter=True)

        base = plain.calculate_retry_delay(retry_count)
        delay = jittered.calculate_retry_delay(retry_count)

        assert 0.5 * base <= delay <= 1.5 * base
        assert delay <= jittered.retry_max_delay

    def test_jitter_never_exceeds_cap(self) -> None:
        """Jitter applied to a capped delay is clamped back to the cap."""
        jittered = PosSettings(_env_file=None, retry_jitter=True)
        delays = [jittered.calculate_retry_delay(10) for _ in range(200)]
        assert max(delays) <= jittered.retry_max_delay
