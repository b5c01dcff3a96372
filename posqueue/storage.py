"""Persistent order store for posqueue.

Durable key/value storage of the pending-order queue, the capped order
history and the app settings.

Storage: SQLite with WAL mode through aiosqlite. Each logical record is one
row holding an orjson-serialized value, so every collection write replaces
the whole value in a single committed statement.

Hierarchy Level: 3
- Imports: PosConstants, PosSettings, PosModels, exceptions
- Used by: offline_queue.py, scheduler.py, service.py, __main__.py

Usage:
    store = OrderStore.from_settings(config)
    await store.initialize()

    await store.append(order)
    orders = await store.list_orders()
    await store.update_fields(order.id, retry_count=1)

    await store.close()
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Self

import aiosqlite
import orjson
from pydantic import ValidationError

from posqueue.constants import PosConstants as c
from posqueue.exceptions import StorageError
from posqueue.models import PosModels

if TYPE_CHECKING:
    from collections.abc import Iterable

    from posqueue.protocols import JSONValue
    from posqueue.settings import PosSettings

log = logging.getLogger(__name__)

Order = PosModels.Order


class KeyValueBackend:
    """String key/value storage on SQLite.

    Lifecycle:
    1. initialize() - open the database and create the schema
    2. get_item() / set_item() / remove_item() / multi_remove()
    3. close()

    Every write commits in its own transaction and rolls back on error, so a
    failed write never leaves a partially written value behind.
    """

    def __init__(self, path: str = c.Storage.DB_PATH) -> None:
        """Initialize backend.

        Args:
            path: SQLite database path, or ":memory:".

        """
        self._in_memory = path == c.Storage.MEMORY_PATH
        self._db_path = Path(path) if self._in_memory else Path(path).expanduser()
        self._conn: aiosqlite.Connection | None = None
        self._initialized = False

    async def initialize(self) -> None:
        """Open the database and create the schema (idempotent)."""
        if self._initialized:
            return

        try:
            if self._in_memory:
                self._conn = await aiosqlite.connect(c.Storage.MEMORY_PATH)
            else:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
                self._conn = await aiosqlite.connect(str(self._db_path))
                await self._conn.execute("PRAGMA journal_mode=WAL")
                await self._conn.execute("PRAGMA synchronous=NORMAL")

            await self._conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await self._conn.commit()
        except (aiosqlite.Error, OSError) as e:
            msg = f"Failed to open store at {self._db_path}: {e}"
            raise StorageError(msg) from e

        self._initialized = True
        log.debug("Store initialized at %s", self._db_path)

    async def close(self) -> None:
        """Close the database (safe to call more than once)."""
        if self._conn:
            await self._conn.close()
            self._conn = None
        self._initialized = False
        log.debug("Store closed")

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            msg = "Store not initialized - call initialize() first"
            raise StorageError(msg)
        return self._conn

    async def get_item(self, key: str) -> str | None:
        """Read one value.

        Args:
            key: Record key.

        Returns:
            Stored string, or None if the key is absent.

        Raises:
            StorageError: If the read fails.

        """
        conn = self._require_conn()
        try:
            cursor = await conn.execute("SELECT value FROM kv WHERE key = ?", (key,))
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            msg = f"Failed to read record: {e}"
            raise StorageError(msg, key=key) from e
        return row[0] if row else None

    async def set_item(self, key: str, value: str) -> None:
        """Replace one value atomically.

        Raises:
            StorageError: If the write fails (previous value is kept).

        """
        await self.multi_set(((key, value),))

    async def multi_set(self, pairs: Iterable[tuple[str, str]]) -> None:
        """Replace several values in one transaction.

        Raises:
            StorageError: If the write fails (every previous value is kept).

        """
        conn = self._require_conn()
        pair_list = list(pairs)
        try:
            await conn.executemany(
                """INSERT INTO kv (key, value, updated_at)
                   VALUES (?, ?, CURRENT_TIMESTAMP)
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value,
                       updated_at = CURRENT_TIMESTAMP""",
                pair_list,
            )
            await conn.commit()
        except aiosqlite.Error as e:
            await self._rollback(conn)
            msg = f"Failed to write records: {e}"
            raise StorageError(msg, details={"keys": [k for k, _ in pair_list]}) from e

    async def remove_item(self, key: str) -> None:
        """Delete one value (no-op when absent)."""
        await self.multi_remove((key,))

    async def multi_remove(self, keys: Iterable[str]) -> None:
        """Delete several values in one transaction.

        Raises:
            StorageError: If the delete fails (no key is removed).

        """
        conn = self._require_conn()
        key_list = list(keys)
        try:
            await conn.executemany(
                "DELETE FROM kv WHERE key = ?",
                [(key,) for key in key_list],
            )
            await conn.commit()
        except aiosqlite.Error as e:
            await self._rollback(conn)
            msg = f"Failed to remove records: {e}"
            raise StorageError(msg, details={"keys": key_list}) from e

    @staticmethod
    async def _rollback(conn: aiosqlite.Connection) -> None:
        try:
            await conn.rollback()
        except aiosqlite.Error:
            log.exception("Store rollback failed")

    @property
    def is_initialized(self) -> bool:
        """Check if backend is initialized."""
        return self._initialized

    @property
    def db_path(self) -> Path:
        """Get database file path."""
        return self._db_path


class OrderStore:
    """Pending orders, order history and app settings on a key/value backend.

    The pending collection keeps insertion order with the newest insertion
    first. The history keeps at most ``history_limit`` orders, newest first,
    evicting the oldest.

    All operations hold one lock for their whole read-modify-write, so callers
    never observe partial or interleaved writes.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        history_limit: int = c.Storage.HISTORY_LIMIT,
    ) -> None:
        """Initialize order store.

        Args:
            backend: Key/value backend holding the records.
            history_limit: Max number of archived orders kept.

        """
        self._backend = backend
        self._history_limit = history_limit
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, config: PosSettings) -> Self:
        """Build a store from settings (db_path and history_limit)."""
        return cls(KeyValueBackend(config.db_path), history_limit=config.history_limit)

    async def initialize(self) -> None:
        """Initialize the backend."""
        await self._backend.initialize()

    async def close(self) -> None:
        """Close the backend."""
        await self._backend.close()

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.initialize()
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
    # SERIALIZATION
    # =========================================================================

    async def _read_orders(self, key: str) -> list[Order]:
        raw = await self._backend.get_item(key)
        if raw is None:
            return []
        try:
            return [Order.model_validate(entry) for entry in orjson.loads(raw)]
        except (orjson.JSONDecodeError, ValidationError, TypeError) as e:
            msg = f"Corrupt order collection: {e}"
            raise StorageError(msg, key=key) from e

    @staticmethod
    def _encode(orders: list[Order]) -> str:
        return orjson.dumps([order.model_dump(mode="json") for order in orders]).decode()

    async def _write_orders(self, key: str, orders: list[Order]) -> None:
        await self._backend.set_item(key, self._encode(orders))

    # =========================================================================
    # PENDING ORDERS
    # =========================================================================

    async def append(self, order: Order) -> None:
        """Add an order at the front of the pending collection.

        Raises:
            StorageError: If the collection cannot be read or written.

        """
        async with self._lock:
            orders = await self._read_orders(c.Storage.OFFLINE_ORDERS)
            await self._write_orders(c.Storage.OFFLINE_ORDERS, [order, *orders])
        log.debug("Added offline order %s", order.id)

    async def list_orders(self) -> list[Order]:
        """Return the full pending collection in canonical order."""
        async with self._lock:
            return await self._read_orders(c.Storage.OFFLINE_ORDERS)

    async def get(self, order_id: str) -> Order | None:
        """Return one pending order, or None if it is not stored."""
        async with self._lock:
            orders = await self._read_orders(c.Storage.OFFLINE_ORDERS)
        return next((o for o in orders if o.id == order_id), None)

    async def remove(self, order_id: str) -> bool:
        """Remove one pending order.

        Returns:
            True if an order was removed.

        """
        async with self._lock:
            orders = await self._read_orders(c.Storage.OFFLINE_ORDERS)
            remaining = [o for o in orders if o.id != order_id]
            if len(remaining) == len(orders):
                return False
            await self._write_orders(c.Storage.OFFLINE_ORDERS, remaining)
        log.debug("Removed offline order %s", order_id)
        return True

    async def update_fields(self, order_id: str, **fields: Any) -> Order | None:
        """Merge fields into one pending order.

        The id is never changed.

        Args:
            order_id: Order to update.
            **fields: Order fields to overwrite (e.g. status, retry_count).

        Returns:
            The updated order, or None if the id is not pending.

        Raises:
            StorageError: If the update cannot be stored or is invalid.

        """
        fields.pop("id", None)
        async with self._lock:
            orders = await self._read_orders(c.Storage.OFFLINE_ORDERS)
            updated: Order | None = None
            merged: list[Order] = []
            for order in orders:
                if order.id == order_id:
                    try:
                        order = Order.model_validate(order.model_dump() | fields)  # noqa: PLW2901
                    except ValidationError as e:
                        msg = f"Invalid order update: {e}"
                        raise StorageError(msg, details={"order_id": order_id}) from e
                    updated = order
                merged.append(order)
            if updated is None:
                return None
            await self._write_orders(c.Storage.OFFLINE_ORDERS, merged)
        log.debug("Updated offline order %s: %s", order_id, fields)
        return updated

    async def reset_failed(self) -> list[str]:
        """Reset every failed order to pending with retry_count 0.

        Returns:
            Ids of the orders that were reset.

        """
        async with self._lock:
            orders = await self._read_orders(c.Storage.OFFLINE_ORDERS)
            reset_ids = [o.id for o in orders if o.status == c.Order.Status.FAILED]
            if not reset_ids:
                return []
            merged = [
                o.model_copy(update={"status": c.Order.Status.PENDING, "retry_count": 0})
                if o.status == c.Order.Status.FAILED
                else o
                for o in orders
            ]
            await self._write_orders(c.Storage.OFFLINE_ORDERS, merged)
        log.debug("Reset %d failed orders to pending", len(reset_ids))
        return reset_ids

    async def clear(self) -> None:
        """Delete all pending orders."""
        async with self._lock:
            await self._backend.remove_item(c.Storage.OFFLINE_ORDERS)
        log.debug("Cleared all offline orders")

    # =========================================================================
    # ORDER HISTORY
    # =========================================================================

    async def append_history(self, order: Order) -> None:
        """Archive an order at the front of the history, evicting the oldest."""
        async with self._lock:
            history = await self._read_orders(c.Storage.ORDER_HISTORY)
            trimmed = [order, *history][: self._history_limit]
            await self._write_orders(c.Storage.ORDER_HISTORY, trimmed)
        log.debug("Added order %s to history", order.id)

    async def archive(self, order: Order) -> bool:
        """Move a delivered order from the pending collection to the history.

        Both records are written in one transaction.

        Args:
            order: Archived form of the order (id matches the pending entry).

        Returns:
            False if the order was no longer pending (nothing is written).

        Raises:
            StorageError: If the move cannot be stored (both records kept).

        """
        async with self._lock:
            orders = await self._read_orders(c.Storage.OFFLINE_ORDERS)
            remaining = [o for o in orders if o.id != order.id]
            if len(remaining) == len(orders):
                return False
            history = await self._read_orders(c.Storage.ORDER_HISTORY)
            trimmed = [order, *history][: self._history_limit]
            await self._backend.multi_set(
                (
                    (c.Storage.OFFLINE_ORDERS, self._encode(remaining)),
                    (c.Storage.ORDER_HISTORY, self._encode(trimmed)),
                )
            )
        log.debug("Archived order %s", order.id)
        return True

    async def list_history(self) -> list[Order]:
        """Return archived orders, newest first."""
        async with self._lock:
            return await self._read_orders(c.Storage.ORDER_HISTORY)

    # =========================================================================
    # APP SETTINGS
    # =========================================================================

    async def save_settings(self, settings: dict[str, JSONValue]) -> None:
        """Replace the app-settings record."""
        try:
            value = orjson.dumps(settings).decode()
        except TypeError as e:
            msg = f"App settings are not serializable: {e}"
            raise StorageError(msg, key=c.Storage.APP_SETTINGS) from e
        async with self._lock:
            await self._backend.set_item(c.Storage.APP_SETTINGS, value)

    async def get_settings(self) -> dict[str, JSONValue]:
        """Return the app-settings record ({} when absent)."""
        async with self._lock:
            raw = await self._backend.get_item(c.Storage.APP_SETTINGS)
        if raw is None:
            return {}
        try:
            settings = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            msg = f"Corrupt app settings: {e}"
            raise StorageError(msg, key=c.Storage.APP_SETTINGS) from e
        if not isinstance(settings, dict):
            msg = "Corrupt app settings: expected an object"
            raise StorageError(msg, key=c.Storage.APP_SETTINGS)
        return settings

    # =========================================================================
    # UTILITY
    # =========================================================================

    async def clear_all(self) -> None:
        """Delete pending orders, history and app settings together."""
        async with self._lock:
            await self._backend.multi_remove(c.Storage.ALL_KEYS)
        log.info("All app data cleared")

    async def storage_info(self) -> PosModels.StorageInfo:
        """Return record counts of the store."""
        orders = await self.list_orders()
        history = await self.list_history()
        settings = await self.get_settings()
        return PosModels.StorageInfo(
            offline_orders_count=len(orders),
            order_history_count=len(history),
            has_settings=bool(settings),
        )

    @property
    def backend(self) -> KeyValueBackend:
        """Get the key/value backend."""
        return self._backend

    @property
    def history_limit(self) -> int:
        """Get the history capacity."""
        return self._history_limit
