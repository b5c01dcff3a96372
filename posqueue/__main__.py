"""Command-line entry point for posqueue.

Drives the offline order queue from a terminal.

Usage:
    # Show pending queue statistics
    python -m posqueue stats

    # Submit pending orders now
    python -m posqueue process --api http://host:3000/api

    # Reset failed orders to pending and submit them
    python -m posqueue retry-failed

    # Delete every pending order
    python -m posqueue clear

    # Show archived orders
    python -m posqueue history

    # Run with network monitoring and auto-processing until interrupted
    python -m posqueue run --debug

Configuration:
    POS_API_BASE_URL  - Order API root (default: http://localhost:3000/api)
    POS_DB_PATH       - Store location (default: ~/.posqueue/store.db)
"""

import argparse
import asyncio
import logging
import sys
from typing import Any

import structlog

from posqueue import __version__
from posqueue.exceptions import PosQueueError
from posqueue.models import PosModels
from posqueue.service import PosOrderService
from posqueue.settings import PosSettings
from posqueue.storage import OrderStore

log = structlog.get_logger("posqueue.cli")


def _setup_logging(*, debug: bool = False) -> None:
    """Configure structlog for the CLI and stdlib logging for the library.

    Args:
        debug: Enable debug-level logging if True.

    """
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="[%(name)s] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def _build_settings(args: argparse.Namespace, **overrides: Any) -> PosSettings:
    if args.db:
        overrides["db_path"] = args.db
    if args.api:
        overrides["api_base_url"] = args.api
    return PosSettings(**overrides)


# =============================================================================
# COMMANDS
# =============================================================================


async def _cmd_stats(config: PosSettings) -> None:
    async with OrderStore.from_settings(config) as store:
        orders = await store.list_orders()
        info = await store.storage_info()

    stats = PosModels.QueueStats.from_orders(orders)
    log.info(
        "queue_stats",
        total=stats.total,
        pending=stats.pending,
        failed=stats.failed,
        oldest_order=stats.oldest_order.isoformat() if stats.oldest_order else None,
        history=info.order_history_count,
    )
    for order in orders:
        log.info(
            "offline_order",
            order_id=order.id,
            status=order.status.value,
            retry_count=order.retry_count,
            items=len(order.items),
            total=round(order.computed_total, 2),
            created=order.timestamp.isoformat(),
        )


async def _cmd_history(config: PosSettings) -> None:
    async with OrderStore.from_settings(config) as store:
        history = await store.list_history()

    log.info("order_history", count=len(history))
    for order in history:
        log.info(
            "archived_order",
            order_id=order.id,
            items=len(order.items),
            total=round(order.computed_total, 2),
            created=order.timestamp.isoformat(),
        )


async def _cmd_clear(config: PosSettings) -> None:
    async with OrderStore.from_settings(config) as store:
        removed = len(await store.list_orders())
        await store.clear()
    log.info("offline_orders_cleared", removed=removed)


async def _cmd_process(config: PosSettings, *, retry_failed: bool) -> None:
    async with PosOrderService(config) as service:
        status = service.network_status
        if not status.is_connected:
            log.warning("network_disconnected", api=config.api_base_url)
        if retry_failed:
            result = await service.retry_failed_orders()
        else:
            result = await service.process_offline_orders()
        stats = await service.get_queue_stats()

    log.info(
        "offline_orders_processed",
        processed=result.processed,
        successful=result.successful,
        failed=result.failed,
        remaining=stats.total,
    )


async def _cmd_run(config: PosSettings) -> None:
    async with PosOrderService(config) as service:
        stats = await service.get_queue_stats()
        log.info(
            "service_started",
            api=config.api_base_url,
            db=config.db_path,
            connected=service.network_status.is_connected,
            pending=stats.pending,
            failed=stats.failed,
        )
        await asyncio.Event().wait()


# =============================================================================
# CLI
# =============================================================================


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="posqueue",
        description=f"posqueue v{__version__} - offline POS order queue",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--db", metavar="PATH", help="Store path (or :memory:)")
    parser.add_argument("--api", metavar="URL", help="Order API base URL")
    parser.add_argument(
        "--debug",
        "-d",
        action="store_true",
        help="Enable debug logging",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("stats", help="Show pending queue statistics")
    commands.add_parser("process", help="Submit pending orders now")
    commands.add_parser(
        "retry-failed",
        help="Reset failed orders to pending and submit them",
    )
    commands.add_parser("clear", help="Delete every pending order")
    commands.add_parser("history", help="Show archived orders")
    commands.add_parser(
        "run",
        help="Monitor the network and auto-process orders until interrupted",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run one CLI command.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code (0 for success, 1 for error).

    """
    args = parse_args(argv)
    _setup_logging(debug=args.debug)

    try:
        if args.command == "stats":
            asyncio.run(_cmd_stats(_build_settings(args)))
        elif args.command == "history":
            asyncio.run(_cmd_history(_build_settings(args)))
        elif args.command == "clear":
            asyncio.run(_cmd_clear(_build_settings(args)))
        elif args.command in {"process", "retry-failed"}:
            config = _build_settings(args, enable_auto_process=False)
            asyncio.run(
                _cmd_process(config, retry_failed=args.command == "retry-failed")
            )
        else:
            asyncio.run(_cmd_run(_build_settings(args)))
    except KeyboardInterrupt:
        log.info("interrupted")
    except PosQueueError as e:
        log.error("command_failed", command=args.command, error=str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
