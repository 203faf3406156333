import argparse
import asyncio
import json
import signal
import sys

import structlog
from prometheus_client import start_http_server

from usageledger.cli import parse_args
from usageledger.clock import SystemClock
from usageledger.config import Config
from usageledger.errors import LedgerConnectionError, SchemaError, StorageError
from usageledger.logging import setup_logging
from usageledger.metrics import LedgerMetrics
from usageledger.reporter import UsageReporter
from usageledger.store.aio import AsyncUsageLedger
from usageledger.store.sqlite import SQLiteUsageLedger

logger = structlog.get_logger()


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':9186' or '0.0.0.0:9186'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


def open_ledger(
    config: "Config",
    metrics: "LedgerMetrics | None" = None,
) -> "SQLiteUsageLedger":
    """
    opens the ledger for the process. The process cannot do anything
    useful without it, so failing to open it exits.
    """
    try:
        return SQLiteUsageLedger(
            config.db_path,
            precision=config.precision,
            clock=SystemClock(),
            metrics=metrics,
        )
    except LedgerConnectionError as err:
        logger.critical("ledger_open_failed", path=config.db_path, error=str(err))
        raise SystemExit(f"Failed to open usage ledger: {err}") from err
    except SchemaError as err:
        logger.critical("ledger_schema_failed", path=config.db_path, error=str(err))
        raise SystemExit(f"Failed to initialize usage ledger schema: {err}") from err


def run_record(ledger: "SQLiteUsageLedger", args: "argparse.Namespace") -> "int":
    try:
        ledger.record_usage(args.keys)
    except StorageError as err:
        print(f"error: {err}", file=sys.stderr)
        return 1
    return 0


def run_report(
    ledger: "SQLiteUsageLedger",
    args: "argparse.Namespace",
    clock: "SystemClock",
) -> "int":
    end = args.end if args.end is not None else clock.now()
    start = args.start if args.start is not None else clock.now() - 3600

    try:
        report = ledger.view_usage(start, end)
    except StorageError as err:
        print(f"error: {err}", file=sys.stderr)
        return 1

    output = {key: int(duration.total_seconds()) for key, duration in report.items()}
    print(json.dumps(output, indent=2, sort_keys=True))
    return 0


def run_serve(config: "Config") -> "int":
    metrics = LedgerMetrics()
    ledger = AsyncUsageLedger(open_ledger(config, metrics))

    host, port = _parse_listen_address(config.listen_address)
    start_http_server(port, addr=host)
    logger.info("metrics_server_started", host=host, port=port)

    reporter = UsageReporter(
        ledger,
        metrics,
        window_seconds=config.report_window,
        interval_seconds=config.report_interval,
    )

    async def _run() -> "None":
        loop = asyncio.get_running_loop()
        # for SIGINT and SIGTERM, signal the reporter
        # to stop gracefully
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, reporter.stop)

        try:
            await reporter.run()
        finally:
            logger.info("shutting_down")
            await ledger.close()
            logger.info("shutdown_complete")

    asyncio.run(_run())
    return 0


def main(argv: "list[str] | None" = None) -> "int":
    try:
        config, args = parse_args(argv)
        config.validate()
    except ValueError as err:
        raise SystemExit(f"Invalid configuration: {err}") from err

    setup_logging(config.log_level, config.log_format)

    if args.command == "serve":
        return run_serve(config)

    with open_ledger(config) as ledger:
        if args.command == "record":
            return run_record(ledger, args)
        return run_report(ledger, args, SystemClock())


if __name__ == "__main__":
    raise SystemExit(main())
