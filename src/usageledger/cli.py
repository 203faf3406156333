import argparse
from datetime import datetime

from usageledger.config import Config
from usageledger.logging import LOG_FORMATS
from usageledger.quantize import Timestamp


def parse_timestamp(value: "str") -> "Timestamp":
    """
    accepts unix seconds ("1700000000") or an ISO-8601 instant
    ("2024-01-01T00:00:00+00:00").
    """
    try:
        return float(value)
    except ValueError:
        pass

    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"invalid timestamp {value!r}: expected unix seconds or ISO-8601"
        ) from None


def build_parser() -> "argparse.ArgumentParser":
    parser = argparse.ArgumentParser(
        prog="usage-ledger",
        description="Time-quantized usage ledger",
    )
    parser.add_argument(
        "--db.path",
        dest="db_path",
        default=None,
        help="Path to the SQLite ledger (default: $USAGE_LEDGER_DB_PATH or usage-ledger.db)",
    )
    parser.add_argument(
        "--ledger.precision",
        dest="precision_seconds",
        type=int,
        default=None,
        help="Bucket width in seconds (default: $USAGE_LEDGER_PRECISION_SECONDS or 300)",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default=None,
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log.format",
        dest="log_format",
        default=None,
        choices=list(LOG_FORMATS),
        help="Log format (default: console)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    record = commands.add_parser("record", help="Record usage for keys in the current bucket")
    record.add_argument("keys", nargs="+", metavar="KEY")

    report = commands.add_parser("report", help="Print accumulated usage as JSON")
    report.add_argument(
        "--from",
        dest="start",
        type=parse_timestamp,
        default=None,
        help="Range start, unix seconds or ISO-8601 (default: one hour ago)",
    )
    report.add_argument(
        "--to",
        dest="end",
        type=parse_timestamp,
        default=None,
        help="Range end, unix seconds or ISO-8601 (default: now)",
    )

    serve = commands.add_parser("serve", help="Export usage as Prometheus metrics")
    serve.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=":9186",
        help="Address to listen on (default: :9186)",
    )
    serve.add_argument(
        "--report.window",
        dest="report_window",
        type=int,
        default=3600,
        help="Trailing window to report in seconds (default: 3600)",
    )
    serve.add_argument(
        "--report.interval",
        dest="report_interval",
        type=int,
        default=60,
        help="Reporting interval in seconds (default: 60)",
    )
    return parser


def parse_args(
    argv: "list[str] | None" = None,
) -> "tuple[Config, argparse.Namespace]":
    args = build_parser().parse_args(argv)
    config = Config.from_env()

    # flags only override the environment when given
    for field in ("db_path", "precision_seconds", "log_level", "log_format"):
        value = getattr(args, field)
        if value is not None:
            setattr(config, field, value)

    if args.command == "serve":
        config.listen_address = args.listen_address
        config.report_window = args.report_window
        config.report_interval = args.report_interval

    return config, args
