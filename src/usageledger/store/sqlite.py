import sqlite3
import threading
import time
from datetime import timedelta
from pathlib import Path
from typing import Sequence

import structlog

from usageledger.clock import Clock, SystemClock
from usageledger.errors import (
    DecodeError,
    LedgerConnectionError,
    QueryError,
    SchemaError,
    TransactionError,
)
from usageledger.metrics import LedgerMetrics
from usageledger.models import UsageRecord, UsageReport
from usageledger.quantize import (
    Timestamp,
    bucket_duration,
    precision_seconds,
    truncate,
)

logger = structlog.get_logger()

DEFAULT_PRECISION = timedelta(minutes=5)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS usage (
    bucket_timestamp INTEGER NOT NULL,
    key TEXT NOT NULL,
    PRIMARY KEY (bucket_timestamp, key)
);

CREATE INDEX IF NOT EXISTS idx_usage_bucket_timestamp ON usage(bucket_timestamp);
CREATE INDEX IF NOT EXISTS idx_usage_key ON usage(key);

CREATE TABLE IF NOT EXISTS ledger_meta (
    name TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

# only the primary key conflict is swallowed, any other
# constraint violation still aborts the batch
INSERT_SQL = """
INSERT INTO usage (bucket_timestamp, key) VALUES (?, ?)
ON CONFLICT (bucket_timestamp, key) DO NOTHING
"""

VIEW_SQL = """
SELECT key, COUNT(*) AS bucket_count
FROM usage
WHERE bucket_timestamp >= ? AND bucket_timestamp <= ?
GROUP BY key
"""


class SQLiteUsageLedger:
    """
    SQLiteUsageLedger implements the UsageLedger protocol on top of
    a single SQLite connection.

    Every operation goes through one lock-guarded connection, so all
    writes are serialized through one logical writer and each
    record_usage batch is observed atomically. Bucket boundaries are
    computed from the injected clock and anchored to the epoch.

    The precision must stay the same for the whole life of a store;
    reopening with a different one only logs a warning because
    existing rows cannot be re-bucketed.
    """

    def __init__(
        self,
        path: "str | Path",
        precision: "timedelta" = DEFAULT_PRECISION,
        clock: "Clock | None" = None,
        metrics: "LedgerMetrics | None" = None,
    ) -> "None":
        self._path = str(path)
        self._precision: "int" = precision_seconds(precision)
        self._clock: "Clock" = clock or SystemClock()
        self._metrics = metrics
        self._lock: "threading.Lock" = threading.Lock()
        self._closed = False
        self._conn: "sqlite3.Connection" = self._connect()

        try:
            self._init_schema()
        except sqlite3.Error as err:
            self._conn.close()
            raise SchemaError(f"failed to initialize ledger schema: {err}") from err

        logger.info(
            "ledger_opened",
            path=self._path,
            precision_seconds=self._precision,
        )

    @property
    def precision(self) -> "timedelta":
        return timedelta(seconds=self._precision)

    def _connect(self) -> "sqlite3.Connection":
        try:
            # autocommit mode: transactions are issued explicitly
            conn = sqlite3.connect(
                self._path,
                check_same_thread=False,
                isolation_level=None,
            )
            conn.execute("PRAGMA busy_timeout=5000")
            conn.execute("PRAGMA journal_mode=WAL")
        except sqlite3.Error as err:
            raise LedgerConnectionError(
                f"failed to open ledger database {self._path}: {err}"
            ) from err
        return conn

    def _init_schema(self) -> "None":
        self._conn.executescript(SCHEMA_SQL)
        self._conn.execute(
            "INSERT OR IGNORE INTO ledger_meta (name, value) VALUES (?, ?)",
            ("precision_seconds", str(self._precision)),
        )
        row = self._conn.execute(
            "SELECT value FROM ledger_meta WHERE name = ?",
            ("precision_seconds",),
        ).fetchone()

        if row is not None and row[0] != str(self._precision):
            logger.warning(
                "ledger_precision_mismatch",
                path=self._path,
                stored_precision_seconds=row[0],
                precision_seconds=self._precision,
            )

    def record_usage(self, keys: "Sequence[str]") -> "None":
        """
        records every key as active in the current bucket. The clock
        is sampled once so the whole batch lands in the same bucket.
        Keys already recorded for that bucket are left untouched;
        anything else that fails rolls back the whole batch.
        """
        if isinstance(keys, str):
            raise TypeError("keys must be a sequence of strings, not a string")

        bucket = truncate(self._clock.now(), self._precision)
        if not keys:
            logger.debug("usage_record_empty", bucket_timestamp=bucket)
            return

        started = time.monotonic()
        with self._lock:
            try:
                inserted = self._insert_batch(bucket, keys)
            except sqlite3.Error as err:
                if self._metrics is not None:
                    self._metrics.inc_error("record")
                logger.error(
                    "usage_record_failed",
                    bucket_timestamp=bucket,
                    key_count=len(keys),
                    error=str(err),
                )
                raise TransactionError(
                    f"failed to record usage for {len(keys)} keys at {bucket}: {err}"
                ) from err

        if self._metrics is not None:
            self._metrics.record_committed(inserted)
            self._metrics.observe_duration("record", time.monotonic() - started)

        logger.debug(
            "usage_recorded",
            bucket_timestamp=bucket,
            key_count=len(keys),
            inserted=inserted,
            precision_seconds=self._precision,
        )

    def _insert_batch(self, bucket: "int", keys: "Sequence[str]") -> "int":
        """
        runs the batch in one transaction and returns the number of
        rows that were actually inserted. Must hold the lock.
        """
        inserted = 0
        cursor = self._conn.cursor()
        try:
            cursor.execute("BEGIN IMMEDIATE")
            for key in keys:
                cursor.execute(INSERT_SQL, (bucket, key))
                inserted += cursor.rowcount
            cursor.execute("COMMIT")
        except BaseException:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            raise
        finally:
            cursor.close()
        return inserted

    def view_usage(self, start: "Timestamp", end: "Timestamp") -> "UsageReport":
        """
        aggregates the buckets recorded between start and end, both
        truncated to bucket boundaries and inclusive. Keys without
        any bucket in range are absent from the report, and a start
        after end simply yields an empty report.
        """
        start_bucket = truncate(start, self._precision)
        end_bucket = truncate(end, self._precision)

        started = time.monotonic()
        with self._lock:
            try:
                rows = self._conn.execute(VIEW_SQL, (start_bucket, end_bucket)).fetchall()
            except sqlite3.Error as err:
                if self._metrics is not None:
                    self._metrics.inc_error("view")
                logger.error(
                    "usage_view_failed",
                    start_bucket=start_bucket,
                    end_bucket=end_bucket,
                    error=str(err),
                )
                raise QueryError(f"failed to query usage data: {err}") from err

        report: "UsageReport" = {}
        for row in rows:
            try:
                key, count = self._decode_row(row)
            except DecodeError as err:
                # one corrupt row must not fail the whole report
                if self._metrics is not None:
                    self._metrics.inc_decode_failure()
                logger.error("usage_row_decode_failed", row=repr(row), error=str(err))
                continue

            report[key] = bucket_duration(count, self._precision)
            logger.debug(
                "usage_found",
                key=key,
                bucket_count=count,
                total_seconds=count * self._precision,
            )

        if self._metrics is not None:
            self._metrics.observe_duration("view", time.monotonic() - started)

        logger.debug(
            "usage_viewed",
            start_bucket=start_bucket,
            end_bucket=end_bucket,
            key_count=len(report),
        )
        return report

    @staticmethod
    def _decode_row(row: "tuple[object, object]") -> "tuple[str, int]":
        key, count = row
        if not isinstance(key, str):
            raise DecodeError(f"key has type {type(key).__name__}, expected str")
        if not isinstance(count, int) or count < 0:
            raise DecodeError(f"invalid bucket count {count!r}")
        return key, count

    def records(self) -> "list[UsageRecord]":
        """
        returns every stored row ordered by bucket then key.
        Mostly useful for inspection and tests.
        """
        with self._lock:
            try:
                rows = self._conn.execute(
                    "SELECT bucket_timestamp, key FROM usage "
                    "ORDER BY bucket_timestamp, key"
                ).fetchall()
            except sqlite3.Error as err:
                raise QueryError(f"failed to list usage records: {err}") from err
        return [UsageRecord(bucket_timestamp=ts, key=key) for ts, key in rows]

    def close(self) -> "None":
        """
        closes the connection. Closing twice is logged and ignored.
        """
        with self._lock:
            if self._closed:
                logger.warning("ledger_already_closed", path=self._path)
                return
            self._closed = True

            try:
                self._conn.close()
            except sqlite3.Error as err:
                logger.error("ledger_close_failed", path=self._path, error=str(err))
                return

        logger.info("ledger_closed", path=self._path)

    def __enter__(self) -> "SQLiteUsageLedger":
        return self

    def __exit__(self, *exc_info: "object") -> "None":
        self.close()
