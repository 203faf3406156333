from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from usageledger.models import UsageReport


class LedgerMetrics:
    """
    instruments ledger operations and publishes usage reports
    as Prometheus series.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._record_calls: "Counter" = Counter(
            "usage_ledger_record_calls_total",
            "Total record_usage calls that committed",
            registry=registry,
        )
        self._rows_inserted: "Counter" = Counter(
            "usage_ledger_rows_inserted_total",
            "Total (bucket, key) rows newly inserted",
            registry=registry,
        )
        self._errors: "Counter" = Counter(
            "usage_ledger_errors_total",
            "Total number of ledger errors by operation",
            ["operation"],
            registry=registry,
        )
        self._decode_failures: "Counter" = Counter(
            "usage_ledger_decode_failures_total",
            "Total number of result rows skipped because they failed to decode",
            registry=registry,
        )
        self._duration: "Histogram" = Histogram(
            "usage_ledger_operation_duration_seconds",
            "Duration of ledger operations",
            ["operation"],
            registry=registry,
        )
        self._key_usage: "Gauge" = Gauge(
            "usage_ledger_key_usage_seconds",
            "Accumulated usage per key over the reporting window",
            ["key"],
            registry=registry,
        )
        self._reported_keys: "set[str]" = set()

    def record_committed(self, inserted: "int") -> "None":
        self._record_calls.inc()
        self._rows_inserted.inc(inserted)

    def inc_error(self, operation: "str") -> "None":
        self._errors.labels(operation=operation).inc()

    def inc_decode_failure(self) -> "None":
        self._decode_failures.inc()

    def observe_duration(self, operation: "str", duration_seconds: "float") -> "None":
        self._duration.labels(operation=operation).observe(duration_seconds)

    def publish_report(self, report: "UsageReport") -> "None":
        """
        sets the per-key usage gauge from a report. Keys published
        by a previous report but absent from this one are removed
        so stale series do not linger.
        """
        for key in self._reported_keys - set(report):
            self._key_usage.remove(key)

        for key, duration in report.items():
            self._key_usage.labels(key=key).set(duration.total_seconds())

        self._reported_keys = set(report.keys())
