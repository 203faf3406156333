import os
from dataclasses import dataclass
from datetime import timedelta


@dataclass
class Config:
    db_path: "str" = "usage-ledger.db"
    # bucket width in seconds; must never change for an existing store
    precision_seconds: "int" = 300
    log_level: "str" = "info"
    log_format: "str" = "console"

    # listen_address: format ":9186" or
    # "0.0.0.0:9186"
    listen_address: "str" = ":9186"
    # trailing window published by the reporter, in seconds
    report_window: "int" = 3600
    # reporting interval in seconds
    report_interval: "int" = 60

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            db_path=os.environ.get("USAGE_LEDGER_DB_PATH", "usage-ledger.db"),
            precision_seconds=int(
                os.environ.get("USAGE_LEDGER_PRECISION_SECONDS", "300")
            ),
            log_level=os.environ.get("USAGE_LEDGER_LOG_LEVEL", "info"),
            log_format=os.environ.get("USAGE_LEDGER_LOG_FORMAT", "console"),
        )

    @property
    def precision(self) -> "timedelta":
        return timedelta(seconds=self.precision_seconds)

    def validate(self) -> "None":
        if self.precision_seconds <= 0:
            raise ValueError(
                f"precision must be positive, got {self.precision_seconds}s"
            )
        if self.report_window <= 0:
            raise ValueError(f"report window must be positive, got {self.report_window}s")
        if self.report_interval <= 0:
            raise ValueError(
                f"report interval must be positive, got {self.report_interval}s"
            )
