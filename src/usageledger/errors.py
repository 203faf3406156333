"""
Error taxonomy for the usage ledger.

Construction failures (LedgerConnectionError, SchemaError) are fatal
to the owning process. Per-call failures derive from StorageError and
are safe to retry: writes are insert-if-absent and reads are read-only.
DecodeError never leaves view_usage; the offending row is skipped.
"""


class LedgerError(Exception):
    """
    base class for all usage ledger errors.
    """


class LedgerConnectionError(LedgerError):
    """
    the backing store could not be opened.
    """


class SchemaError(LedgerError):
    """
    the initial table/index creation failed.
    """


class StorageError(LedgerError):
    """
    base class for failures surfaced by record_usage and view_usage.
    """


class TransactionError(StorageError):
    """
    a write could not begin, execute or commit. The whole batch
    was rolled back.
    """


class QueryError(StorageError):
    """
    a read query failed.
    """


class DecodeError(LedgerError):
    """
    a single result row could not be decoded.
    """
