"""
Error taxonomy for the storage layer.

Fatal conditions derive from LedgerError and propagate to the caller.
Non-fatal startup conditions derive from LedgerWarning; they are logged
and collected by the lifecycle controller instead of aborting startup.
"""


class LedgerError(Exception):
    """Base class for fatal storage errors."""


class NotInitializedError(LedgerError):
    """Operation attempted before initialization or after shutdown."""


class StorageUnavailableError(LedgerError):
    """Storage directory or database file cannot be created or opened."""


class SchemaError(LedgerError):
    """Base table or index creation failed."""


class QueryError(LedgerError):
    """Malformed query arguments or an underlying read failure."""


class LedgerWarning(UserWarning):
    """Base class for non-fatal storage conditions."""


class MigrationWarning(LedgerWarning):
    """An additive column migration failed for a reason other than
    the column already existing."""


class BackfillWarning(LedgerWarning):
    """The cost backfill could not be committed; prior costs are kept."""
