"""
Storage layer for Usage Ledger.

Provides the lifecycle controller, the usage repository and the data
types they exchange.
"""

from .backfill import recompute_all_costs
from .db import StorageHandle
from .errors import (
    BackfillWarning,
    LedgerError,
    LedgerWarning,
    MigrationWarning,
    NotInitializedError,
    QueryError,
    SchemaError,
    StorageUnavailableError,
)
from .lifecycle import UsageLedger
from .models import (
    BackfillReport,
    GlobalStats,
    ModelStats,
    PeriodCosts,
    TrendBucket,
    UsageRecord,
)
from .repository import UsageRepository
from .schema import ensure_schema

__all__ = [
    "BackfillReport",
    "BackfillWarning",
    "GlobalStats",
    "LedgerError",
    "LedgerWarning",
    "MigrationWarning",
    "ModelStats",
    "NotInitializedError",
    "PeriodCosts",
    "QueryError",
    "SchemaError",
    "StorageHandle",
    "StorageUnavailableError",
    "TrendBucket",
    "UsageLedger",
    "UsageRecord",
    "UsageRepository",
    "ensure_schema",
    "recompute_all_costs",
]
