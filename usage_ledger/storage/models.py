"""
Data models for storage layer.

Defines the usage record and the aggregate views built from it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class UsageRecord:
    """Telemetry for one completed proxy request.

    Records are append-only. The id is assigned by storage, and the only
    field ever rewritten after insertion is cost_usd, by the backfill.
    total_tokens is taken as given and is not derived from the other
    token counts.
    """
    timestamp: datetime
    model: str = ""
    api_key: str = ""
    source: str = "unknown"
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    is_failure: bool = False
    duration_ms: int = 0
    prompt_text: str = ""
    completion_text: str = ""
    cost_usd: float = 0.0
    id: Optional[int] = None

    def __post_init__(self):
        """Validate counters are non-negative."""
        for name in ("input_tokens", "output_tokens", "total_tokens", "duration_ms"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")


@dataclass(frozen=True)
class TrendBucket:
    """Aggregated usage for one hour or day."""
    bucket: str
    requests: int
    failures: int
    tokens: int
    cost: float


@dataclass(frozen=True)
class GlobalStats:
    """All-time totals over the whole table."""
    total_requests: int = 0
    total_tokens: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_cost: float = 0.0


@dataclass(frozen=True)
class ModelStats:
    """Request and token totals for a single model."""
    model: str
    total_requests: int
    total_tokens: int


@dataclass(frozen=True)
class PeriodCosts:
    """Cost sums over overlapping rolling windows."""
    last_24h: float = 0.0
    last_7d: float = 0.0
    all_time: float = 0.0


@dataclass
class BackfillReport:
    """Outcome of a cost recompute pass."""
    scanned: int = 0
    updated: int = 0
    failures: List[Tuple[int, str]] = field(default_factory=list)


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to UTC at second precision.

    Naive datetimes are taken to already be in UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0)


def format_timestamp(value: datetime) -> str:
    """Format a datetime the way it is stored: UTC, second precision."""
    return to_utc(value).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp into an aware UTC datetime."""
    return datetime.strptime(value[:19].replace("T", " "), TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
