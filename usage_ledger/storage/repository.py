"""
Repository pattern for data access.

Appends usage records and answers the read projections over them.
"""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Iterator, List, Optional, Tuple

from ..core.pricing import PricingOracle, calculate_cost
from .db import StorageHandle
from .errors import QueryError
from .models import (
    GlobalStats,
    ModelStats,
    PeriodCosts,
    TrendBucket,
    UsageRecord,
    format_timestamp,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

RECORD_COLUMNS = """
    id, COALESCE(timestamp, '1970-01-01 00:00:00'), COALESCE(api_key, ''), COALESCE(model, ''),
    COALESCE(input_tokens, 0), COALESCE(output_tokens, 0),
    COALESCE(total_tokens, 0), COALESCE(is_failure, 0),
    COALESCE(source, 'unknown'), COALESCE(duration_ms, 0),
    COALESCE(prompt_text, ''), COALESCE(completion_text, ''),
    COALESCE(cost_usd, 0)
"""

INSERT_SQL = """
    INSERT INTO usage_logs
    (timestamp, api_key, model, input_tokens, output_tokens, total_tokens,
     is_failure, source, duration_ms, prompt_text, completion_text, cost_usd)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

BUCKET_FORMATS = {
    "hour": "%Y-%m-%d %H:00",
    "day": "%Y-%m-%d",
}

STATUS_FILTERS = {
    "success": 0,
    "failure": 1,
}


class UsageRepository:
    """Repository for writing and reading usage records.

    Wraps a storage handle owned by the lifecycle controller. Reads
    never mutate the table; the only write is append.
    """

    def __init__(self, handle: StorageHandle, pricing: PricingOracle = calculate_cost):
        """Initialize the repository.

        Args:
            handle: Open storage handle
            pricing: Oracle used to cost records appended without a cost
        """
        self.handle = handle
        self.pricing = pricing

    # Writes

    def append(self, record: UsageRecord) -> int:
        """Append one usage record.

        A zero cost is computed from the pricing oracle; a nonzero cost
        supplied by the caller is stored unchanged.

        Args:
            record: The usage record to store

        Returns:
            The id assigned by storage

        Raises:
            NotInitializedError: If the ledger is not initialized
        """
        row = self._to_row(self._priced(record))
        with self.handle.connection() as conn:
            cursor = conn.execute(INSERT_SQL, row)
            return cursor.lastrowid

    def append_many(self, records: List[UsageRecord]) -> int:
        """Append several usage records atomically.

        Args:
            records: Usage records to store

        Returns:
            Number of records inserted
        """
        if not records:
            return 0

        rows = [self._to_row(self._priced(record)) for record in records]
        with self.handle.transaction() as conn:
            conn.executemany(INSERT_SQL, rows)
        return len(rows)

    def _priced(self, record: UsageRecord) -> UsageRecord:
        if record.cost_usd:
            return record
        try:
            cost = float(self.pricing(record.model, record.input_tokens, record.output_tokens))
        except ValueError as e:
            logger.warning("No price for model %r, storing zero cost: %s", record.model, e)
            return record
        return replace(record, cost_usd=cost)

    @staticmethod
    def _to_row(record: UsageRecord) -> Tuple:
        return (
            format_timestamp(record.timestamp),
            record.api_key,
            record.model,
            record.input_tokens,
            record.output_tokens,
            record.total_tokens,
            1 if record.is_failure else 0,
            record.source,
            record.duration_ms,
            record.prompt_text,
            record.completion_text,
            record.cost_usd or 0.0,
        )

    # Reads

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        with self.handle.connection() as conn:
            try:
                yield conn
            except sqlite3.Error as e:
                raise QueryError(f"Usage query failed: {e}") from e

    def recent_activity(
        self,
        limit: int,
        offset: int = 0,
        model_filter: str = "",
        status_filter: str = ""
    ) -> List[UsageRecord]:
        """Get one page of usage records, newest first.

        Args:
            limit: Maximum number of records to return
            offset: Number of matching records to skip
            model_filter: Exact model name; empty means all models
            status_filter: "success" or "failure"; anything else means all

        Returns:
            Matching records ordered by timestamp (newest first)

        Raises:
            QueryError: If limit or offset is negative, or the read fails
        """
        if limit < 0 or offset < 0:
            raise QueryError("limit and offset must be >= 0")

        query, params = self._activity_query(model_filter, status_filter)
        query += " LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._reading() as conn:
            rows = conn.execute(query, params).fetchall()
        return self._rows_to_records(rows)

    def all_activity(self, model_filter: str = "", status_filter: str = "") -> List[UsageRecord]:
        """Get every matching usage record, newest first."""
        query, params = self._activity_query(model_filter, status_filter)
        with self._reading() as conn:
            rows = conn.execute(query, params).fetchall()
        return self._rows_to_records(rows)

    @staticmethod
    def _activity_query(model_filter: str, status_filter: str) -> Tuple[str, list]:
        query = f"SELECT {RECORD_COLUMNS} FROM usage_logs"
        conditions = []
        params = []

        if model_filter:
            conditions.append("model = ?")
            params.append(model_filter)
        if status_filter in STATUS_FILTERS:
            conditions.append("is_failure = ?")
            params.append(STATUS_FILTERS[status_filter])

        if conditions:
            query += " WHERE " + " AND ".join(conditions)

        # Records within the same second are a tie; id only makes paging stable
        query += " ORDER BY timestamp DESC, id DESC"
        return query, params

    @classmethod
    def _rows_to_records(cls, rows: List[tuple]) -> List[UsageRecord]:
        try:
            return [cls._row_to_record(row) for row in rows]
        except (TypeError, ValueError) as e:
            raise QueryError(f"Unreadable usage record: {e}") from e

    @staticmethod
    def _row_to_record(row: tuple) -> UsageRecord:
        return UsageRecord(
            id=row[0],
            timestamp=parse_timestamp(row[1]),
            api_key=row[2],
            model=row[3],
            input_tokens=row[4],
            output_tokens=row[5],
            total_tokens=row[6],
            is_failure=bool(row[7]),
            source=row[8],
            duration_ms=row[9],
            prompt_text=row[10],
            completion_text=row[11],
            cost_usd=float(row[12]),
        )

    def usage_trends(self, granularity: str = "day", limit: int = 30) -> List[TrendBucket]:
        """Get per-bucket usage for the most recent hours or days.

        The `limit` most recent buckets are selected, then returned in
        chronological order.

        Args:
            granularity: "hour" or "day"; any other value means "day"
            limit: Maximum number of buckets

        Returns:
            Trend buckets ordered oldest first
        """
        if limit < 0:
            raise QueryError("limit must be >= 0")

        bucket_format = BUCKET_FORMATS.get(granularity, BUCKET_FORMATS["day"])
        with self._reading() as conn:
            rows = conn.execute("""
                SELECT
                    COALESCE(strftime(?, timestamp), '0') AS bucket,
                    COUNT(*) AS requests,
                    COALESCE(SUM(CASE WHEN is_failure = 1 THEN 1 ELSE 0 END), 0) AS failures,
                    COALESCE(SUM(total_tokens), 0) AS tokens,
                    COALESCE(SUM(cost_usd), 0) AS cost
                FROM usage_logs
                GROUP BY bucket
                ORDER BY bucket DESC
                LIMIT ?
            """, (bucket_format, limit)).fetchall()

        trends = [
            TrendBucket(
                bucket=row[0],
                requests=row[1],
                failures=row[2],
                tokens=row[3],
                cost=float(row[4])
            )
            for row in rows
        ]
        trends.reverse()
        return trends

    def global_stats(self) -> GlobalStats:
        """Get all-time totals. An empty table yields zeros."""
        with self._reading() as conn:
            row = conn.execute("""
                SELECT
                    COUNT(*),
                    COALESCE(SUM(total_tokens), 0),
                    COALESCE(SUM(CASE WHEN COALESCE(is_failure, 0) = 0 THEN 1 ELSE 0 END), 0),
                    COALESCE(SUM(CASE WHEN is_failure = 1 THEN 1 ELSE 0 END), 0),
                    COALESCE(SUM(cost_usd), 0)
                FROM usage_logs
            """).fetchone()

        return GlobalStats(
            total_requests=row[0],
            total_tokens=row[1],
            success_count=row[2],
            failure_count=row[3],
            total_cost=float(row[4])
        )

    def per_model_stats(self) -> List[ModelStats]:
        """Get request and token totals per model, busiest first."""
        with self._reading() as conn:
            rows = conn.execute("""
                SELECT
                    COALESCE(NULLIF(model, ''), 'unknown') AS model_name,
                    COUNT(*) AS total_requests,
                    COALESCE(SUM(total_tokens), 0) AS total_tokens
                FROM usage_logs
                GROUP BY model_name
                ORDER BY total_requests DESC, model_name ASC
            """).fetchall()

        return [
            ModelStats(model=row[0], total_requests=row[1], total_tokens=row[2])
            for row in rows
        ]

    def period_costs(self, now: Optional[datetime] = None) -> PeriodCosts:
        """Get cost totals for the last 24 hours, the last 7 days and all time.

        Args:
            now: Reference instant; defaults to the current UTC time

        Returns:
            Cost sums, zero for windows with no records
        """
        if now is None:
            now = datetime.now(timezone.utc)
        day_start = format_timestamp(now - timedelta(days=1))
        week_start = format_timestamp(now - timedelta(days=7))

        with self._reading() as conn:
            row = conn.execute("""
                SELECT
                    COALESCE(SUM(CASE WHEN timestamp >= ? THEN cost_usd ELSE 0 END), 0),
                    COALESCE(SUM(CASE WHEN timestamp >= ? THEN cost_usd ELSE 0 END), 0),
                    COALESCE(SUM(cost_usd), 0)
                FROM usage_logs
            """, (day_start, week_start)).fetchone()

        return PeriodCosts(
            last_24h=float(row[0]),
            last_7d=float(row[1]),
            all_time=float(row[2])
        )
