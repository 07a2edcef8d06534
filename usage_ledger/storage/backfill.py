"""
Cost backfill.

Recomputes cost_usd for every stored record with the current pricing
oracle so historical figures follow pricing changes. Runs once at
startup and on demand from the CLI.
"""

import logging
import sqlite3
from typing import List, Tuple

from ..core.pricing import PricingOracle
from .db import StorageHandle
from .errors import BackfillWarning
from .models import BackfillReport

logger = logging.getLogger(__name__)


def recompute_all_costs(handle: StorageHandle, pricing: PricingOracle) -> BackfillReport:
    """Recompute the cost of every row and apply the result atomically.

    A row whose cost cannot be computed is recorded in the report and
    left unchanged; the scan carries on. All updates are applied in a
    single transaction, so either every new cost becomes visible or
    none does.

    Args:
        handle: Open storage handle
        pricing: Oracle mapping (model, input tokens, output tokens) to USD

    Returns:
        Report of scanned rows, applied updates and per-row failures

    Raises:
        BackfillWarning: If the batch could not be committed
        NotInitializedError: If the handle is closed
    """
    report = BackfillReport()
    updates: List[Tuple[float, int]] = []

    try:
        with handle.transaction() as conn:
            rows = conn.execute("""
                SELECT id, COALESCE(model, ''), COALESCE(input_tokens, 0),
                       COALESCE(output_tokens, 0)
                FROM usage_logs
            """).fetchall()

            for row_id, model, input_tokens, output_tokens in rows:
                report.scanned += 1
                try:
                    updates.append((float(pricing(model, input_tokens, output_tokens)), row_id))
                except Exception as e:
                    report.failures.append((row_id, str(e)))
                    logger.debug("Skipping cost for row %s: %s", row_id, e)

            conn.executemany("UPDATE usage_logs SET cost_usd = ? WHERE id = ?", updates)
    except sqlite3.Error as e:
        raise BackfillWarning(f"Cost backfill rolled back: {e}") from e

    report.updated = len(updates)
    logger.info(
        "Recomputed costs for %d of %d usage records (%d skipped)",
        report.updated, report.scanned, len(report.failures)
    )
    return report
