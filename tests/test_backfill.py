"""
Unit tests for the cost backfill.

Tests recompute, per-row failure tolerance and all-or-nothing commits.
"""

import pytest

from usage_ledger.storage.backfill import recompute_all_costs
from usage_ledger.storage.errors import BackfillWarning, NotInitializedError

from conftest import insert_raw, make_record


def flat_pricing(model, input_tokens, output_tokens):
    """One cent per thousand tokens, whatever the model."""
    return (input_tokens + output_tokens) / 100000


def picky_pricing(model, input_tokens, output_tokens):
    """Prices only gpt-4."""
    if model != "gpt-4":
        raise ValueError(f"Unsupported model: {model}")
    return 9.0


def _costs(repository):
    with repository.handle.connection() as conn:
        return dict(conn.execute("SELECT id, cost_usd FROM usage_logs").fetchall())


class TestRecomputeAllCosts:
    """Test cost recompute over existing rows."""

    def test_empty_table(self, repository):
        """Nothing to scan is not an error."""
        report = recompute_all_costs(repository.handle, flat_pricing)

        assert report.scanned == 0
        assert report.updated == 0
        assert report.failures == []

    def test_recomputes_every_row(self, repository):
        """Stored costs, including caller overrides, follow the new pricing."""
        repository.append(make_record(input_tokens=1000, output_tokens=0))
        repository.append(make_record(input_tokens=0, output_tokens=2000, cost_usd=5.0))

        report = recompute_all_costs(repository.handle, flat_pricing)

        assert report.scanned == 2
        assert report.updated == 2
        assert sorted(_costs(repository).values()) == [0.01, 0.02]

    def test_row_failures_do_not_abort_scan(self, repository):
        """A row that cannot be priced keeps its cost; others are updated."""
        kept_id = repository.append(make_record(model="mystery", cost_usd=1.5))
        updated_id = repository.append(make_record(model="gpt-4", cost_usd=1.5))

        report = recompute_all_costs(repository.handle, picky_pricing)

        assert report.scanned == 2
        assert report.updated == 1
        assert [row_id for row_id, _ in report.failures] == [kept_id]
        assert "mystery" in report.failures[0][1]

        costs = _costs(repository)
        assert costs[kept_id] == 1.5
        assert costs[updated_id] == 9.0

    def test_null_columns_priced_with_defaults(self, repository):
        """Missing model and token counts are priced as empty and zero."""
        insert_raw(
            repository,
            "INSERT INTO usage_logs (timestamp) VALUES (?)",
            ("2024-01-01 00:00:00",)
        )
        seen = []

        def recording_pricing(model, input_tokens, output_tokens):
            seen.append((model, input_tokens, output_tokens))
            return 0.0

        recompute_all_costs(repository.handle, recording_pricing)

        assert seen == [("", 0, 0)]

    def test_idempotent(self, repository):
        """Two runs with unchanged pricing leave identical costs."""
        for tokens in (10, 200, 3000):
            repository.append(make_record(input_tokens=tokens, output_tokens=tokens))

        recompute_all_costs(repository.handle, flat_pricing)
        first = _costs(repository)
        recompute_all_costs(repository.handle, flat_pricing)

        assert _costs(repository) == first

    def test_failed_batch_rolls_back(self, repository):
        """A failing update leaves every prior cost untouched."""
        first_id = repository.append(make_record(cost_usd=1.0))
        second_id = repository.append(make_record(cost_usd=2.0))
        insert_raw(repository, f"""
            CREATE TRIGGER block_update BEFORE UPDATE ON usage_logs
            WHEN NEW.id = {second_id}
            BEGIN
                SELECT RAISE(ABORT, 'update blocked');
            END
        """)

        with pytest.raises(BackfillWarning, match="update blocked"):
            recompute_all_costs(repository.handle, flat_pricing)

        costs = _costs(repository)
        assert costs[first_id] == 1.0
        assert costs[second_id] == 2.0

        # The connection is usable again after the rollback
        repository.append(make_record())
        assert repository.global_stats().total_requests == 3

    def test_closed_handle(self, ledger):
        """Backfill on a closed handle reports not initialized."""
        handle = ledger.handle
        ledger.shutdown()

        with pytest.raises(NotInitializedError):
            recompute_all_costs(handle, flat_pricing)
