"""
Shared fixtures for storage tests.
"""

import tempfile
from datetime import datetime, timezone

import pytest

from usage_ledger.storage.lifecycle import UsageLedger
from usage_ledger.storage.models import UsageRecord


@pytest.fixture
def storage_dir():
    """Temporary directory for the usage database."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def ledger(storage_dir):
    """Initialized ledger using the built-in pricing table."""
    ledger = UsageLedger()
    ledger.initialize(storage_dir)
    yield ledger
    ledger.shutdown()


@pytest.fixture
def repository(ledger):
    """Repository bound to the initialized ledger."""
    return ledger.repository()


def make_record(**overrides) -> UsageRecord:
    """Build a usage record with sensible defaults."""
    values = dict(
        timestamp=datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc),
        api_key="key-1",
        model="gpt-4",
        source="proxy",
        input_tokens=100,
        output_tokens=50,
        total_tokens=150,
        is_failure=False,
        duration_ms=250,
        prompt_text="Hello",
        completion_text="Hi there",
    )
    values.update(overrides)
    return UsageRecord(**values)


def insert_raw(repository, sql: str, params=()) -> None:
    """Run a statement directly against the ledger connection."""
    with repository.handle.connection() as conn:
        conn.execute(sql, params)
