"""
Shared fixtures for the LedgerVault test suite.

Test strategy:
1. Unit tests for individual components (keys, envelope, codec, models)
2. Service tests against the in-memory store
3. No real Google API calls in tests (worksheets are mocked)
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from ledgervault.config.local import LocalConfig, LocalConfigStore
from ledgervault.crypto import EncryptionSession, generate_random
from ledgervault.models.records import GOAL_SHAPE, TRANSACTION_SHAPE, Goal, Transaction
from ledgervault.services.records import RecordRepository
from ledgervault.services.storage import InMemoryRecordStore, StorageError


class FlakyRecordStore(InMemoryRecordStore):
    """In-memory store whose Nth update calls (1-based) fail."""

    def __init__(self, fail_on_update=(), fail_tables=None, **kwargs):
        super().__init__(**kwargs)
        self.fail_on_update = set(fail_on_update)
        self.fail_tables = fail_tables
        self.update_calls = 0

    async def update(self, table, row_id, patch):
        if self.fail_tables is None or table in self.fail_tables:
            self.update_calls += 1
            if self.update_calls in self.fail_on_update:
                self.operations.append(("update", table, row_id))
                raise StorageError("simulated write failure")
        return await super().update(table, row_id, patch)


@pytest.fixture
def random_key():
    return generate_random()


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def config_store(tmp_path):
    return LocalConfigStore(tmp_path / "config.json")


@pytest.fixture
def unlocked_session(config_store):
    """Session in random-key mode, already unlocked."""
    session = EncryptionSession()
    config, _ = session.setup_random_key(config_store.load())
    config_store.save(config)
    return session


@pytest.fixture
def clear_session(config_store):
    session = EncryptionSession()
    config_store.save(session.setup_disabled(LocalConfig()))
    return session


@pytest.fixture
def make_transaction():
    def _make(amount="19.99", days_ago=0, **kwargs):
        return Transaction(
            type=kwargs.pop("type", "expense"),
            date=date(2024, 6, 30) - timedelta(days=days_ago),
            amount=Decimal(amount),
            **kwargs,
        )
    return _make


@pytest.fixture
def make_goal():
    def _make(target="1000.00", current="250.00", **kwargs):
        return Goal(
            name=kwargs.pop("name", "Emergency fund"),
            target_amount=Decimal(target),
            current_amount=Decimal(current),
            **kwargs,
        )
    return _make


@pytest.fixture
def repositories(store, unlocked_session):
    return {
        shape.table: RecordRepository(shape, store, unlocked_session)
        for shape in (TRANSACTION_SHAPE, GOAL_SHAPE)
    }


@pytest.fixture
def flaky_store():
    return FlakyRecordStore
