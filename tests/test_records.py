"""Tests for RecordRepository and wipe_all."""

import json
from decimal import Decimal

import pytest

from ledgervault.audit import AuditLogger
from ledgervault.crypto import EncryptionKeyRequired, EncryptionSession
from ledgervault.models.audit import AuditEventType
from ledgervault.models.crypto import KeyOrigin
from ledgervault.models.records import TRANSACTION_SHAPE
from ledgervault.services.records import RecordRepository, wipe_all
from ledgervault.services.storage import InMemoryAuditStorage, NotFoundError


@pytest.fixture
def transactions(repositories):
    return repositories["transactions"]


@pytest.fixture
def locked_session():
    return EncryptionSession(mode=KeyOrigin.RANDOM)


class TestEncryptedRepository:
    """Repository with an unlocked session."""

    @pytest.mark.asyncio
    async def test_create_stores_ciphertext_only(self, transactions, store, make_transaction):
        record = make_transaction("42.50", description="Groceries")

        await transactions.create(record)

        [row] = await store.read_all("transactions")
        assert row["ciphertext"] and row["iv"]
        assert row["amount"] is None
        assert "Groceries" not in json.dumps(row)

    @pytest.mark.asyncio
    async def test_fetch_all_decrypts_newest_first(self, transactions, make_transaction):
        old = make_transaction("1.00", days_ago=10)
        new = make_transaction("2.00", days_ago=1)
        middle = make_transaction("3.00", days_ago=5)
        for record in (old, new, middle):
            await transactions.create(record)

        records = await transactions.fetch_all()

        assert [r.id for r in records] == [new.id, middle.id, old.id]
        assert records[0].amount == Decimal("2.00")

    @pytest.mark.asyncio
    async def test_batch_create(self, transactions, make_transaction):
        batch = [make_transaction(f"{i}.00", days_ago=i) for i in range(1, 4)]

        await transactions.batch_create(batch)

        assert await transactions.count() == 3

    @pytest.mark.asyncio
    async def test_batch_create_rejects_wrong_type_before_writing(
        self, transactions, store, make_transaction, make_goal,
    ):
        with pytest.raises(TypeError):
            await transactions.batch_create([make_transaction(), make_goal()])
        assert store.writes() == []

    @pytest.mark.asyncio
    async def test_update_merges_sensitive_fields(self, transactions, make_transaction):
        record = make_transaction("10.00", description="Lunch", notes="team")
        await transactions.create(record)

        updated = await transactions.update(record.id, {"amount": Decimal("12.00")})

        assert updated.amount == Decimal("12.00")
        assert updated.description == "Lunch"
        assert updated.notes == "team"

    @pytest.mark.asyncio
    async def test_update_missing_record(self, transactions):
        with pytest.raises(NotFoundError):
            await transactions.update("missing", {"mood": "happy"})

    @pytest.mark.asyncio
    async def test_delete(self, transactions, make_transaction):
        record = make_transaction()
        await transactions.create(record)

        await transactions.delete(record.id)

        assert await transactions.count() == 0

    @pytest.mark.asyncio
    async def test_goals_repository(self, repositories, make_goal):
        goals = repositories["goals"]
        await goals.create(make_goal("500.00", "20.00"))

        [goal] = await goals.fetch_all()
        assert goal.target_amount == Decimal("500.00")
        assert goal.current_amount == Decimal("20.00")


class TestLockedRepository:
    """A locked session must never reach the store for sensitive work."""

    @pytest.mark.asyncio
    async def test_create_fails_without_store_call(self, store, locked_session, make_transaction):
        repository = RecordRepository(TRANSACTION_SHAPE, store, locked_session)

        with pytest.raises(EncryptionKeyRequired):
            await repository.create(make_transaction())
        assert store.operations == []

    @pytest.mark.asyncio
    async def test_fetch_and_update_fail_without_store_call(self, store, locked_session):
        repository = RecordRepository(TRANSACTION_SHAPE, store, locked_session)

        with pytest.raises(EncryptionKeyRequired):
            await repository.fetch_all()
        with pytest.raises(EncryptionKeyRequired):
            await repository.update("any", {"amount": Decimal("1.00")})
        assert store.operations == []

    @pytest.mark.asyncio
    async def test_count_works_while_locked(
        self, store, locked_session, transactions, make_transaction,
    ):
        await transactions.create(make_transaction())
        repository = RecordRepository(TRANSACTION_SHAPE, store, locked_session)

        assert await repository.count() == 1


class TestClearRepository:

    @pytest.mark.asyncio
    async def test_disabled_encryption_stores_clear(self, store, clear_session, make_transaction):
        repository = RecordRepository(TRANSACTION_SHAPE, store, clear_session)
        await repository.create(make_transaction("5.25"))

        [row] = await store.read_all("transactions")
        assert row["amount"] == 5.25
        assert row["ciphertext"] is None


class TestWipeAndAudit:

    @pytest.mark.asyncio
    async def test_wipe_all(self, repositories, store, make_transaction, make_goal):
        await repositories["transactions"].batch_create([make_transaction(), make_transaction()])
        await repositories["goals"].create(make_goal())

        deleted = await wipe_all(store)

        assert deleted == {"transactions": 2, "goals": 1}
        assert await store.read_all("transactions") == []
        assert await store.read_all("goals") == []

    @pytest.mark.asyncio
    async def test_audit_events_carry_no_sensitive_values(
        self, store, unlocked_session, make_transaction,
    ):
        audit_storage = InMemoryAuditStorage()
        repository = RecordRepository(
            TRANSACTION_SHAPE,
            store,
            unlocked_session,
            audit_logger=AuditLogger(audit_storage),
        )
        record = make_transaction("987.65", description="Rent")

        await repository.create(record)
        await repository.update(record.id, {"description": "Rent June"})

        types = [e.event_type for e in audit_storage.events]
        assert types == [AuditEventType.RECORD_SAVED, AuditEventType.RECORD_UPDATED]
        dumped = json.dumps([e.to_log_dict() for e in audit_storage.events])
        assert "987.65" not in dumped
        assert "Rent" not in dumped
