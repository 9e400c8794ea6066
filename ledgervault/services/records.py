"""
Record Repository

CRUD for one record type (transactions or goals) on top of a
RecordStoreInterface, with the RecordCodec between them.

CRITICAL: Every operation that reads or writes sensitive fields asks the
session for its key BEFORE the store is touched. A locked session
therefore fails with EncryptionKeyRequired and issues no store call at
all. There is no cleartext fallback while encryption is enabled.

Operations that never see sensitive values (count, delete, wipe) work in
any session state.
"""

from typing import Any, Iterable, Optional

from pydantic import BaseModel

from ledgervault.audit import AuditLogger
from ledgervault.codec import RecordCodec
from ledgervault.crypto import EncryptionSession
from ledgervault.models.crypto import KeyMaterial
from ledgervault.models.records import ALL_SHAPES, RecordShape
from ledgervault.models.storage import StorageRow, parse_storage_row
from ledgervault.services.storage import (
    NotFoundError,
    RecordStoreInterface,
)


class RecordRepository:
    """Repository for one record shape."""

    def __init__(
        self,
        shape: RecordShape,
        store: RecordStoreInterface,
        session: EncryptionSession,
        codec: Optional[RecordCodec] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._shape = shape
        self._store = store
        self._session = session
        self._codec = codec or RecordCodec(shape)
        self._audit = audit_logger

    @property
    def shape(self) -> RecordShape:
        return self._shape

    @property
    def table(self) -> str:
        return self._shape.table

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_all(self) -> list[BaseModel]:
        """
        All records, decrypted, newest first.

        Raises:
            EncryptionKeyRequired: Session is locked
            DecryptionFailed: A row does not open with the session key
        """
        return [record for _, record in await self.snapshot(self._session.require_key())]

    async def snapshot(
        self,
        key: Optional[KeyMaterial],
    ) -> list[tuple[StorageRow, BaseModel]]:
        """Every stored row paired with its decoded record, newest first."""
        raw_rows = await self._store.read_all(self.table)

        pairs = []
        for raw in raw_rows:
            row = parse_storage_row(raw, self._shape)
            pairs.append((row, self._codec.from_storage(row, key)))

        sort_field = self._shape.sort_field
        pairs.sort(
            key=lambda pair: (getattr(pair[1], sort_field), pair[1].created_at),
            reverse=True,
        )
        return pairs

    async def count(self) -> int:
        """Number of stored records. Needs no key."""
        return len(await self._store.read_all(self.table))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, record: BaseModel) -> BaseModel:
        """
        Store a new record, encrypted if the session has a key.

        Returns:
            The record as given (sensitive fields in clear)
        """
        self._check_type(record)
        key = self._session.require_key()

        await self._store.insert(self.table, self._codec.to_store_dict(record, key))

        if self._audit:
            await self._audit.log_record_saved(
                table=self.table,
                record_id=record.id,
                encrypted=key is not None,
            )
        return record

    async def batch_create(self, records: Iterable[BaseModel]) -> list[BaseModel]:
        """
        Store many records (bulk import).

        Every record is encoded before the first insert, so an encoding
        error writes nothing. A store error part way through leaves the
        earlier inserts in place.
        """
        records = list(records)
        for record in records:
            self._check_type(record)
        key = self._session.require_key()

        rows = [self._codec.to_store_dict(record, key) for record in records]
        for row in rows:
            await self._store.insert(self.table, row)

        if self._audit:
            for record in records:
                await self._audit.log_record_saved(
                    table=self.table,
                    record_id=record.id,
                    encrypted=key is not None,
                )
        return records

    async def update(self, record_id: str, updates: dict[str, Any]) -> BaseModel:
        """
        Update fields of one record.

        Raises:
            EncryptionKeyRequired: Session is locked
            NotFoundError: No record with this id
        """
        key = self._session.require_key()

        existing = await self._find_row(record_id)
        return await self.update_row(existing, updates, key)

    async def update_row(
        self,
        existing: StorageRow,
        updates: dict[str, Any],
        key: Optional[KeyMaterial],
    ) -> BaseModel:
        """Merge updates into an already-read row and write the patch."""
        patch = self.prepare_update(existing, updates, key)
        return await self.write_patch(existing, patch, list(updates), key)

    def prepare_update(
        self,
        existing: StorageRow,
        updates: dict[str, Any],
        key: Optional[KeyMaterial],
    ) -> dict[str, Any]:
        """
        Build and validate the column patch without touching the store.

        Raises:
            ValueError: The merged record fails model validation
        """
        return self._codec.merge_update(existing, updates, key)

    async def write_patch(
        self,
        existing: StorageRow,
        patch: dict[str, Any],
        fields: list[str],
        key: Optional[KeyMaterial],
    ) -> BaseModel:
        """Write a patch built by prepare_update()."""
        record_id = existing.fields["id"]
        stored = await self._store.update(self.table, record_id, patch)

        if self._audit:
            await self._audit.log_record_updated(
                table=self.table,
                record_id=record_id,
                fields=fields,
            )
        return self._codec.from_store_dict(stored, key)

    async def delete(self, record_id: str) -> None:
        await self._store.delete(self.table, record_id)

        if self._audit:
            await self._audit.log_record_deleted(table=self.table, record_id=record_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _find_row(self, record_id: str) -> StorageRow:
        for raw in await self._store.read_all(self.table):
            if raw.get("id") == record_id:
                return parse_storage_row(raw, self._shape)
        raise NotFoundError(f"{self.table} record not found: {record_id}")

    def _check_type(self, record: BaseModel) -> None:
        if not isinstance(record, self._shape.model):
            raise TypeError(
                f"{self.table} expects {self._shape.model.__name__}, "
                f"got {type(record).__name__}"
            )


async def wipe_all(
    store: RecordStoreInterface,
    shapes: Iterable[RecordShape] = ALL_SHAPES,
    audit_logger: Optional[AuditLogger] = None,
) -> dict[str, int]:
    """
    Permanently delete every record in the given tables.

    Returns:
        Number of deleted rows per table
    """
    deleted: dict[str, int] = {}
    for shape in shapes:
        rows = await store.read_all(shape.table)
        for raw in rows:
            await store.delete(shape.table, raw["id"])
        deleted[shape.table] = len(rows)

    if audit_logger:
        await audit_logger.log_data_wiped(deleted)
    return deleted
