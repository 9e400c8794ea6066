"""
In-Memory Storage Implementation

Used by the test suite and for running without Google credentials.
Rows are deep-copied on the way in and out so callers can never mutate
stored state by accident.
"""

import copy
from collections import defaultdict
from uuid import UUID

from ledgervault.models.audit import AuditEvent
from ledgervault.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    Row,
    StorageError,
)


class InMemoryRecordStore(RecordStoreInterface):
    """
    Dict-backed record store.

    Every call is appended to ``operations`` as (operation, table, row_id),
    which lets tests assert exactly which writes happened.
    """

    def __init__(self, tables: dict[str, list[Row]] | None = None):
        self._tables: dict[str, list[Row]] = defaultdict(list)
        for table, rows in (tables or {}).items():
            self._tables[table] = copy.deepcopy(rows)
        self.operations: list[tuple[str, str, str | None]] = []

    def writes(self, table: str | None = None) -> list[tuple[str, str, str | None]]:
        """Logged insert/update/delete calls, optionally for one table."""
        return [
            op for op in self.operations
            if op[0] != "read_all" and (table is None or op[1] == table)
        ]

    async def read_all(self, table: str) -> list[Row]:
        self.operations.append(("read_all", table, None))
        return copy.deepcopy(self._tables[table])

    async def insert(self, table: str, row: Row) -> Row:
        row_id = row.get("id")
        self.operations.append(("insert", table, row_id))
        if not row_id:
            raise StorageError(f"Row for {table} has no id")
        if self._find(table, row_id) is not None:
            raise DuplicateError(f"{table} row already exists: {row_id}")

        stored = copy.deepcopy(row)
        self._tables[table].append(stored)
        return copy.deepcopy(stored)

    async def update(self, table: str, row_id: str, patch: Row) -> Row:
        self.operations.append(("update", table, row_id))
        index = self._find(table, row_id)
        if index is None:
            raise NotFoundError(f"{table} row not found: {row_id}")

        stored = self._tables[table][index]
        stored.update(copy.deepcopy(patch))
        return copy.deepcopy(stored)

    async def delete(self, table: str, row_id: str) -> None:
        self.operations.append(("delete", table, row_id))
        index = self._find(table, row_id)
        if index is None:
            raise NotFoundError(f"{table} row not found: {row_id}")
        del self._tables[table][index]

    def _find(self, table: str, row_id: str) -> int | None:
        for index, row in enumerate(self._tables[table]):
            if row.get("id") == row_id:
                return index
        return None


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed, append-only audit log."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events
