"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a hosted database later
2. Use in-memory storage for testing
3. Keep encryption entirely above the storage layer

The store is deliberately dumb. It moves flat row dicts in and out of
named tables and knows nothing about which columns are sensitive: by the
time a row reaches it, sensitive fields are already clear-or-enveloped.

There are no transactions. A multi-row operation that fails halfway
leaves the rows it already wrote in place.
"""

from abc import ABC, abstractmethod
from typing import Any
from uuid import UUID

from ledgervault.errors import LedgerVaultError
from ledgervault.models.audit import AuditEvent


Row = dict[str, Any]


class RecordStoreInterface(ABC):
    """
    Abstract interface for record storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods. Every row has a string "id" column.
    """

    @abstractmethod
    async def read_all(self, table: str) -> list[Row]:
        """
        Read every row of a table.

        Args:
            table: Table name (e.g. 'transactions', 'goals')

        Returns:
            List of row dicts, in storage order

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        """
        Insert a new row.

        Args:
            table: Table name
            row: Flat row dict including its "id"

        Returns:
            The stored row

        Raises:
            DuplicateError: If a row with the same id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(self, table: str, row_id: str, patch: Row) -> Row:
        """
        Apply a column patch to one row.

        Columns present in the patch are overwritten (a None value
        clears the column). Other columns are left as they are.

        Args:
            table: Table name
            row_id: Id of the row to update
            patch: Columns to write

        Returns:
            The full row after the update

        Raises:
            NotFoundError: If the row doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, table: str, row_id: str) -> None:
        """
        Delete a row by id.

        Raises:
            NotFoundError: If the row doesn't exist
            StorageError: If the delete fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one currency rebase).

        Args:
            correlation_id: The correlation identifier

        Returns:
            List of related events in chronological order
        """
        pass


class StorageError(LedgerVaultError):
    """Base exception for storage operations."""
    user_message = "Could not reach your data. Please try again."


class NotFoundError(StorageError):
    """Entity not found in storage."""
    user_message = "That record no longer exists."


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    user_message = "That record already exists."


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    user_message = "Could not connect to storage. Check your connection."
