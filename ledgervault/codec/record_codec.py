"""
Record Codec

Maps a financial record to and from its storage row.

    to_storage(record, key)    key present -> EncryptedRow (one envelope)
                               key None    -> ClearRow
    from_storage(row, key)     EncryptedRow needs the key, ClearRow ignores it
    merge_update(row, updates, key)
                               -> column patch for the store

CRITICAL: The sensitive subset is always encrypted TOGETHER. Encrypted
fields cannot be updated one at a time: an update first opens the
existing envelope, merges the new values, and re-encrypts the whole
subset with a fresh nonce.

JSON conventions inside the envelope:
- amounts are JSON numbers (Decimal -> float, read back via str());
  AMOUNT_MAX_DIGITS keeps that exact
- None fields are omitted, never written as null
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel

from ledgervault.crypto.envelope import DecryptionFailed, decrypt, encrypt
from ledgervault.crypto.session import EncryptionKeyRequired
from ledgervault.models.crypto import KeyMaterial
from ledgervault.models.records import RecordShape
from ledgervault.models.storage import (
    ENVELOPE_COLUMNS,
    ClearRow,
    EncryptedRow,
    StorageRow,
    parse_storage_row,
)


class RecordCodec:
    """Codec for one record shape (transactions, goals, ...)."""

    def __init__(self, shape: RecordShape):
        self._shape = shape

    @property
    def shape(self) -> RecordShape:
        return self._shape

    # ------------------------------------------------------------------
    # Record -> row
    # ------------------------------------------------------------------

    def to_storage(self, record: BaseModel, key: Optional[KeyMaterial]) -> StorageRow:
        """Split a record into clear columns plus clear-or-enveloped sensitive data."""
        fields = record.model_dump(
            mode="json",
            include=set(self._shape.non_sensitive_fields),
        )
        sensitive = {
            name: _to_json_value(getattr(record, name))
            for name in self._shape.sensitive_fields
        }

        if key is None:
            return ClearRow(fields=fields, sensitive=sensitive)

        payload = {name: value for name, value in sensitive.items() if value is not None}
        return EncryptedRow(fields=fields, envelope=encrypt(payload, key))

    def to_store_dict(self, record: BaseModel, key: Optional[KeyMaterial]) -> dict[str, Any]:
        return self.to_storage(record, key).to_store_dict(self._shape)

    # ------------------------------------------------------------------
    # Row -> record
    # ------------------------------------------------------------------

    def from_storage(self, row: StorageRow, key: Optional[KeyMaterial]) -> BaseModel:
        """
        Rebuild the in-memory record.

        Raises:
            EncryptionKeyRequired: Row is encrypted and no key was given
            DecryptionFailed: Wrong key or damaged envelope
        """
        if isinstance(row, EncryptedRow):
            sensitive = self._open(row, key)
        else:
            sensitive = dict(row.sensitive)

        data = dict(row.fields)
        for name, value in sensitive.items():
            if value is None:
                continue
            if name in self._shape.amount_fields and isinstance(value, (int, float)):
                value = Decimal(str(value))
            data[name] = value

        return self._shape.model.model_validate(data)

    def from_store_dict(self, raw: dict[str, Any], key: Optional[KeyMaterial]) -> BaseModel:
        return self.from_storage(parse_storage_row(raw, self._shape), key)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def merge_update(
        self,
        existing: StorageRow,
        updates: dict[str, Any],
        key: Optional[KeyMaterial],
    ) -> dict[str, Any]:
        """
        Build the column patch for updating one stored record.

        Non-sensitive updates are written as plain columns. If any
        sensitive field changes, the full sensitive subset is written
        again: re-encrypted as a new envelope when a key is present, or
        in clear (with the envelope columns nulled) when it is not.

        Raises:
            EncryptionKeyRequired: Existing row is encrypted and no key was given
            DecryptionFailed: Existing envelope does not open with the key
            ValueError: Unknown field, or an update that fails model validation
        """
        known = set(self._shape.model.model_fields)
        unknown = set(updates) - known
        if unknown:
            raise ValueError(f"Unknown fields for {self._shape.table}: {sorted(unknown)}")
        if "id" in updates:
            raise ValueError("Record id cannot be updated")

        current = self.from_storage(existing, key)

        data = current.model_dump()
        data.update(updates)
        data["updated_at"] = datetime.now(timezone.utc)
        merged = self._shape.model.model_validate(data)

        changed = set(updates) | {"updated_at"}
        patch = merged.model_dump(
            mode="json",
            include=changed & set(self._shape.non_sensitive_fields),
        )

        if changed & set(self._shape.sensitive_fields):
            full_row = self.to_store_dict(merged, key)
            for column in (*self._shape.sensitive_fields, *ENVELOPE_COLUMNS):
                patch[column] = full_row[column]

        return patch

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _open(self, row: EncryptedRow, key: Optional[KeyMaterial]) -> dict[str, Any]:
        if key is None:
            raise EncryptionKeyRequired(
                f"Encrypted {self._shape.table} row needs the session key"
            )

        payload = decrypt(row.envelope, key)
        if not isinstance(payload, dict):
            raise DecryptionFailed()

        return {name: payload.get(name) for name in self._shape.sensitive_fields}


def _to_json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return value
