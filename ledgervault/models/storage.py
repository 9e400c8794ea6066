"""
Storage Row Models

A stored record row carries its sensitive fields in exactly one of two
forms:

    ClearRow      {...non-sensitive, ...sensitive in clear}
    EncryptedRow  {...non-sensitive, ciphertext, iv}

DESIGN DECISION: The store hands back plain dicts in which the form is
only visible from which columns are filled. We look at field presence
exactly once, in parse_storage_row(), and from then on the codec works
with a tagged union and branches on the type.

When a row is flattened back for the store, the columns of the OTHER
form are written as None, so switching a row between forms never leaves
both forms behind.
"""

from typing import Any, Literal, Union

from pydantic import BaseModel, Field

from ledgervault.models.crypto import EncryptedEnvelope
from ledgervault.models.records import RecordShape


ENVELOPE_COLUMNS = ("ciphertext", "iv")


class ClearRow(BaseModel):
    """Row whose sensitive fields are stored in clear."""

    kind: Literal["clear"] = "clear"
    fields: dict[str, Any] = Field(
        default_factory=dict,
        description="Non-sensitive columns"
    )
    sensitive: dict[str, Any] = Field(
        default_factory=dict,
        description="Sensitive columns, in clear"
    )

    def to_store_dict(self, shape: RecordShape) -> dict[str, Any]:
        row = dict(self.fields)
        for name in shape.sensitive_fields:
            row[name] = self.sensitive.get(name)
        row.update({column: None for column in ENVELOPE_COLUMNS})
        return row


class EncryptedRow(BaseModel):
    """Row whose sensitive fields live in one envelope."""

    kind: Literal["encrypted"] = "encrypted"
    fields: dict[str, Any] = Field(
        default_factory=dict,
        description="Non-sensitive columns"
    )
    envelope: EncryptedEnvelope

    def to_store_dict(self, shape: RecordShape) -> dict[str, Any]:
        row = dict(self.fields)
        for name in shape.sensitive_fields:
            row[name] = None
        row["ciphertext"] = self.envelope.ciphertext
        row["iv"] = self.envelope.iv
        return row


StorageRow = Union[ClearRow, EncryptedRow]


def parse_storage_row(raw: dict[str, Any], shape: RecordShape) -> StorageRow:
    """
    Turn a raw store dict into a ClearRow or EncryptedRow.

    A row is encrypted when both envelope columns are filled. Columns the
    shape does not know about (e.g. joined data) are kept as non-sensitive
    fields.
    """
    fields = {
        key: value for key, value in raw.items()
        if key not in shape.sensitive_fields and key not in ENVELOPE_COLUMNS
    }

    if raw.get("ciphertext") and raw.get("iv"):
        return EncryptedRow(
            fields=fields,
            envelope=EncryptedEnvelope(ciphertext=raw["ciphertext"], iv=raw["iv"]),
        )

    sensitive = {name: raw.get(name) for name in shape.sensitive_fields}
    return ClearRow(fields=fields, sensitive=sensitive)
