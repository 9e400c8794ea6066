"""
Data Models Package

This package contains all Pydantic models used in LedgerVault.
Records, storage rows, envelopes and audit events must conform to these
schemas. KeyMaterial is the one deliberate exception (see models.crypto).
"""

from ledgervault.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from ledgervault.models.crypto import (
    KEY_SIZE,
    EncryptedEnvelope,
    KeyMaterial,
    KeyOrigin,
)
from ledgervault.models.currency import (
    CURRENCIES,
    CurrencyInfo,
    RebaseCheckpoint,
    RebaseDecision,
    RebaseResult,
    get_currency,
    get_currency_name,
    get_currency_symbol,
)
from ledgervault.models.records import (
    ALL_SHAPES,
    GOAL_SHAPE,
    TRANSACTION_SHAPE,
    Goal,
    MoodType,
    RecordShape,
    Transaction,
    TransactionType,
)
from ledgervault.models.storage import (
    ENVELOPE_COLUMNS,
    ClearRow,
    EncryptedRow,
    StorageRow,
    parse_storage_row,
)
from ledgervault.models.validation import ValidationIssue, ValidationResult

__all__ = [
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Crypto models
    "KEY_SIZE",
    "EncryptedEnvelope",
    "KeyMaterial",
    "KeyOrigin",
    # Currency models
    "CURRENCIES",
    "CurrencyInfo",
    "RebaseCheckpoint",
    "RebaseDecision",
    "RebaseResult",
    "get_currency",
    "get_currency_name",
    "get_currency_symbol",
    # Record models
    "ALL_SHAPES",
    "GOAL_SHAPE",
    "TRANSACTION_SHAPE",
    "Goal",
    "MoodType",
    "RecordShape",
    "Transaction",
    "TransactionType",
    # Storage rows
    "ENVELOPE_COLUMNS",
    "ClearRow",
    "EncryptedRow",
    "StorageRow",
    "parse_storage_row",
    # Validation
    "ValidationIssue",
    "ValidationResult",
]
