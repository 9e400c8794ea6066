"""
Audit Models for LedgerVault

Every significant action in the system is logged for audit purposes:
key setup, unlock and lock, record writes, and currency changes.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.

CRITICAL: Audit events never contain key material, passwords, salts, or
decrypted sensitive values. A record is referenced by id only.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Key lifecycle
    ENCRYPTION_CONFIGURED = "encryption_configured"
    SESSION_UNLOCKED = "session_unlocked"
    SESSION_LOCKED = "session_locked"
    UNLOCK_FAILED = "unlock_failed"
    DECRYPTION_FAILED = "decryption_failed"

    # Persistence
    RECORD_SAVED = "record_saved"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    DATA_WIPED = "data_wiped"

    # Currency
    CURRENCY_CHANGED = "currency_changed"
    CURRENCY_REBASE_STARTED = "currency_rebase_started"
    CURRENCY_REBASE_COMPLETED = "currency_rebase_completed"
    CURRENCY_REBASE_PARTIAL = "currency_rebase_partial"
    CURRENCY_REBASE_ABANDONED = "currency_rebase_abandoned"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transactions', 'goals', 'session')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one rebase)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.session_unlocked("password", correlation_id)
        event = AuditEventBuilder.record_saved("transactions", record_id, correlation_id)
    """

    @staticmethod
    def encryption_configured(
        mode: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENCRYPTION_CONFIGURED,
            entity_type="session",
            correlation_id=correlation_id,
            description=f"Encryption configured: {mode or 'disabled'}",
            details={"mode": mode, "enabled": mode is not None},
            is_user_action=True,
        )

    @staticmethod
    def session_unlocked(
        mode: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_UNLOCKED,
            entity_type="session",
            correlation_id=correlation_id,
            description=f"Session unlocked ({mode})",
            details={"mode": mode},
            is_user_action=True,
        )

    @staticmethod
    def session_locked(correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_LOCKED,
            entity_type="session",
            correlation_id=correlation_id,
            description="Session locked, key discarded",
        )

    @staticmethod
    def unlock_failed(
        mode: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.UNLOCK_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="session",
            correlation_id=correlation_id,
            description=f"Unlock failed ({mode})",
            error_code=reason,
            details={"mode": mode},
            is_user_action=True,
        )

    @staticmethod
    def decryption_failed(
        table: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DECRYPTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=table,
            correlation_id=correlation_id,
            description="Stored data could not be decrypted with the session key",
        )

    @staticmethod
    def record_saved(
        table: str,
        record_id: str,
        encrypted: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_SAVED,
            entity_type=table,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record saved to {table}",
            details={"encrypted": encrypted},
        )

    @staticmethod
    def record_updated(
        table: str,
        record_id: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            entity_type=table,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record updated in {table}",
            details={"fields": sorted(fields)},
        )

    @staticmethod
    def record_deleted(
        table: str,
        record_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            entity_type=table,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Record deleted from {table}",
            is_user_action=True,
        )

    @staticmethod
    def data_wiped(
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_WIPED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"All records wiped ({sum(counts.values())} rows)",
            details={"deleted": counts},
            is_user_action=True,
        )

    @staticmethod
    def currency_changed(
        old_code: str,
        new_code: str,
        converted: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CURRENCY_CHANGED,
            entity_type="currency",
            entity_id=new_code,
            correlation_id=correlation_id,
            description=f"Currency changed: {old_code} -> {new_code}",
            details={
                "old_code": old_code,
                "new_code": new_code,
                "converted": converted,
            },
            is_user_action=True,
        )

    @staticmethod
    def rebase_started(
        old_code: str,
        new_code: str,
        rate: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CURRENCY_REBASE_STARTED,
            entity_type="currency",
            entity_id=new_code,
            correlation_id=correlation_id,
            description=f"Converting amounts {old_code} -> {new_code} at {rate}",
            details={
                "old_code": old_code,
                "new_code": new_code,
                "rate": str(rate),
            },
            is_user_action=True,
        )

    @staticmethod
    def rebase_completed(
        new_code: str,
        rewritten: int,
        skipped: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CURRENCY_REBASE_COMPLETED,
            entity_type="currency",
            entity_id=new_code,
            correlation_id=correlation_id,
            description=f"Converted {rewritten} records to {new_code}",
            details={"rewritten": rewritten, "skipped": skipped},
        )

    @staticmethod
    def rebase_partial(
        new_code: str,
        succeeded: int,
        failed: int,
        not_attempted: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CURRENCY_REBASE_PARTIAL,
            severity=AuditSeverity.ERROR,
            entity_type="currency",
            entity_id=new_code,
            correlation_id=correlation_id,
            description=(
                f"Conversion to {new_code} incomplete: {succeeded} converted, "
                f"{failed + not_attempted} not converted"
            ),
            details={
                "succeeded": succeeded,
                "failed": failed,
                "not_attempted": not_attempted,
            },
        )

    @staticmethod
    def rebase_abandoned(
        old_code: str,
        new_code: str,
        converted: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CURRENCY_REBASE_ABANDONED,
            severity=AuditSeverity.WARNING,
            entity_type="currency",
            entity_id=new_code,
            correlation_id=correlation_id,
            description=(
                f"Conversion {old_code} -> {new_code} abandoned with "
                f"{converted} records already converted"
            ),
            details={"old_code": old_code, "new_code": new_code, "converted": converted},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
