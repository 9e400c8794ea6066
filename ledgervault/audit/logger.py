"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Traceability of key setup, unlocks and currency changes
2. Debugging capability
3. A visible record of bulk rewrites that stopped halfway

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events

CRITICAL: Nothing passed in here may contain a key, a password, or a
decrypted amount. The helpers below only accept ids, counts and codes.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledgervault.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from ledgervault.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when configured (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("ledgervault.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        # Always log locally
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Persist to storage if available
        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # ------------------------------------------------------------------
    # Key lifecycle
    # ------------------------------------------------------------------

    async def log_encryption_configured(
        self,
        mode: Optional[str],
        correlation_id: UUID,
    ) -> None:
        """Log encryption setup (mode None means disabled)."""
        await self.log(AuditEventBuilder.encryption_configured(
            mode=mode,
            correlation_id=correlation_id,
        ))

    async def log_session_unlocked(self, mode: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.session_unlocked(
            mode=mode,
            correlation_id=correlation_id,
        ))

    async def log_session_locked(self, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.session_locked(correlation_id=correlation_id))

    async def log_unlock_failed(
        self,
        mode: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        """Log a rejected unlock. ``reason`` is an error class name, never input."""
        await self.log(AuditEventBuilder.unlock_failed(
            mode=mode,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_decryption_failed(self, table: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.decryption_failed(
            table=table,
            correlation_id=correlation_id,
        ))

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def log_record_saved(
        self,
        table: str,
        record_id: str,
        encrypted: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.record_saved(
            table=table,
            record_id=record_id,
            encrypted=encrypted,
            correlation_id=correlation_id,
        ))

    async def log_record_updated(
        self,
        table: str,
        record_id: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an update. Only field names are recorded, never values."""
        await self.log(AuditEventBuilder.record_updated(
            table=table,
            record_id=record_id,
            fields=fields,
            correlation_id=correlation_id,
        ))

    async def log_record_deleted(
        self,
        table: str,
        record_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.record_deleted(
            table=table,
            record_id=record_id,
            correlation_id=correlation_id,
        ))

    async def log_data_wiped(
        self,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.data_wiped(
            counts=counts,
            correlation_id=correlation_id,
        ))

    # ------------------------------------------------------------------
    # Currency
    # ------------------------------------------------------------------

    async def log_currency_changed(
        self,
        old_code: str,
        new_code: str,
        converted: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.currency_changed(
            old_code=old_code,
            new_code=new_code,
            converted=converted,
            correlation_id=correlation_id,
        ))

    async def log_rebase_started(
        self,
        old_code: str,
        new_code: str,
        rate: Decimal,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.rebase_started(
            old_code=old_code,
            new_code=new_code,
            rate=rate,
            correlation_id=correlation_id,
        ))

    async def log_rebase_completed(
        self,
        new_code: str,
        rewritten: int,
        skipped: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.rebase_completed(
            new_code=new_code,
            rewritten=rewritten,
            skipped=skipped,
            correlation_id=correlation_id,
        ))

    async def log_rebase_partial(
        self,
        new_code: str,
        succeeded: int,
        failed: int,
        not_attempted: int,
        correlation_id: UUID,
    ) -> None:
        """Log a convert that stopped after a failed write."""
        await self.log(AuditEventBuilder.rebase_partial(
            new_code=new_code,
            succeeded=succeeded,
            failed=failed,
            not_attempted=not_attempted,
            correlation_id=correlation_id,
        ))

    async def log_rebase_abandoned(
        self,
        old_code: str,
        new_code: str,
        converted: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.rebase_abandoned(
            old_code=old_code,
            new_code=new_code,
            converted=converted,
            correlation_id=correlation_id,
        ))

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a store failure."""
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a currency change).
    Pass it through all subsequent operations.
    """
    return uuid4()
