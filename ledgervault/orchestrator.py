"""
Main Orchestrator for LedgerVault

This module ties together all the components and defines the
end-to-end flows for:
1. Encryption (setup → unlock → verify on real data → lock)
2. Currency change (request → keep or convert → resume if interrupted)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Keys are only set up while there is no data they would orphan
- An unlock is only trusted once real data decrypts with it
- Every step is audited, without secrets or amounts

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from typing import Optional, Sequence
from uuid import UUID

import structlog
from pydantic import BaseModel

from ledgervault.audit import AuditLogger, create_correlation_id
from ledgervault.config import LocalConfigStore, get_settings
from ledgervault.crypto import DecryptionFailed, EncryptionError, EncryptionSession
from ledgervault.models.currency import RebaseDecision, RebaseResult
from ledgervault.models.records import ALL_SHAPES
from ledgervault.models.validation import ValidationResult
from ledgervault.services.currency import CurrencyError, CurrencyRebaseService, InvalidRate
from ledgervault.services.records import RecordRepository
from ledgervault.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    RecordStoreInterface,
    StorageError,
)
from ledgervault.validation import SetupValidator


logger = structlog.get_logger(__name__)


class SetupNotAllowed(EncryptionError):
    """Changing the key now would leave stored records undecryptable."""
    user_message = (
        "Encryption can only be set up before any records exist. "
        "Wipe your data first to start over."
    )


class EncryptionFlow:
    """
    Orchestrates the key lifecycle.

    Flow:
    1. Setup → password, random key, or disabled (first run only)
    2. Unlock → re-derive or import the key
    3. Verify → decrypt the stored records; a failure relocks
    4. Lock → discard the key

    There is no stored password verifier. Step 3 IS the check.
    """

    def __init__(
        self,
        session: EncryptionSession,
        config_store: LocalConfigStore,
        repositories: Sequence[RecordRepository],
        validator: Optional[SetupValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._session = session
        self._config_store = config_store
        self._repositories = list(repositories)
        self._validator = validator or SetupValidator()
        self._audit_logger = audit_logger

    @property
    def session(self) -> EncryptionSession:
        return self._session

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def setup_password(
        self,
        password: str,
        confirmation: str,
        correlation_id: Optional[UUID] = None,
    ) -> ValidationResult:
        """
        Enable password mode.

        Returns:
            The validation result. Nothing changes unless it is valid.
        """
        result = self._validator.validate_master_password(password, confirmation)
        if not result.is_valid:
            return result

        await self._ensure_no_records()
        correlation_id = correlation_id or create_correlation_id()

        config = await self._session.setup_password(password, self._config_store.load())
        self._config_store.save(config)

        await self._audit_configured(config.encryption_mode.value, correlation_id)
        return result

    async def setup_random_key(self, correlation_id: Optional[UUID] = None) -> str:
        """
        Enable random-key mode.

        Returns:
            The key text. The user must save it; it is not stored anywhere.
        """
        await self._ensure_no_records()
        correlation_id = correlation_id or create_correlation_id()

        config, key_text = self._session.setup_random_key(self._config_store.load())
        self._config_store.save(config)

        await self._audit_configured(config.encryption_mode.value, correlation_id)
        return key_text

    async def setup_disabled(self, correlation_id: Optional[UUID] = None) -> None:
        """Run without encryption. Sensitive fields are stored in clear."""
        await self._ensure_no_records()
        correlation_id = correlation_id or create_correlation_id()

        config = self._session.setup_disabled(self._config_store.load())
        self._config_store.save(config)

        await self._audit_configured(None, correlation_id)

    # ------------------------------------------------------------------
    # Unlock / lock
    # ------------------------------------------------------------------

    async def unlock_with_password(
        self,
        password: str,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, list[BaseModel]]:
        """
        Unlock with the master password and load all records.

        Returns:
            Decrypted records per table

        Raises:
            DecryptionFailed: Wrong password (session is locked again)
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            await self._session.unlock_with_password(password)
        except (ValueError, EncryptionError) as e:
            await self._audit_unlock_failed("password", e, correlation_id)
            raise

        return await self._verify_unlock("password", correlation_id)

    async def unlock_with_key_text(
        self,
        key_text: str,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, list[BaseModel]]:
        """
        Unlock with a saved random key and load all records.

        Raises:
            InvalidKeyFormat: Not a key
            DecryptionFailed: Wrong key (session is locked again)
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            await self._session.unlock_with_key_text(key_text)
        except EncryptionError as e:
            await self._audit_unlock_failed("random_key", e, correlation_id)
            raise

        return await self._verify_unlock("random_key", correlation_id)

    async def lock(self, correlation_id: Optional[UUID] = None) -> None:
        self._session.lock()
        if self._audit_logger:
            await self._audit_logger.log_session_locked(
                correlation_id or create_correlation_id()
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _verify_unlock(
        self,
        mode: str,
        correlation_id: UUID,
    ) -> dict[str, list[BaseModel]]:
        records: dict[str, list[BaseModel]] = {}
        for repository in self._repositories:
            try:
                records[repository.table] = await repository.fetch_all()
            except DecryptionFailed as e:
                self._session.lock()
                if self._audit_logger:
                    await self._audit_logger.log_decryption_failed(
                        repository.table, correlation_id
                    )
                await self._audit_unlock_failed(mode, e, correlation_id)
                raise

        if self._audit_logger:
            await self._audit_logger.log_session_unlocked(mode, correlation_id)
        return records

    async def _ensure_no_records(self) -> None:
        for repository in self._repositories:
            if await repository.count():
                raise SetupNotAllowed(
                    f"{repository.table} already holds records"
                )

    async def _audit_configured(self, mode: Optional[str], correlation_id: UUID) -> None:
        if self._audit_logger:
            await self._audit_logger.log_encryption_configured(mode, correlation_id)

    async def _audit_unlock_failed(
        self,
        mode: str,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_unlock_failed(
                mode=mode,
                reason=type(error).__name__,
                correlation_id=correlation_id,
            )


class CurrencyChangeFlow:
    """
    Orchestrates a change of the active currency.

    Flow:
    1. Request → IMMEDIATE (no records), UNCHANGED, or NEEDS_USER_CHOICE
    2. Choice → keep amounts as they are, or convert at a rate
    3. Resume → finish a conversion that stopped part way
    4. Abandon → drop a stuck conversion, keeping the old currency label

    The rebase service audits the conversion itself (started, partial,
    completed); this flow audits input and storage problems around it.
    """

    def __init__(
        self,
        rebase_service: CurrencyRebaseService,
        validator: Optional[SetupValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._rebase_service = rebase_service
        self._validator = validator or SetupValidator()
        self._audit_logger = audit_logger

    @property
    def current_currency(self) -> str:
        return self._rebase_service.current_currency

    @property
    def has_pending_conversion(self) -> bool:
        return self._rebase_service.pending_rebase is not None

    async def request_change(self, new_code: str) -> tuple[RebaseDecision, str]:
        """
        Ask to switch currency.

        Returns:
            (decision, message for the user)

        Raises:
            CurrencyError: The code is empty
        """
        result = self._validator.validate_currency_code(new_code)
        if not result.is_valid:
            raise CurrencyError(self._validator.get_user_friendly_summary(result))

        decision = await self._rebase_service.request_change(new_code)

        new_code = new_code.strip().upper()
        if decision == RebaseDecision.IMMEDIATE:
            message = f"Currency changed to {new_code}."
        elif decision == RebaseDecision.UNCHANGED:
            message = f"{new_code} is already your currency."
        else:
            message = (
                f"You have existing records in {self.current_currency}. "
                f"Keep the amounts as they are, or convert them to {new_code}?"
            )
        return decision, message

    async def keep_as_is(
        self,
        old_code: str,
        new_code: str,
        correlation_id: Optional[UUID] = None,
    ) -> RebaseResult:
        try:
            return await self._rebase_service.keep_as_is(old_code, new_code)
        except StorageError as e:
            await self._audit_storage_error("currency_keep_as_is", e, correlation_id)
            raise

    async def convert(
        self,
        old_code: str,
        new_code: str,
        rate_text: str,
        correlation_id: Optional[UUID] = None,
    ) -> RebaseResult:
        """
        Convert every amount at the rate the user typed.

        Raises:
            InvalidRate: The text is not a positive number
            PartialRewriteFailure: Some records converted; retry to finish
        """
        result = self._validator.validate_rate_text(rate_text)
        if not result.is_valid:
            raise InvalidRate(self._validator.get_user_friendly_summary(result))

        try:
            return await self._rebase_service.convert(old_code, new_code, rate_text)
        except StorageError as e:
            await self._audit_storage_error("currency_convert", e, correlation_id)
            raise

    async def resume(self) -> RebaseResult:
        return await self._rebase_service.resume()

    async def abandon(self) -> str:
        """
        Give up on a conversion that stopped part way.

        Records already converted keep their new amounts; the currency
        stays what it was.

        Returns:
            Message for the user
        """
        checkpoint = await self._rebase_service.abandon()
        return (
            f"Conversion to {checkpoint.new_code} abandoned. "
            f"{checkpoint.completed_count} records had already been converted "
            f"and were left as they are. Your currency is still {checkpoint.old_code}."
        )

    async def _audit_storage_error(
        self,
        operation: str,
        error: Exception,
        correlation_id: Optional[UUID],
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(error),
                correlation_id=correlation_id,
            )


def create_app_components(
    use_storage: bool = True,
) -> tuple[EncryptionFlow, CurrencyChangeFlow, dict[str, RecordRepository], Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on the in-memory store.

    Returns:
        (encryption_flow, currency_flow, repositories by table, sheets_client)
    """
    app_settings = get_settings().app

    config_store = LocalConfigStore(
        app_settings.config_file,
        default_currency=app_settings.default_currency,
    )
    session = EncryptionSession.from_config(config_store.load())

    sheets_client = None
    record_store: RecordStoreInterface
    sync_store: Optional[RecordStoreInterface] = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            record_store = GoogleSheetsRecordStore(sheets_client)
            sync_store = record_store
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            record_store = InMemoryRecordStore()
            audit_logger = AuditLogger()  # Local-only logging
    else:
        record_store = InMemoryRecordStore()
        audit_logger = AuditLogger()  # Local-only logging

    repositories = {
        shape.table: RecordRepository(
            shape,
            record_store,
            session,
            audit_logger=audit_logger,
        )
        for shape in ALL_SHAPES
    }
    validator = SetupValidator(app_settings.min_password_length)

    encryption_flow = EncryptionFlow(
        session=session,
        config_store=config_store,
        repositories=list(repositories.values()),
        validator=validator,
        audit_logger=audit_logger,
    )

    rebase_service = CurrencyRebaseService(
        repositories=list(repositories.values()),
        session=session,
        config_store=config_store,
        store=sync_store,
        batch_size=app_settings.rebase_batch_size,
        audit_logger=audit_logger,
    )
    currency_flow = CurrencyChangeFlow(
        rebase_service=rebase_service,
        validator=validator,
        audit_logger=audit_logger,
    )

    return encryption_flow, currency_flow, repositories, sheets_client
