"""
Currency Rebase Service

The ledger has ONE active currency. Changing it is a global decision:

    request_change(new)
        no records   -> label changed at once (IMMEDIATE)
        records      -> NEEDS_USER_CHOICE, caller asks the user:
            keep_as_is(old, new)      relabel only, amounts untouched
            convert(old, new, rate)   amount * rate, half-up to 2 dp, every record

DESIGN DECISION: The store has no transactions, so a convert cannot be
all-or-nothing. Instead it is honest about partial progress:
- records are rewritten in batches; after a batch with any failure,
  later batches are not attempted
- ids rewritten so far are checkpointed in the local config
- PartialRewriteFailure reports succeeded / failed / not attempted
- the currency label only changes once every record is converted
A retry with the same (old, new, rate), or resume(), skips the ids in
the checkpoint, so no record is ever converted twice. abandon() drops
the checkpoint when the user gives up on finishing.

Every patch is built and validated before the first write, so a record
that would be invalid once converted (a goal target rounding to 0.00,
an amount too large to store exactly) rejects the whole convert with
UnconvertibleRecords and nothing is written.

CRITICAL: Amount math is Decimal only. Floats never touch an amount.
"""

import asyncio
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Sequence

import structlog

from ledgervault.audit import AuditLogger, create_correlation_id
from ledgervault.config.local import LocalConfigStore
from ledgervault.crypto import EncryptionSession
from ledgervault.errors import LedgerVaultError
from ledgervault.models.currency import RebaseCheckpoint, RebaseDecision, RebaseResult
from ledgervault.models.storage import StorageRow
from ledgervault.services.records import RecordRepository
from ledgervault.services.storage import RecordStoreInterface


logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")
USER_SETTINGS_TABLE = "user_settings"


class CurrencyError(LedgerVaultError):
    """Base exception for currency changes."""
    user_message = "Could not change the currency."


class InvalidRate(CurrencyError):
    """Conversion rate is not a positive, finite number."""
    user_message = "Please enter a valid conversion rate greater than zero."


class RebaseInProgress(CurrencyError):
    """Another conversion stopped part way and must be finished first."""
    user_message = (
        "A previous currency conversion did not finish. "
        "Retry it, or abandon it, before starting a different one."
    )


class PartialRewriteFailure(CurrencyError):
    """
    A convert stopped after a failed write.

    Nothing is rolled back. ``succeeded`` records hold converted amounts,
    the rest still hold amounts in the old currency, and the active
    currency is unchanged.
    """

    def __init__(
        self,
        succeeded: int,
        failed: int,
        not_attempted: int,
        total: int,
    ):
        self.succeeded = succeeded
        self.failed = failed
        self.not_attempted = not_attempted
        self.total = total
        super().__init__(
            f"Currency conversion incomplete: {succeeded} of {total} records "
            f"converted, {failed} failed, {not_attempted} not attempted"
        )

    @property
    def not_rewritten(self) -> int:
        return self.failed + self.not_attempted

    @property
    def user_message(self) -> str:
        return (
            f"Only {self.succeeded} of {self.total} records were converted. "
            "Your currency was not changed. Retry to convert the rest."
        )


class UnconvertibleRecords(CurrencyError):
    """
    Some records would be invalid after conversion (e.g. a goal target
    rounding to 0.00). Raised before any write.
    """

    def __init__(self, invalid: list[tuple[str, str]]):
        self.invalid = invalid
        super().__init__(
            f"{len(invalid)} records would be invalid after conversion: "
            + ", ".join(f"{table}/{record_id}" for table, record_id in invalid)
        )

    @property
    def user_message(self) -> str:
        return (
            f"{len(self.invalid)} records would become invalid at this rate "
            "(for example a goal target rounding to zero). Nothing was changed."
        )


def parse_rate(rate: Any) -> Decimal:
    """
    Turn user input into a conversion rate.

    Raises:
        InvalidRate: Not a number, bool, zero, negative, NaN or infinite
    """
    if isinstance(rate, bool) or rate is None:
        raise InvalidRate(f"Invalid conversion rate: {rate!r}")
    try:
        value = Decimal(str(rate).strip())
    except (InvalidOperation, ValueError):
        raise InvalidRate(f"Invalid conversion rate: {rate!r}") from None

    if not value.is_finite() or value <= 0:
        raise InvalidRate(f"Conversion rate must be positive and finite, got {rate!r}")
    return value


def round_amount(value: Decimal) -> Decimal:
    """Round half away from zero to 2 decimal places."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def convert_amount(amount: Decimal, rate: Decimal) -> Decimal:
    return round_amount(Decimal(str(amount)) * rate)


class CurrencyRebaseService:
    """Keep-or-convert workflow for changing the active currency."""

    def __init__(
        self,
        repositories: Sequence[RecordRepository],
        session: EncryptionSession,
        config_store: LocalConfigStore,
        store: Optional[RecordStoreInterface] = None,
        batch_size: int = 1,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Args:
            repositories: One repository per table holding amounts
            session: Supplies the key for re-encrypting rewritten rows
            config_store: Holds the active currency and the checkpoint
            store: If given, its user_settings rows mirror the currency
            batch_size: Records rewritten concurrently per batch
            audit_logger: Optional audit trail
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self._repositories = list(repositories)
        self._session = session
        self._config_store = config_store
        self._store = store
        self._batch_size = batch_size
        self._audit = audit_logger

    @property
    def current_currency(self) -> str:
        return self._config_store.load().currency

    @property
    def pending_rebase(self) -> Optional[RebaseCheckpoint]:
        return self._config_store.load().pending_rebase

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    @staticmethod
    def decide(record_count: int) -> RebaseDecision:
        if record_count < 0:
            raise ValueError("record_count cannot be negative")
        if record_count == 0:
            return RebaseDecision.IMMEDIATE
        return RebaseDecision.NEEDS_USER_CHOICE

    async def count_records(self) -> int:
        total = 0
        for repository in self._repositories:
            total += await repository.count()
        return total

    async def request_change(self, new_code: str) -> RebaseDecision:
        """
        Ask to switch to ``new_code``.

        With no financial history there is nothing to decide, so the label
        is changed right away and IMMEDIATE is returned.
        """
        new_code = _normalize(new_code)
        old_code = self.current_currency
        if new_code == old_code:
            return RebaseDecision.UNCHANGED

        decision = self.decide(await self.count_records())
        if decision == RebaseDecision.IMMEDIATE:
            await self.keep_as_is(old_code, new_code)
        return decision

    # ------------------------------------------------------------------
    # Keep
    # ------------------------------------------------------------------

    async def keep_as_is(self, old_code: str, new_code: str) -> RebaseResult:
        """
        Relabel only. Issues no write to any record.

        Raises:
            RebaseInProgress: A conversion is half done
            CurrencyError: ``old_code`` is not the active currency
            StorageError: The remote settings row could not be updated
        """
        old_code, new_code = _normalize(old_code), _normalize(new_code)
        config = self._config_store.load()
        if config.pending_rebase is not None:
            raise RebaseInProgress()
        self._check_active(config.currency, old_code)

        await self._sync_remote_currency(new_code)
        self._config_store.update(currency=new_code)

        if self._audit:
            await self._audit.log_currency_changed(
                old_code=old_code,
                new_code=new_code,
                converted=False,
                correlation_id=create_correlation_id(),
            )
        return RebaseResult(old_code=old_code, new_code=new_code, converted=False)

    # ------------------------------------------------------------------
    # Convert
    # ------------------------------------------------------------------

    async def convert(self, old_code: str, new_code: str, rate: Any) -> RebaseResult:
        """
        Multiply every stored amount by ``rate`` and switch the currency.

        Raises:
            InvalidRate: Before any read or write
            EncryptionKeyRequired: Session locked, before any read or write
            RebaseInProgress: A different conversion is half done
            CurrencyError: ``old_code`` is not the active currency
            DecryptionFailed: A stored row does not open, before any write
            UnconvertibleRecords: A converted record fails validation, before any write
            PartialRewriteFailure: Some rows were rewritten, then a write failed
        """
        rate = parse_rate(rate)
        key = self._session.require_key()
        old_code, new_code = _normalize(old_code), _normalize(new_code)

        config = self._config_store.load()
        checkpoint = config.pending_rebase
        if checkpoint is not None and not checkpoint.matches(old_code, new_code, rate):
            raise RebaseInProgress(
                f"Pending conversion {checkpoint.old_code} -> {checkpoint.new_code} "
                f"at {checkpoint.rate}"
            )
        self._check_active(config.currency, old_code)
        if old_code == new_code:
            raise CurrencyError(f"{new_code} is already the active currency")

        if checkpoint is None:
            checkpoint = RebaseCheckpoint(old_code=old_code, new_code=new_code, rate=rate)
        correlation_id = create_correlation_id()

        if self._audit:
            await self._audit.log_rebase_started(old_code, new_code, rate, correlation_id)

        # Snapshot and build every patch first: a row that fails to decrypt,
        # or a record that is invalid once converted, stops us before the
        # first write.
        pending: list[tuple[RecordRepository, StorageRow, Any, dict[str, Any], list[str]]] = []
        invalid: list[tuple[str, str]] = []
        skipped = 0
        for repository in self._repositories:
            for row, record in await repository.snapshot(key):
                if checkpoint.is_done(repository.table, record.id):
                    skipped += 1
                    continue

                updates = _converted_amounts(repository, record, rate)
                try:
                    patch = repository.prepare_update(row, updates, key)
                except ValueError:
                    invalid.append((repository.table, record.id))
                    continue
                pending.append((repository, row, record, patch, list(updates)))

        if invalid:
            logger.warning(
                "currency_convert_rejected",
                new_code=new_code,
                invalid_count=len(invalid),
            )
            raise UnconvertibleRecords(invalid)

        self._config_store.update(pending_rebase=checkpoint)

        succeeded = 0
        failed = 0
        for start in range(0, len(pending), self._batch_size):
            batch = pending[start:start + self._batch_size]
            results = await asyncio.gather(
                *(repository.write_patch(row, patch, fields, key)
                  for repository, row, _, patch, fields in batch),
                return_exceptions=True,
            )

            for (repository, _, record, _, _), result in zip(batch, results):
                if isinstance(result, Exception):
                    failed += 1
                    logger.error(
                        "currency_rewrite_failed",
                        table=repository.table,
                        record_id=record.id,
                        error_type=type(result).__name__,
                    )
                elif isinstance(result, BaseException):
                    raise result
                else:
                    succeeded += 1
                    checkpoint.mark_done(repository.table, record.id)

            self._config_store.update(pending_rebase=checkpoint)
            if failed:
                break

        if failed:
            not_attempted = len(pending) - succeeded - failed
            if self._audit:
                await self._audit.log_rebase_partial(
                    new_code, succeeded, failed, not_attempted, correlation_id
                )
            raise PartialRewriteFailure(
                succeeded=succeeded,
                failed=failed,
                not_attempted=not_attempted,
                total=len(pending),
            )

        try:
            await self._sync_remote_currency(new_code)
        except Exception as e:
            # Amounts are converted already; the local label is authoritative
            logger.warning("user_settings_currency_sync_failed", error=str(e))

        self._config_store.update(currency=new_code, pending_rebase=None)

        if self._audit:
            await self._audit.log_rebase_completed(new_code, succeeded, skipped, correlation_id)
            await self._audit.log_currency_changed(old_code, new_code, True, correlation_id)

        return RebaseResult(
            old_code=old_code,
            new_code=new_code,
            converted=True,
            rate=rate,
            records_rewritten=succeeded,
            records_skipped=skipped,
        )

    async def resume(self) -> RebaseResult:
        """
        Finish the pending conversion.

        Raises:
            CurrencyError: Nothing to resume
        """
        checkpoint = self.pending_rebase
        if checkpoint is None:
            raise CurrencyError("No currency conversion to resume")
        return await self.convert(checkpoint.old_code, checkpoint.new_code, checkpoint.rate)

    async def abandon(self) -> RebaseCheckpoint:
        """
        Drop the pending conversion without finishing it.

        Records already converted keep their new amounts and the active
        currency stays the old one, so the ledger holds mixed amounts,
        the same accepted inconsistency as keep_as_is.

        Returns:
            The discarded checkpoint

        Raises:
            CurrencyError: Nothing to abandon
        """
        checkpoint = self.pending_rebase
        if checkpoint is None:
            raise CurrencyError("No currency conversion to abandon")

        self._config_store.update(pending_rebase=None)
        logger.warning(
            "currency_rebase_abandoned",
            old_code=checkpoint.old_code,
            new_code=checkpoint.new_code,
            converted=checkpoint.completed_count,
        )

        if self._audit:
            await self._audit.log_rebase_abandoned(
                old_code=checkpoint.old_code,
                new_code=checkpoint.new_code,
                converted=checkpoint.completed_count,
                correlation_id=create_correlation_id(),
            )
        return checkpoint

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _sync_remote_currency(self, new_code: str) -> None:
        if self._store is None:
            return

        now = datetime.now(timezone.utc).isoformat()
        for row in await self._store.read_all(USER_SETTINGS_TABLE):
            await self._store.update(
                USER_SETTINGS_TABLE,
                row["id"],
                {"default_currency": new_code, "updated_at": now},
            )

    @staticmethod
    def _check_active(active: str, old_code: str) -> None:
        if active != old_code:
            raise CurrencyError(f"Active currency is {active}, not {old_code}")


def _converted_amounts(
    repository: RecordRepository,
    record: Any,
    rate: Decimal,
) -> dict[str, Decimal]:
    return {
        name: convert_amount(getattr(record, name), rate)
        for name in repository.shape.amount_fields
        if getattr(record, name) is not None
    }


def _normalize(code: str) -> str:
    return code.strip().upper()
