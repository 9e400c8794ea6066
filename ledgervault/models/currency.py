"""
Currency Models

There is ONE active currency for the whole ledger. Stored amounts carry
no currency tag; they are implicitly denominated in whatever code was
active when they were written. Changing the code is an explicit, global
operation that either keeps old amounts as they are or rebases them all
under a multiplicative rate.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class CurrencyInfo(BaseModel):
    """Display metadata for a currency code."""
    model_config = ConfigDict(frozen=True)

    code: str
    symbol: str
    name: str
    countries: str


def _c(code: str, symbol: str, name: str, countries: str) -> CurrencyInfo:
    return CurrencyInfo(code=code, symbol=symbol, name=name, countries=countries)


CURRENCIES: dict[str, CurrencyInfo] = {
    info.code: info for info in (
        # Major currencies
        _c("USD", "$", "US Dollar", "United States"),
        _c("EUR", "€", "Euro", "Eurozone"),
        _c("GBP", "£", "British Pound", "United Kingdom"),
        _c("JPY", "¥", "Japanese Yen", "Japan"),
        _c("CAD", "C$", "Canadian Dollar", "Canada"),
        _c("AUD", "A$", "Australian Dollar", "Australia"),
        _c("CHF", "CHF", "Swiss Franc", "Switzerland"),
        _c("CNY", "¥", "Chinese Yuan", "China"),
        _c("INR", "₹", "Indian Rupee", "India"),
        _c("MXN", "$", "Mexican Peso", "Mexico"),
        _c("SGD", "S$", "Singapore Dollar", "Singapore"),
        _c("HKD", "HK$", "Hong Kong Dollar", "Hong Kong"),
        _c("NZD", "NZ$", "New Zealand Dollar", "New Zealand"),
        _c("KRW", "₩", "South Korean Won", "South Korea"),
        _c("SEK", "kr", "Swedish Krona", "Sweden"),
        _c("NOK", "kr", "Norwegian Krone", "Norway"),
        _c("DKK", "kr", "Danish Krone", "Denmark"),
        _c("ZAR", "R", "South African Rand", "South Africa"),
        _c("BRL", "R$", "Brazilian Real", "Brazil"),
        _c("RUB", "₽", "Russian Ruble", "Russia"),
        _c("TRY", "₺", "Turkish Lira", "Turkey"),
        _c("AED", "د.إ", "UAE Dirham", "United Arab Emirates"),
        _c("SAR", "﷼", "Saudi Riyal", "Saudi Arabia"),
        _c("QAR", "﷼", "Qatari Riyal", "Qatar"),
        _c("PKR", "₨", "Pakistani Rupee", "Pakistan"),
        _c("IDR", "Rp", "Indonesian Rupiah", "Indonesia"),
        _c("THB", "฿", "Thai Baht", "Thailand"),
        _c("MYR", "RM", "Malaysian Ringgit", "Malaysia"),
        _c("PHP", "₱", "Philippine Peso", "Philippines"),
        _c("VND", "₫", "Vietnamese Dong", "Vietnam"),
    )
}


def get_currency(code: str) -> Optional[CurrencyInfo]:
    return CURRENCIES.get(code.upper())


def get_currency_symbol(code: str) -> str:
    """Symbol for a code, falling back to the code itself."""
    info = get_currency(code)
    return info.symbol if info else code


def get_currency_name(code: str) -> str:
    info = get_currency(code)
    return info.name if info else code


class RebaseDecision(str, Enum):
    """
    Outcome of asking to change the active currency.

    IMMEDIATE: no financial history exists, the label was changed already.
    NEEDS_USER_CHOICE: records exist, the user must pick keep or convert.
    UNCHANGED: the requested code is already active.
    """
    IMMEDIATE = "immediate"
    NEEDS_USER_CHOICE = "needs_user_choice"
    UNCHANGED = "unchanged"


class RebaseCheckpoint(BaseModel):
    """
    Progress of a convert that did not finish.

    Persisted in the local config so a retry resumes instead of
    converting already-rewritten records a second time.
    """

    rebase_id: str = Field(default_factory=lambda: str(uuid4()))
    old_code: str
    new_code: str
    rate: Decimal
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_ids: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Rewritten record ids, per table"
    )

    def matches(self, old_code: str, new_code: str, rate: Decimal) -> bool:
        return (
            self.old_code == old_code
            and self.new_code == new_code
            and self.rate == rate
        )

    def is_done(self, table: str, record_id: str) -> bool:
        return record_id in self.completed_ids.get(table, [])

    def mark_done(self, table: str, record_id: str) -> None:
        self.completed_ids.setdefault(table, []).append(record_id)

    @property
    def completed_count(self) -> int:
        return sum(len(ids) for ids in self.completed_ids.values())


class RebaseResult(BaseModel):
    """Summary of a finished currency change."""

    old_code: str
    new_code: str
    converted: bool = Field(
        ...,
        description="False for keep-as-is, True for a rate conversion"
    )
    rate: Optional[Decimal] = None
    records_rewritten: int = Field(default=0, ge=0)
    records_skipped: int = Field(
        default=0,
        ge=0,
        description="Records already rewritten by an earlier, resumed attempt"
    )
