"""
Financial Record Models

A financial record is either a Transaction or a Goal. Each record splits
into two sets of fields:

- Non-sensitive fields (id, type, dates, category, mood, tags) are always
  stored in clear.
- Sensitive fields (amounts, description, notes) are stored either in
  clear or encrypted together as ONE envelope. A record is never
  partially encrypted.

DESIGN DECISION: Which fields are sensitive is declared once per record
type in a RecordShape. The codec and the repositories are written
against shapes, not against concrete models, so adding a new encrypted
table is a new shape and nothing else.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional, Type
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


_Date = date

# Amounts travel as JSON numbers (IEEE doubles), which hold 15 significant
# digits exactly. Capping max_digits keeps every stored amount lossless.
AMOUNT_MAX_DIGITS = 15

Amount = Annotated[Decimal, Field(ge=0, max_digits=AMOUNT_MAX_DIGITS, decimal_places=2)]


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money flow."""
    INCOME = "income"
    EXPENSE = "expense"


class MoodType(str, Enum):
    """How the user felt about a transaction."""
    HAPPY = "happy"
    NECESSARY = "necessary"
    IMPULSE = "impulse"
    REGRET = "regret"


# =============================================================================
# RECORD MODELS
# =============================================================================

class Transaction(BaseModel):
    """
    A single income or expense entry.

    Sensitive: amount, description, notes.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id)
    type: TransactionType
    date: _Date = Field(default_factory=_Date.today)
    category_id: Optional[str] = None
    mood: Optional[MoodType] = None
    tags: list[str] = Field(default_factory=list)

    amount: Amount = Field(
        ...,
        description="Amount in the active currency"
    )
    description: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=2000)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Goal(BaseModel):
    """
    A savings goal.

    Sensitive: target_amount, current_amount, description.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1, max_length=200)
    target_date: Optional[date] = None
    category_id: Optional[str] = None

    target_amount: Amount
    current_amount: Amount = Decimal("0")
    description: Optional[str] = Field(default=None, max_length=500)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def validate_progress(self) -> "Goal":
        """Progress can exceed the target (overshoot), but a target of 0 is meaningless."""
        if self.target_amount == 0:
            raise ValueError("Goal target amount must be greater than zero")
        return self


# =============================================================================
# RECORD SHAPES
# =============================================================================

@dataclass(frozen=True)
class RecordShape:
    """
    Describes how one record type maps onto a storage table.

    Attributes:
        table: Store table name
        model: Pydantic model class for the decrypted record
        sensitive_fields: Fields encrypted together as one envelope
        amount_fields: Sensitive fields holding money (rewritten on rebase)
        sort_field: Field used for newest-first ordering
    """
    table: str
    model: Type[BaseModel]
    sensitive_fields: tuple[str, ...]
    amount_fields: tuple[str, ...]
    sort_field: str = "created_at"

    @property
    def non_sensitive_fields(self) -> tuple[str, ...]:
        return tuple(
            name for name in self.model.model_fields
            if name not in self.sensitive_fields
        )


TRANSACTION_SHAPE = RecordShape(
    table="transactions",
    model=Transaction,
    sensitive_fields=("amount", "description", "notes"),
    amount_fields=("amount",),
    sort_field="date",
)

GOAL_SHAPE = RecordShape(
    table="goals",
    model=Goal,
    sensitive_fields=("target_amount", "current_amount", "description"),
    amount_fields=("target_amount", "current_amount"),
)

ALL_SHAPES: tuple[RecordShape, ...] = (TRANSACTION_SHAPE, GOAL_SHAPE)
