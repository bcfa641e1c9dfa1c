from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from enum import Enum
from typing import Any, Mapping, Optional
from decimal import Decimal, ROUND_DOWN

# Amounts are stored as integers scaled by 10^4
AMOUNT_SCALE = 10_000
AMOUNT_PRECISION = Decimal("0.0001")

MAX_CLIENT_ID = 65535
MAX_TRANSACTION_ID = 4294967295


def to_fixed(value: Decimal) -> int:
    """Convert a decimal amount to its fixed-point form, truncating past 4 places."""
    return int(value.quantize(AMOUNT_PRECISION, rounding=ROUND_DOWN) * AMOUNT_SCALE)


def from_fixed(value: int) -> Decimal:
    """Convert a fixed-point amount back to a decimal with 4 places."""
    return Decimal(value).scaleb(-4)


class TransactionType(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"
    dispute = "dispute"
    resolve = "resolve"
    chargeback = "chargeback"

    @property
    def carries_amount(self) -> bool:
        return self in (TransactionType.deposit, TransactionType.withdrawal)


class Transaction(BaseModel):
    """A validated transaction. Amounts are fixed-point integers."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0, le=MAX_TRANSACTION_ID, description="Transaction identifier")
    client: int = Field(..., ge=0, le=MAX_CLIENT_ID, description="Client identifier")
    type: TransactionType = Field(..., description="Transaction type")
    amount: Optional[int] = Field(None, ge=0, description="Fixed-point amount (deposit/withdrawal only)")

    @model_validator(mode="after")
    def validate_amount_presence(self):
        if self.type.carries_amount and self.amount is None:
            raise ValueError(f"{self.type.value} transactions require an amount")
        if not self.type.carries_amount and self.amount is not None:
            raise ValueError(f"{self.type.value} transactions cannot carry an amount")
        return self


class Account(BaseModel):
    """Balances of one client. Invariant: total == available + held."""

    id: int = Field(..., ge=0, le=MAX_CLIENT_ID, description="Client identifier")
    available: int = Field(0, description="Funds available for withdrawal")
    held: int = Field(0, description="Funds held by open disputes")
    total: int = Field(0, description="available + held")
    locked: bool = Field(False, description="Set by a chargeback, rejects further transactions")

    @property
    def is_balanced(self) -> bool:
        return self.total == self.available + self.held


class TransactionRow(BaseModel):
    """One row of the input CSV, before conversion to fixed-point."""

    model_config = ConfigDict(str_strip_whitespace=True)

    type: TransactionType
    client: int = Field(..., ge=0, le=MAX_CLIENT_ID)
    tx: int = Field(..., ge=0, le=MAX_TRANSACTION_ID)
    amount: Optional[Decimal] = Field(None, ge=0)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def empty_amount_is_none(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return v

    @classmethod
    def from_csv(cls, row: Mapping[Optional[str], Any]) -> "TransactionRow":
        # csv.DictReader puts surplus fields under the None key
        normalized = {
            k.strip(): v.strip() if isinstance(v, str) else v
            for k, v in row.items()
            if k is not None
        }
        return cls.model_validate(normalized)

    def to_transaction(self) -> Transaction:
        amount = None
        if self.type.carries_amount and self.amount is not None:
            amount = to_fixed(self.amount)
        return Transaction(id=self.tx, client=self.client, type=self.type, amount=amount)


class AccountRow(BaseModel):
    """One row of the output CSV."""

    client: int
    available: Decimal
    held: Decimal
    total: Decimal
    locked: bool

    @classmethod
    def from_account(cls, account: Account) -> "AccountRow":
        return cls(
            client=account.id,
            available=from_fixed(account.available),
            held=from_fixed(account.held),
            total=from_fixed(account.total),
            locked=account.locked,
        )

    def as_csv_row(self) -> list:
        return [
            self.client,
            format_decimal(self.available),
            format_decimal(self.held),
            format_decimal(self.total),
            str(self.locked).lower(),
        ]


def format_decimal(value: Decimal) -> str:
    """Format decimal with up to 4 decimal places, removing trailing zeros."""
    normalized = value.normalize()
    return f"{normalized:f}"
