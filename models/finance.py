# FILE: models/finance.py
import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class TransactionKind(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


# -----------------------------
# Transaction (Store → Executor)
# -----------------------------
class Transaction(BaseModel):
    id: str
    date: datetime.date = Field(..., description="Booking date of the transaction")
    description: str = Field(default="")
    kind: TransactionKind
    amount: float = Field(..., ge=0, description="Amount in CLP")
    category: Optional[str] = Field(None, description="Category name, if any")
    reconciliationMonth: str = Field(..., description="Month the transaction counts for, YYYY-MM")

    def search_text(self) -> str:
        """Text the fuzzy category filter matches against."""
        return f"{self.description} {self.category or ''}".lower()


class DashboardSnapshot(BaseModel):
    totalBalance: float
    monthTransactions: List[Transaction] = Field(default_factory=list)


# -----------------------------
# Balance Summary (Executor → Synthesizer)
# -----------------------------
class BalanceSummary(BaseModel):
    totalBalance: float
    monthIncome: float
    monthExpense: float
    monthTransactionCount: int

    @classmethod
    def from_snapshot(cls, snapshot: DashboardSnapshot) -> "BalanceSummary":
        month = snapshot.monthTransactions
        return cls(
            totalBalance=snapshot.totalBalance,
            monthIncome=sum(t.amount for t in month if t.kind is TransactionKind.INCOME),
            monthExpense=sum(t.amount for t in month if t.kind is TransactionKind.EXPENSE),
            monthTransactionCount=len(month),
        )


# -----------------------------
# Write path input (API → Store)
# -----------------------------
class TransactionInput(BaseModel):
    date: datetime.date
    description: str = Field(default="")
    kind: TransactionKind
    amount: float = Field(..., gt=0)
    categoryId: Optional[str] = None
    accountId: Optional[str] = Field(None, description="Account debited or credited")
    reconciliationMonth: Optional[str] = Field(None, description="Defaults to the month of `date`")

    @field_validator("reconciliationMonth")
    @classmethod
    def validate_month(cls, v):
        if v is None:
            return v
        try:
            year, month = v.split("-")
            if len(year) != 4 or not 1 <= int(month) <= 12:
                raise ValueError
        except ValueError:
            raise ValueError("reconciliationMonth must be YYYY-MM")
        return v

    def resolved_month(self) -> str:
        return self.reconciliationMonth or self.date.strftime("%Y-%m")
