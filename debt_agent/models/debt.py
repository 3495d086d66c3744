"""
Debt models: the owed amount, its payments and its reminder/escalation state.

Status and next reminder date are stored, but only ever written through the
debt ledger, which recomputes both on every mutation. Balances are derived
from the payment list on read.
"""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DebtStatus(str, Enum):
    """Enumeration of debt lifecycle states."""
    PENDING = "pending"
    OVERDUE = "overdue"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    CANCELLED = "cancelled"
    ESCALATED = "escalated"
    WRITTEN_OFF = "written_off"


TERMINAL_STATUSES = frozenset({DebtStatus.PAID, DebtStatus.CANCELLED, DebtStatus.WRITTEN_OFF})

# Statuses in which a debt is still being actively chased
OPEN_STATUSES = frozenset({DebtStatus.PENDING, DebtStatus.OVERDUE, DebtStatus.PARTIALLY_PAID})


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Currency(str, Enum):
    IDR = "IDR"
    USD = "USD"
    EUR = "EUR"


class DebtCategory(str, Enum):
    SERVICE = "service"
    PRODUCT = "product"
    LOAN = "loan"
    PENALTY = "penalty"
    OTHER = "other"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    E_WALLET = "e_wallet"
    CHECK = "check"
    OTHER = "other"


class EscalationType(str, Enum):
    LEGAL = "legal"
    COLLECTION_AGENCY = "collection_agency"
    MANAGEMENT = "management"
    WRITE_OFF = "write_off"


class Payment(BaseModel):
    """A single payment event recorded against a debt."""

    amount: Decimal = Field(..., gt=0)
    payment_date: datetime
    method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    reference: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None


class Debt(BaseModel):
    """One debt owed by one debtor."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    debtor_id: str
    invoice_number: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    currency: Currency = Currency.IDR
    description: str = ""
    category: DebtCategory = DebtCategory.SERVICE
    issue_date: datetime = Field(default_factory=_utcnow)
    due_date: datetime
    payments: List[Payment] = Field(default_factory=list)
    status: DebtStatus = DebtStatus.PENDING
    priority: Priority = Priority.MEDIUM

    # Reminder/escalation counters
    reminder_count: int = Field(default=0, ge=0)
    last_reminder_date: Optional[datetime] = None
    last_reminder_level: Optional[int] = None
    next_reminder_date: Optional[datetime] = None
    escalation_date: Optional[datetime] = None
    escalation_type: Optional[EscalationType] = None

    assigned_to: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("due_date", "issue_date")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def total_paid(self) -> Decimal:
        return sum((p.amount for p in self.payments), Decimal("0"))

    @property
    def remaining_balance(self) -> Decimal:
        return max(Decimal("0"), self.amount - self.total_paid)

    @property
    def overpaid_amount(self) -> Decimal:
        return max(Decimal("0"), self.total_paid - self.amount)

    @property
    def payment_percentage(self) -> float:
        if self.amount == 0:
            return 0.0
        return min(100.0, float(self.total_paid / self.amount * 100))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def days_overdue(self, now: datetime) -> int:
        """Whole days past the due date; 0 for settled debts or debts not yet due."""
        if self.status in (DebtStatus.PAID, DebtStatus.CANCELLED):
            return 0
        return max(0, (now - self.due_date).days)
