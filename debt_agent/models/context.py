"""
Message-generation context passed to the text intelligence layer.

These are read-only snapshots: the generator never sees ledger records.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from .debt import Debt
from .debtor import Debtor


class DebtorContext(BaseModel):
    name: str
    phone: str
    company: Optional[str] = None
    language: str = "id"

    @classmethod
    def from_debtor(cls, debtor: Debtor) -> "DebtorContext":
        return cls(name=debtor.name, phone=debtor.phone, company=debtor.company, language=debtor.language)


class DebtContext(BaseModel):
    amount: Decimal
    remaining_balance: Decimal
    currency: str = "IDR"
    due_date: Optional[datetime] = None
    days_overdue: int = 0
    invoice_number: str
    description: Optional[str] = None
    previous_reminders: int = 0

    @classmethod
    def from_debt(cls, debt: Debt, now: datetime) -> "DebtContext":
        return cls(
            amount=debt.amount,
            remaining_balance=debt.remaining_balance,
            currency=debt.currency.value,
            due_date=debt.due_date,
            days_overdue=debt.days_overdue(now),
            invoice_number=debt.invoice_number,
            description=debt.description or None,
            previous_reminders=debt.reminder_count,
        )

    @classmethod
    def from_debts(cls, debts: List[Debt], now: datetime) -> "DebtContext":
        """Combine several open debts of one debtor into one conversational context."""
        if not debts:
            raise ValueError("At least one debt is required")
        if len(debts) == 1:
            return cls.from_debt(debts[0], now)
        return cls(
            amount=sum((d.amount for d in debts), Decimal("0")),
            remaining_balance=sum((d.remaining_balance for d in debts), Decimal("0")),
            currency=debts[0].currency.value,
            due_date=min(d.due_date for d in debts),
            days_overdue=max(d.days_overdue(now) for d in debts),
            invoice_number=", ".join(d.invoice_number for d in debts),
            previous_reminders=max(d.reminder_count for d in debts),
        )


class PaymentContext(BaseModel):
    amount: Decimal
    payment_date: datetime
    method: str = "bank_transfer"
    reference: Optional[str] = None
    remaining_balance: Decimal = Decimal("0")
    currency: str = "IDR"
