"""
Models package for the Debt Collection Agent.
"""
from .classification import ResponseClassification
from .debt import Debt, DebtStatus, EscalationType, Payment
from .debtor import CreditRating, Debtor, PaymentHistory
from .logs import DebtorResponseLog, ReminderLog
from .results import BulkReminderCriteria, OutreachResult, ResponseOutcome, SweepReport

__all__ = [
    "BulkReminderCriteria",
    "CreditRating",
    "Debt",
    "DebtStatus",
    "Debtor",
    "DebtorResponseLog",
    "EscalationType",
    "OutreachResult",
    "Payment",
    "PaymentHistory",
    "ReminderLog",
    "ResponseClassification",
    "ResponseOutcome",
    "SweepReport",
]
