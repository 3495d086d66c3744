"""
Outcome models returned by the outreach, sweep and response workflows.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from .classification import Intent, SuggestedAction
from .debt import DebtStatus, Priority


class OutreachResult(BaseModel):
    """Result of one outbound attempt for one debt."""

    debt_id: str
    success: bool
    skipped: bool = False
    level: Optional[int] = None
    message_id: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def refused(cls, debt_id: str, reason: str) -> "OutreachResult":
        """A send that was declined before contacting the channel."""
        return cls(debt_id=debt_id, success=False, skipped=True, error=reason)


class SweepError(BaseModel):
    debt_id: str
    error: str


class SweepReport(BaseModel):
    """Per-sweep counters."""

    sweep: str
    selected: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    interrupted: bool = False
    errors: List[SweepError] = Field(default_factory=list)

    def record_failure(self, debt_id: str, error: str) -> None:
        self.failed += 1
        self.errors.append(SweepError(debt_id=debt_id, error=error))


class ResponseOutcome(BaseModel):
    """Summary of how an inbound message was processed."""

    phone: Optional[str] = None
    debtor_id: Optional[str] = None
    matched_debt_ids: List[str] = Field(default_factory=list)
    intent: Optional[Intent] = None
    suggested_action: Optional[SuggestedAction] = None
    reply_sent: bool = False
    escalated_debt_ids: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class BulkReminderCriteria(BaseModel):
    """Filter selecting debts for a bulk reminder run."""

    statuses: List[DebtStatus] = Field(
        default_factory=lambda: [DebtStatus.PENDING, DebtStatus.OVERDUE, DebtStatus.PARTIALLY_PAID]
    )
    debtor_id: Optional[str] = None
    priority: Optional[Priority] = None
    min_days_overdue: int = Field(default=0, ge=0)
    tags: List[str] = Field(default_factory=list)
