"""
Debt ledger: debt records, payments and the status state machine.

Every mutation goes through ``_commit``, which recomputes status and the next
reminder date before storing. Read-modify-write cycles run under the debt's
lock from ``DebtLockManager``.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, FrozenSet, List, Optional

from debt_agent.core.clock import Clock, SystemClock
from debt_agent.core.config import Settings, get_settings
from debt_agent.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from debt_agent.core.locks import DebtLockManager
from debt_agent.core.logging import get_logger, log_business_event
from debt_agent.models.debt import (
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    Debt,
    DebtStatus,
    EscalationType,
    Payment,
    PaymentMethod,
)
from debt_agent.models.debtor import PaymentOutcome
from debt_agent.models.results import BulkReminderCriteria
from debt_agent.services.debtor_registry import DebtorRegistry
from debt_agent.services.store import InMemoryStore

logger = get_logger(__name__)


# Transitions reachable without operator override. Terminal states have none.
ALLOWED_TRANSITIONS: Dict[DebtStatus, FrozenSet[DebtStatus]] = {
    DebtStatus.PENDING: frozenset({
        DebtStatus.OVERDUE, DebtStatus.PARTIALLY_PAID, DebtStatus.PAID,
        DebtStatus.ESCALATED, DebtStatus.CANCELLED, DebtStatus.WRITTEN_OFF,
    }),
    DebtStatus.OVERDUE: frozenset({
        DebtStatus.PARTIALLY_PAID, DebtStatus.PAID,
        DebtStatus.ESCALATED, DebtStatus.CANCELLED, DebtStatus.WRITTEN_OFF,
    }),
    DebtStatus.PARTIALLY_PAID: frozenset({
        DebtStatus.PAID, DebtStatus.ESCALATED, DebtStatus.CANCELLED, DebtStatus.WRITTEN_OFF,
    }),
    DebtStatus.ESCALATED: frozenset({
        DebtStatus.PAID, DebtStatus.CANCELLED, DebtStatus.WRITTEN_OFF,
    }),
    DebtStatus.PAID: frozenset(),
    DebtStatus.CANCELLED: frozenset(),
    DebtStatus.WRITTEN_OFF: frozenset(),
}


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def recompute_status(debt: Debt, now: datetime) -> DebtStatus:
    """
    Derive a debt's status from its payments, due date and prior status.

    Pure and idempotent: feeding the result back in yields the same status.

    Args:
        debt: The debt as currently stored
        now: Reference instant for the due-date comparison

    Returns:
        The status the debt should have
    """
    status = debt.status
    if status in (DebtStatus.CANCELLED, DebtStatus.WRITTEN_OFF):
        return status

    if debt.total_paid >= debt.amount:
        return DebtStatus.PAID

    if debt.total_paid > 0 and status in OPEN_STATUSES:
        return DebtStatus.PARTIALLY_PAID

    if status == DebtStatus.PENDING and _as_utc(now) > debt.due_date:
        return DebtStatus.OVERDUE

    return status


def recompute_next_reminder_date(debt: Debt, settings: Settings) -> Optional[datetime]:
    """
    Next instant a reminder becomes due, or None once the debt is closed or
    its reminder attempts are used up.
    """
    if debt.status in TERMINAL_STATUSES:
        return None
    if debt.reminder_count >= settings.max_reminder_attempts:
        return None
    base = debt.last_reminder_date or debt.due_date
    return base + timedelta(hours=settings.reminder_interval_hours)


def reminder_level_for(debt: Debt) -> int:
    """Tone tier 1 (gentle) to 5 (final warning) from the number of reminders sent."""
    count = debt.reminder_count
    if count == 0:
        return 1
    if count <= 2:
        return 2
    if count <= 4:
        return 3
    if count <= 6:
        return 4
    return 5


class DebtLedger:
    """Service owning debt records and their lifecycle."""

    def __init__(
        self,
        store: InMemoryStore,
        registry: DebtorRegistry,
        locks: Optional[DebtLockManager] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.registry = registry
        self.locks = locks or DebtLockManager()
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()

    # Queries

    async def get_debt(self, debt_id: str) -> Debt:
        debt = await self.store.get_debt(debt_id)
        if debt is None:
            raise NotFoundError("debt", debt_id)
        return debt

    async def list_active_debts_for_debtor(self, debtor_id: str) -> List[Debt]:
        """Open (pending, overdue, partially paid) active debts of one debtor."""
        debts = await self.store.query_debts(
            lambda d: d.debtor_id == debtor_id and d.is_active and d.status in OPEN_STATUSES
        )
        return sorted(debts, key=lambda d: d.due_date)

    def can_send_reminder(self, debt: Debt, now: Optional[datetime] = None) -> bool:
        """Whether a reminder may be sent for this debt at ``now``."""
        now = _as_utc(now or self.clock.now())
        if not debt.is_active or debt.status not in OPEN_STATUSES:
            return False
        if debt.reminder_count >= self.settings.max_reminder_attempts:
            return False
        if debt.next_reminder_date is not None:
            return debt.next_reminder_date <= now
        return debt.reminder_count == 0 and debt.due_date < now

    def should_escalate(self, debt: Debt, now: Optional[datetime] = None) -> bool:
        """Whether the debt qualifies for escalation at ``now``."""
        now = _as_utc(now or self.clock.now())
        if not debt.is_active or debt.status not in OPEN_STATUSES:
            return False
        if debt.reminder_count >= self.settings.max_reminder_attempts:
            return True
        return (
            debt.status in (DebtStatus.OVERDUE, DebtStatus.PARTIALLY_PAID)
            and debt.days_overdue(now) >= self.settings.escalation_threshold_days
        )

    async def find_due_for_reminder(self, now: Optional[datetime] = None) -> List[Debt]:
        """Active open debts whose next reminder is due."""
        now = _as_utc(now or self.clock.now())
        debts = await self.store.query_debts(lambda d: self.can_send_reminder(d, now))
        return sorted(debts, key=lambda d: d.due_date)

    async def find_due_for_escalation(self, now: Optional[datetime] = None) -> List[Debt]:
        """Active open debts past the escalation threshold or out of reminder attempts."""
        now = _as_utc(now or self.clock.now())
        debts = await self.store.query_debts(lambda d: self.should_escalate(d, now))
        return sorted(debts, key=lambda d: d.due_date)

    async def find_by_criteria(self, criteria: BulkReminderCriteria, now: Optional[datetime] = None) -> List[Debt]:
        now = _as_utc(now or self.clock.now())
        statuses = set(criteria.statuses)
        wanted_tags = set(criteria.tags)

        def matches(debt: Debt) -> bool:
            if not debt.is_active or debt.status not in statuses:
                return False
            if criteria.debtor_id and debt.debtor_id != criteria.debtor_id:
                return False
            if criteria.priority and debt.priority != criteria.priority:
                return False
            if debt.days_overdue(now) < criteria.min_days_overdue:
                return False
            return wanted_tags.issubset(debt.tags)

        return sorted(await self.store.query_debts(matches), key=lambda d: d.due_date)

    # Mutations

    async def _commit(self, debt: Debt, now: datetime) -> Debt:
        """Recompute derived state and persist. Caller holds the debt lock."""
        debt.status = recompute_status(debt, now)
        debt.next_reminder_date = recompute_next_reminder_date(debt, self.settings)
        debt.updated_at = now
        await self.store.save_debt(debt)
        return debt

    async def save(self, debt: Debt) -> Debt:
        """Persist an edited debt, recomputing status and next reminder date."""
        async with self.locks.lock(debt.id):
            return await self._commit(debt, self.clock.now())

    async def create_debt(
        self,
        debtor_id: str,
        invoice_number: str,
        amount: Any,
        due_date: datetime,
        **fields: Any,
    ) -> Debt:
        """
        Create a debt in status pending, then recompute it.

        Raises:
            NotFoundError: If the debtor does not exist
            ValidationError: If the invoice number is taken or the amount is not positive
        """
        await self.registry.get(debtor_id)

        amount = self._parse_amount(amount)
        if await self.store.find_debt_by_invoice(invoice_number):
            raise ValidationError("invoice number already exists", field="invoice_number", value=invoice_number)

        # Lifecycle state always starts fresh
        for derived in ("status", "reminder_count", "next_reminder_date", "payments", "escalation_date"):
            fields.pop(derived, None)

        now = self.clock.now()
        debt = Debt(
            debtor_id=debtor_id,
            invoice_number=invoice_number,
            amount=amount,
            due_date=_as_utc(due_date),
            status=DebtStatus.PENDING,
            created_at=now,
            **fields,
        )
        async with self.locks.lock(debt.id):
            await self._commit(debt, now)

        logger.info(
            "Debt created",
            debt_id=debt.id,
            debtor_id=debtor_id,
            invoice_number=invoice_number,
            status=debt.status.value,
        )
        return debt

    @staticmethod
    def _parse_amount(amount: Any) -> Decimal:
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            raise ValidationError("amount must be a number", field="amount", value=amount)
        if not value.is_finite() or value <= 0:
            raise ValidationError("amount must be greater than zero", field="amount", value=amount)
        return value

    async def record_payment(
        self,
        debt_id: str,
        amount: Any,
        payment_date: datetime,
        method: PaymentMethod = PaymentMethod.BANK_TRANSFER,
        verifier: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> Payment:
        """
        Append a payment to a debt and fold it into the debtor's history.

        Args:
            debt_id: Debt being paid
            amount: Payment amount, must be positive
            payment_date: When the debtor paid
            method: Payment method
            verifier: Operator who verified the payment, if any
            reference: External payment reference

        Returns:
            The recorded payment

        Raises:
            ValidationError: If amount is not positive
            NotFoundError: If the debt does not exist
        """
        value = self._parse_amount(amount)
        payment_date = _as_utc(payment_date)
        now = self.clock.now()

        async with self.locks.lock(debt_id):
            debt = await self.get_debt(debt_id)
            payment = Payment(
                amount=value,
                payment_date=payment_date,
                method=method,
                reference=reference,
                verified_by=verifier,
                verified_at=now if verifier else None,
            )
            previous_status = debt.status
            debt.payments.append(payment)
            await self._commit(debt, now)

        payment_days = (payment_date - debt.due_date).days
        outcome = PaymentOutcome.ON_TIME if payment_days <= 0 else PaymentOutcome.LATE
        await self.registry.record_payment_outcome(debt.debtor_id, outcome, payment_days)

        log_business_event(
            "payment_recorded",
            debt_id=debt_id,
            amount=str(value),
            remaining_balance=str(debt.remaining_balance),
            previous_status=previous_status.value,
            status=debt.status.value,
            outcome=outcome.value,
        )
        if debt.overpaid_amount > 0:
            logger.warning("Debt overpaid", debt_id=debt_id, overpaid_amount=str(debt.overpaid_amount))
        return payment

    async def commit_reminder_sent(self, debt_id: str, level: int, sent_at: Optional[datetime] = None) -> Debt:
        """
        Record a successful reminder: bump the counter and move the next reminder date.

        A debt that was settled or escalated while the message was in flight keeps
        its counter; only the last reminder stamp is updated.
        """
        now = _as_utc(sent_at or self.clock.now())
        async with self.locks.lock(debt_id):
            debt = await self.get_debt(debt_id)
            if debt.status in OPEN_STATUSES:
                debt.reminder_count += 1
            else:
                logger.info("Reminder sent for closed debt", debt_id=debt_id, status=debt.status.value)
            debt.last_reminder_date = now
            debt.last_reminder_level = level
            return await self._commit(debt, now)

    async def commit_escalation(
        self,
        debt_id: str,
        escalation_type: EscalationType,
        escalated_at: Optional[datetime] = None,
    ) -> Optional[Debt]:
        """
        Move a debt to escalated.

        Returns None without changing anything when the debt is terminal or
        already escalated, so concurrent escalations commit at most once.
        """
        now = escalated_at or self.clock.now()
        async with self.locks.lock(debt_id):
            debt = await self.get_debt(debt_id)
            if debt.status in TERMINAL_STATUSES or debt.status == DebtStatus.ESCALATED:
                logger.info("Escalation commit skipped", debt_id=debt_id, status=debt.status.value)
                return None
            debt.status = DebtStatus.ESCALATED
            debt.escalation_date = now
            debt.escalation_type = EscalationType(escalation_type)
            return await self._commit(debt, now)

    async def change_status(
        self,
        debt_id: str,
        new_status: DebtStatus,
        operator_override: bool = False,
        reason: Optional[str] = None,
    ) -> Debt:
        """
        Operator status change.

        Terminal debts can only be moved with ``operator_override``. Writing a
        debt off counts as a default in the debtor's payment history.

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        new_status = DebtStatus(new_status)
        now = self.clock.now()

        async with self.locks.lock(debt_id):
            debt = await self.get_debt(debt_id)
            current = debt.status
            if current == new_status:
                return debt
            if not operator_override and new_status not in ALLOWED_TRANSITIONS[current]:
                raise InvalidTransitionError(current.value, new_status.value, debt_id=debt_id)

            debt.status = new_status
            if reason:
                debt.notes = f"{debt.notes}\n{reason}" if debt.notes else reason
            await self._commit(debt, now)

        if new_status == DebtStatus.WRITTEN_OFF:
            await self.registry.record_payment_outcome(debt.debtor_id, PaymentOutcome.DEFAULTED)

        logger.info(
            "Debt status changed",
            debt_id=debt_id,
            from_status=current.value,
            to_status=debt.status.value,
            operator_override=operator_override,
        )
        return debt

    async def soft_delete(self, debt_id: str) -> Debt:
        async with self.locks.lock(debt_id):
            debt = await self.get_debt(debt_id)
            debt.is_active = False
            await self._commit(debt, self.clock.now())
        logger.info("Debt deactivated", debt_id=debt_id)
        return debt

    async def refresh_statuses(self, now: Optional[datetime] = None) -> int:
        """Recompute every open debt so pending debts past due become overdue."""
        now = now or self.clock.now()
        changed = 0
        for candidate in await self.store.query_debts(lambda d: d.is_active and d.status in OPEN_STATUSES):
            async with self.locks.lock(candidate.id):
                debt = await self.get_debt(candidate.id)
                before = debt.status
                await self._commit(debt, now)
                if debt.status != before:
                    changed += 1
        if changed:
            logger.info("Debt statuses refreshed", changed=changed)
        return changed

    # Reporting

    async def get_debt_statistics(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Counts and amounts per status, plus open debts already past due."""
        now = now or self.clock.now()
        debts = await self.store.query_debts(lambda d: d.is_active)

        by_status: Dict[str, Dict[str, Any]] = {}
        for debt in debts:
            bucket = by_status.setdefault(debt.status.value, {"count": 0, "total_amount": Decimal("0")})
            bucket["count"] += 1
            bucket["total_amount"] += debt.amount
        for bucket in by_status.values():
            bucket["average_amount"] = bucket["total_amount"] / bucket["count"]

        overdue = [d for d in debts if d.status in OPEN_STATUSES and d.due_date < now]
        return {
            "by_status": by_status,
            "overdue": {
                "count": len(overdue),
                "total_amount": sum((d.remaining_balance for d in overdue), Decimal("0")),
                "average_days_overdue": (
                    sum(d.days_overdue(now) for d in overdue) / len(overdue) if overdue else 0.0
                ),
            },
            "generated_at": now,
        }

    async def get_collection_efficiency(self, start: datetime, end: datetime) -> Dict[str, Any]:
        """Share of debts created in ``[start, end]`` that have been paid, by count and amount."""
        start, end = _as_utc(start), _as_utc(end)
        debts = await self.store.query_debts(lambda d: start <= d.created_at <= end)

        total_amount = sum((d.amount for d in debts), Decimal("0"))
        paid = [d for d in debts if d.status == DebtStatus.PAID]
        paid_amount = sum((d.amount for d in paid), Decimal("0"))
        return {
            "period_start": start,
            "period_end": end,
            "total_debts": len(debts),
            "total_amount": total_amount,
            "paid_debts": len(paid),
            "paid_amount": paid_amount,
            "collection_rate": len(paid) / len(debts) * 100 if debts else 0.0,
            "amount_collection_rate": float(paid_amount / total_amount * 100) if total_amount else 0.0,
        }
