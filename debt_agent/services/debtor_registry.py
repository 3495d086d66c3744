"""
Debtor registry: identity, contact preferences, blacklist and credit rating.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from debt_agent.core.clock import Clock, SystemClock
from debt_agent.core.config import Settings, get_settings
from debt_agent.core.exceptions import NotFoundError, ValidationError
from debt_agent.core.logging import get_logger
from debt_agent.models.debtor import CreditRating, Debtor, PaymentHistory, PaymentOutcome
from debt_agent.services.store import InMemoryStore
from debt_agent.utils.phone import normalize_phone

logger = get_logger(__name__)


def compute_credit_rating(history: PaymentHistory, settings: Settings) -> CreditRating:
    """
    Derive a credit rating from payment history counters.

    Rates are taken over ``history.total``; the cut-offs come from settings.
    """
    if history.total == 0:
        return CreditRating.UNKNOWN

    on_time_rate = history.paid_on_time / history.total
    default_rate = history.defaulted / history.total

    if default_rate > settings.poor_default_rate:
        return CreditRating.POOR
    if default_rate > settings.fair_default_rate or on_time_rate < settings.fair_on_time_rate:
        return CreditRating.FAIR
    if on_time_rate >= settings.excellent_on_time_rate:
        return CreditRating.EXCELLENT
    return CreditRating.GOOD


def apply_payment_outcome(history: PaymentHistory, outcome: PaymentOutcome, payment_days: int = 0) -> PaymentHistory:
    """
    Return a new history with one payment event folded in.

    The average delay is a cumulative mean over on-time and late payments;
    negative delays (early payments) count as zero.
    """
    updated = history.model_copy()
    updated.total += 1
    if outcome == PaymentOutcome.ON_TIME:
        updated.paid_on_time += 1
    elif outcome == PaymentOutcome.LATE:
        updated.paid_late += 1
    else:
        updated.defaulted += 1

    settled = updated.paid_on_time + updated.paid_late
    if outcome != PaymentOutcome.DEFAULTED and settled > 0:
        updated.average_payment_days = (
            updated.average_payment_days * (settled - 1) + max(0, payment_days)
        ) / settled
    return updated


class DebtorRegistry:
    """Service owning debtor records."""

    def __init__(
        self,
        store: InMemoryStore,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()

    def normalize(self, raw_phone: str) -> str:
        try:
            return normalize_phone(raw_phone, self.settings.default_country_code)
        except ValueError as e:
            raise ValidationError(str(e), field="phone", value=raw_phone)

    async def register(self, name: str, phone: str, **fields: Any) -> Debtor:
        """
        Register a new debtor.

        Args:
            name: Debtor name
            phone: Phone in any common format; stored normalized
            **fields: Optional Debtor attributes (email, company, address, ...)

        Raises:
            ValidationError: If the phone is unusable or already registered
        """
        canonical = self.normalize(phone)
        if await self.store.find_debtor_by_phone(canonical):
            raise ValidationError("phone number already registered", field="phone", value=canonical)

        # Rating and history are derived, never accepted from the caller
        fields.pop("credit_rating", None)
        fields.pop("payment_history", None)

        now = self.clock.now()
        debtor = Debtor(name=name, phone=canonical, created_at=now, updated_at=now, **fields)
        await self.store.save_debtor(debtor)
        logger.info("Debtor registered", debtor_id=debtor.id, phone=canonical)
        return debtor

    async def get(self, debtor_id: str) -> Debtor:
        debtor = await self.store.get_debtor(debtor_id)
        if debtor is None:
            raise NotFoundError("debtor", debtor_id)
        return debtor

    async def find_by_phone(self, raw_phone: str) -> Optional[Debtor]:
        """Look up a debtor by any representation of their phone or channel address."""
        try:
            canonical = normalize_phone(raw_phone, self.settings.default_country_code)
        except ValueError:
            logger.warning("Unusable phone in lookup", raw_phone=raw_phone)
            return None
        return await self.store.find_debtor_by_phone(canonical)

    async def update_contact(self, debtor_id: str, **fields: Any) -> Debtor:
        """Update contact metadata. Phone changes are normalized and kept unique."""
        debtor = await self.get(debtor_id)
        for protected in ("id", "credit_rating", "payment_history", "is_blacklisted", "created_at"):
            fields.pop(protected, None)

        if "phone" in fields:
            canonical = self.normalize(fields["phone"])
            existing = await self.store.find_debtor_by_phone(canonical)
            if existing and existing.id != debtor_id:
                raise ValidationError("phone number already registered", field="phone", value=canonical)
            fields["phone"] = canonical

        updated = debtor.model_copy(update={**fields, "updated_at": self.clock.now()})
        # Re-run field validation on the merged record
        updated = Debtor.model_validate(updated.model_dump())
        await self.store.save_debtor(updated)
        return updated

    async def blacklist(self, debtor_id: str, reason: str) -> Debtor:
        """Suppress all outreach to a debtor until cleared."""
        debtor = await self.get(debtor_id)
        debtor.is_blacklisted = True
        debtor.blacklist_reason = reason
        debtor.updated_at = self.clock.now()
        await self.store.save_debtor(debtor)
        logger.warning("Debtor blacklisted", debtor_id=debtor_id, reason=reason)
        return debtor

    async def clear_blacklist(self, debtor_id: str) -> Debtor:
        debtor = await self.get(debtor_id)
        debtor.is_blacklisted = False
        debtor.blacklist_reason = None
        debtor.updated_at = self.clock.now()
        await self.store.save_debtor(debtor)
        logger.info("Debtor blacklist cleared", debtor_id=debtor_id)
        return debtor

    async def deactivate(self, debtor_id: str) -> Debtor:
        debtor = await self.get(debtor_id)
        debtor.is_active = False
        debtor.updated_at = self.clock.now()
        await self.store.save_debtor(debtor)
        logger.info("Debtor deactivated", debtor_id=debtor_id)
        return debtor

    async def record_payment_outcome(
        self,
        debtor_id: str,
        outcome: PaymentOutcome,
        payment_days: int = 0,
    ) -> Debtor:
        """
        Fold a payment event into the debtor's history and re-derive the rating.

        Called by the debt ledger only.
        """
        debtor = await self.get(debtor_id)
        debtor.payment_history = apply_payment_outcome(debtor.payment_history, outcome, payment_days)
        debtor.credit_rating = compute_credit_rating(debtor.payment_history, self.settings)
        now = self.clock.now()
        if outcome != PaymentOutcome.DEFAULTED:
            debtor.last_payment_date = now
        debtor.updated_at = now
        await self.store.save_debtor(debtor)

        logger.info(
            "Payment history updated",
            debtor_id=debtor_id,
            outcome=outcome.value,
            credit_rating=debtor.credit_rating.value,
        )
        return debtor

    async def touch_last_contact(self, debtor_id: str, when: datetime) -> None:
        debtor = await self.store.get_debtor(debtor_id)
        if debtor is None:
            return
        debtor.last_contact_date = when
        await self.store.save_debtor(debtor)

    def is_within_contact_window(self, debtor: Debtor, now: datetime) -> bool:
        """Whether ``now`` falls inside the debtor's preferred hours (end hour inclusive)."""
        window = debtor.preferred_contact_time
        tz_name = window.timezone or self.settings.timezone
        local_hour = now.astimezone(ZoneInfo(tz_name)).hour
        if window.start_hour <= window.end_hour:
            return window.start_hour <= local_hour <= window.end_hour
        # Window wrapping midnight, e.g. 20..6
        return local_hour >= window.start_hour or local_hour <= window.end_hour

    def can_contact(self, debtor: Debtor, now: Optional[datetime] = None) -> bool:
        """
        Whether outreach to this debtor is allowed right now.

        Blacklisted and inactive debtors are never contactable. The contact
        window is honored only when ``respect_contact_window`` is enabled.
        """
        if not debtor.can_receive_outreach:
            return False
        if not self.settings.respect_contact_window:
            return True
        return self.is_within_contact_window(debtor, now or self.clock.now())

    async def get_statistics(self) -> Dict[str, Any]:
        debtors = await self.store.list_debtors()
        by_rating: Dict[str, int] = {rating.value: 0 for rating in CreditRating}
        for debtor in debtors:
            by_rating[debtor.credit_rating.value] += 1
        return {
            "total": len(debtors),
            "active": sum(1 for d in debtors if d.is_active),
            "blacklisted": sum(1 for d in debtors if d.is_blacklisted),
            "by_credit_rating": by_rating,
        }
