"""
Outreach orchestrator: compose, send and record outbound messages.

Text generation and channel sends happen outside the per-debt lock; the
ledger takes the lock only for the state commit. A debt is claimed for the
duration of a send so two sends for the same debt never overlap.
"""
import asyncio
from typing import Awaitable, Callable, List, Optional

from debt_agent.core.clock import Clock, SystemClock
from debt_agent.core.config import Settings, get_settings
from debt_agent.core.exceptions import ChannelError, ValidationError
from debt_agent.core.logging import correlation_context, get_logger, log_business_event
from debt_agent.models.context import DebtContext, DebtorContext, PaymentContext
from debt_agent.models.debt import TERMINAL_STATUSES, Debt, DebtStatus, EscalationType, Payment
from debt_agent.models.debtor import Debtor
from debt_agent.models.logs import (
    ESCALATION_LEVEL,
    NON_REMINDER_LEVEL,
    DeliveryStatus,
    MessageKind,
    ReminderLog,
)
from debt_agent.models.results import BulkReminderCriteria, OutreachResult
from debt_agent.services import templates
from debt_agent.services.debt_ledger import DebtLedger, reminder_level_for
from debt_agent.services.debtor_registry import DebtorRegistry
from debt_agent.services.message_channel import MessageChannel
from debt_agent.services.text_intelligence import TextIntelligence

logger = get_logger(__name__)


async def interruptible_sleep(delay: float, stop_event: Optional[asyncio.Event] = None) -> bool:
    """
    Sleep for the inter-message delay.

    Returns True if ``stop_event`` was set before or during the wait, in which
    case the caller should stop dispatching.
    """
    if stop_event is None:
        if delay > 0:
            await asyncio.sleep(delay)
        return False
    if stop_event.is_set():
        return True
    if delay <= 0:
        return False
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True


class OutreachOrchestrator:
    """Sends reminders, confirmations, escalations and auto-replies."""

    def __init__(
        self,
        ledger: DebtLedger,
        registry: DebtorRegistry,
        channel: MessageChannel,
        intelligence: TextIntelligence,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self.ledger = ledger
        self.registry = registry
        self.channel = channel
        self.intelligence = intelligence
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.store = ledger.store
        self.locks = ledger.locks

    async def _generate(
        self,
        operation: str,
        generate: Callable[[], Awaitable[str]],
        fallback: Callable[[], str],
    ) -> str:
        """Generated text, or the template when generation fails."""
        try:
            return await generate()
        except Exception as e:
            logger.warning(
                "Text generation failed, using template",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            return fallback()

    async def _log(
        self,
        debt_id: str,
        level: int,
        kind: MessageKind,
        message: str,
        message_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        await self.store.append_reminder_log(
            ReminderLog(
                debt_id=debt_id,
                level=level,
                kind=kind,
                status=DeliveryStatus.FAILED if error else DeliveryStatus.SENT,
                message=message,
                message_id=message_id,
                error=error,
                sent_at=self.clock.now(),
            )
        )

    def _refusal_reason(self, debt: Debt, debtor: Debtor) -> Optional[str]:
        if debt.status in TERMINAL_STATUSES:
            return f"Debt already resolved ({debt.status.value})"
        if not debt.is_active:
            return "Debt is inactive"
        if debtor.is_blacklisted:
            return "Debtor is blacklisted"
        if not debtor.is_active:
            return "Debtor is inactive"
        return None

    async def send_reminder(self, debt_id: str, level: Optional[int] = None) -> OutreachResult:
        """
        Send one reminder for a debt.

        Args:
            debt_id: Debt to remind
            level: Tone tier 1..5; derived from the reminder count when omitted

        Returns:
            Outcome of the attempt. Refusals and channel failures are reported
            in the result rather than raised.

        Raises:
            NotFoundError: If the debt or its debtor does not exist
            ValidationError: If ``level`` is outside 1..5
        """
        if level is not None and not 1 <= level <= 5:
            raise ValidationError("reminder level must be between 1 and 5", field="level", value=level)

        debt = await self.ledger.get_debt(debt_id)
        debtor = await self.registry.get(debt.debtor_id)

        reason = self._refusal_reason(debt, debtor)
        if reason:
            logger.info("Skipping reminder", debt_id=debt_id, reason=reason)
            return OutreachResult.refused(debt_id, reason)
        if not self.locks.try_claim(debt_id):
            return OutreachResult.refused(debt_id, "Send already in flight for this debt")

        try:
            with correlation_context(debt_id=debt_id):
                return await self._send_reminder_claimed(debt, debtor, level or reminder_level_for(debt))
        finally:
            self.locks.release(debt_id)

    async def _send_reminder_claimed(self, debt: Debt, debtor: Debtor, level: int) -> OutreachResult:
        now = self.clock.now()
        debtor_ctx = DebtorContext.from_debtor(debtor)
        debt_ctx = DebtContext.from_debt(debt, now)

        text = await self._generate(
            "generate_reminder",
            lambda: self.intelligence.generate_reminder(debtor_ctx, debt_ctx, level),
            lambda: templates.reminder_message(debtor_ctx, debt_ctx, level, self.settings.company_name),
        )

        try:
            message_id = await self.channel.send(self.channel.normalize(debtor.phone), text)
        except ChannelError as e:
            await self._log(debt.id, level, MessageKind.REMINDER, text, error=e.detail)
            logger.error("Reminder send failed", debt_id=debt.id, level=level, error=e.detail)
            return OutreachResult(debt_id=debt.id, success=False, level=level, message=text, error=e.detail)

        await self._log(debt.id, level, MessageKind.REMINDER, text, message_id=message_id)
        updated = await self.ledger.commit_reminder_sent(debt.id, level, now)
        await self.registry.touch_last_contact(debtor.id, now)

        log_business_event(
            "reminder_sent",
            debt_id=debt.id,
            debtor_id=debtor.id,
            level=level,
            reminder_count=updated.reminder_count,
            next_reminder_date=updated.next_reminder_date.isoformat() if updated.next_reminder_date else None,
        )
        return OutreachResult(debt_id=debt.id, success=True, level=level, message_id=message_id, message=text)

    async def send_payment_confirmation(self, debt_id: str, payment: Payment) -> OutreachResult:
        """Thank the debtor for a payment. Only the audit log is written."""
        debt = await self.ledger.get_debt(debt_id)
        debtor = await self.registry.get(debt.debtor_id)
        if not debtor.can_receive_outreach:
            return OutreachResult.refused(debt_id, "Debtor cannot be contacted")

        debtor_ctx = DebtorContext.from_debtor(debtor)
        payment_ctx = PaymentContext(
            amount=payment.amount,
            payment_date=payment.payment_date,
            method=payment.method.value,
            reference=payment.reference,
            remaining_balance=debt.remaining_balance,
            currency=debt.currency.value,
        )
        text = await self._generate(
            "generate_confirmation",
            lambda: self.intelligence.generate_confirmation(debtor_ctx, payment_ctx),
            lambda: templates.confirmation_message(debtor_ctx, payment_ctx, self.settings.company_name),
        )

        try:
            message_id = await self.channel.send(self.channel.normalize(debtor.phone), text)
        except ChannelError as e:
            await self._log(debt_id, NON_REMINDER_LEVEL, MessageKind.PAYMENT_CONFIRMATION, text, error=e.detail)
            logger.error("Payment confirmation send failed", debt_id=debt_id, error=e.detail)
            return OutreachResult(debt_id=debt_id, success=False, message=text, error=e.detail)

        await self._log(debt_id, NON_REMINDER_LEVEL, MessageKind.PAYMENT_CONFIRMATION, text, message_id=message_id)
        logger.info("Payment confirmation sent", debt_id=debt_id, message_id=message_id)
        return OutreachResult(debt_id=debt_id, success=True, message_id=message_id, message=text)

    async def escalate_debt(self, debt_id: str, escalation_type: Optional[str] = None) -> OutreachResult:
        """
        Escalate a debt and notify the debtor.

        Terminal and already-escalated debts are rejected without sending or
        changing anything. Otherwise the debt moves to escalated even when the
        notice cannot be delivered; the failed send is logged.

        Raises:
            NotFoundError: If the debt or its debtor does not exist
        """
        etype = EscalationType(escalation_type or self.settings.default_escalation_type)
        debt = await self.ledger.get_debt(debt_id)

        if debt.status in TERMINAL_STATUSES:
            logger.info("Skipping escalation of resolved debt", debt_id=debt_id, status=debt.status.value)
            return OutreachResult.refused(debt_id, f"Debt already resolved ({debt.status.value})")
        if debt.status == DebtStatus.ESCALATED:
            return OutreachResult.refused(debt_id, "Debt already escalated")

        debtor = await self.registry.get(debt.debtor_id)
        if not self.locks.try_claim(debt_id):
            return OutreachResult.refused(debt_id, "Send already in flight for this debt")

        try:
            with correlation_context(debt_id=debt_id):
                return await self._escalate_claimed(debt, debtor, etype)
        finally:
            self.locks.release(debt_id)

    async def _escalate_claimed(self, debt: Debt, debtor: Debtor, etype: EscalationType) -> OutreachResult:
        now = self.clock.now()
        debtor_ctx = DebtorContext.from_debtor(debtor)
        debt_ctx = DebtContext.from_debt(debt, now)

        text = await self._generate(
            "generate_escalation",
            lambda: self.intelligence.generate_escalation(debtor_ctx, debt_ctx, etype.value),
            lambda: templates.escalation_message(debtor_ctx, debt_ctx, etype.value, self.settings.company_name),
        )

        message_id: Optional[str] = None
        send_error: Optional[str] = None
        if debtor.can_receive_outreach:
            try:
                message_id = await self.channel.send(self.channel.normalize(debtor.phone), text)
            except ChannelError as e:
                send_error = e.detail
                logger.error("Escalation notice send failed", debt_id=debt.id, error=e.detail)
        else:
            send_error = "Debtor cannot be contacted"

        committed = await self.ledger.commit_escalation(debt.id, etype, now)
        if committed is None:
            return OutreachResult.refused(debt.id, "Debt already escalated or resolved")

        await self._log(debt.id, ESCALATION_LEVEL, MessageKind.ESCALATION, text, message_id=message_id, error=send_error)
        log_business_event(
            "debt_escalated",
            debt_id=debt.id,
            debtor_id=debtor.id,
            escalation_type=etype.value,
            reminder_count=debt.reminder_count,
            notice_delivered=send_error is None,
        )
        return OutreachResult(
            debt_id=debt.id,
            success=True,
            level=ESCALATION_LEVEL,
            message_id=message_id,
            message=text,
            error=send_error,
        )

    async def send_auto_reply(self, debtor: Debtor, debts: List[Debt], text: str) -> OutreachResult:
        """Send one reply to a debtor and log it against every debt it concerns."""
        primary_id = debts[0].id
        try:
            message_id = await self.channel.send(self.channel.normalize(debtor.phone), text)
        except ChannelError as e:
            for debt in debts:
                await self._log(debt.id, NON_REMINDER_LEVEL, MessageKind.AUTO_RESPONSE, text, error=e.detail)
            logger.error("Auto-reply send failed", debtor_id=debtor.id, error=e.detail)
            return OutreachResult(debt_id=primary_id, success=False, message=text, error=e.detail)

        for debt in debts:
            await self._log(debt.id, NON_REMINDER_LEVEL, MessageKind.AUTO_RESPONSE, text, message_id=message_id)
        await self.registry.touch_last_contact(debtor.id, self.clock.now())
        return OutreachResult(debt_id=primary_id, success=True, message_id=message_id, message=text)

    async def send_bulk_reminders(
        self,
        criteria: Optional[BulkReminderCriteria] = None,
        level: Optional[int] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> List[OutreachResult]:
        """
        Send reminders to every debt matching ``criteria``, one at a time.

        Consecutive sends are separated by ``message_delay_seconds``. A failure
        for one debt is recorded in its result and the batch continues.
        """
        criteria = criteria or BulkReminderCriteria()
        debts = await self.ledger.find_by_criteria(criteria)
        results: List[OutreachResult] = []
        attempted = False

        for debt in debts:
            if attempted and await interruptible_sleep(self.settings.message_delay_seconds, stop_event):
                logger.info("Bulk reminders interrupted", processed=len(results), remaining=len(debts) - len(results))
                break
            try:
                result = await self.send_reminder(debt.id, level)
            except Exception as e:
                logger.error("Bulk reminder failed", debt_id=debt.id, error=str(e))
                result = OutreachResult(debt_id=debt.id, success=False, error=str(e))
            attempted = attempted or not result.skipped
            results.append(result)

        logger.info(
            "Bulk reminders completed",
            processed=len(results),
            sent=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success and not r.skipped),
        )
        return results
