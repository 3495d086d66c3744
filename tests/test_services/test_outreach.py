"""
Tests for the outreach orchestrator.
"""
import asyncio
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from debt_agent.core.exceptions import ChannelError, IntelligenceError, NotFoundError, ValidationError
from debt_agent.models.debt import DebtStatus, EscalationType, Payment, PaymentMethod
from debt_agent.models.logs import DeliveryStatus, MessageKind
from debt_agent.models.results import BulkReminderCriteria
from debt_agent.services.outreach import interruptible_sleep


class TestInterruptibleSleep:

    @pytest.mark.asyncio
    async def test_without_event(self):
        assert await interruptible_sleep(0) is False

    @pytest.mark.asyncio
    async def test_event_already_set(self):
        event = asyncio.Event()
        event.set()
        assert await interruptible_sleep(5, event) is True

    @pytest.mark.asyncio
    async def test_times_out(self):
        assert await interruptible_sleep(0.01, asyncio.Event()) is False

    @pytest.mark.asyncio
    async def test_wakes_when_event_set(self):
        event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, event.set)
        assert await interruptible_sleep(5, event) is True


class TestSendReminder:
    """Test single reminder sends."""

    @pytest.mark.asyncio
    async def test_success_commits_and_logs(self, outreach, ledger, registry, store, channel, intelligence, overdue_debt, debtor, now):
        result = await outreach.send_reminder(overdue_debt.id, 1)

        assert result.success is True
        assert result.level == 1
        assert result.message_id == "msg-1"
        assert channel.sent == [("6281234567890@s.whatsapp.net", "Reminder text")]

        debt = await ledger.get_debt(overdue_debt.id)
        assert debt.reminder_count == 1
        assert debt.status == DebtStatus.OVERDUE
        assert debt.next_reminder_date == now + timedelta(hours=24)

        logs = await store.list_reminder_logs(overdue_debt.id)
        assert len(logs) == 1
        assert logs[0].status == DeliveryStatus.SENT
        assert logs[0].kind == MessageKind.REMINDER
        assert logs[0].level == 1
        assert logs[0].message_id == "msg-1"

        assert (await registry.get(debtor.id)).last_contact_date == now
        debtor_ctx, debt_ctx, level = intelligence.generate_reminder.call_args.args
        assert debtor_ctx.name == "Budi Santoso"
        assert debt_ctx.days_overdue == 10
        assert level == 1

    @pytest.mark.asyncio
    async def test_level_derived_from_count(self, outreach, ledger, overdue_debt):
        for _ in range(3):
            await ledger.commit_reminder_sent(overdue_debt.id, 1)

        result = await outreach.send_reminder(overdue_debt.id)
        assert result.level == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("level", [0, 6])
    async def test_invalid_level(self, outreach, overdue_debt, level):
        with pytest.raises(ValidationError):
            await outreach.send_reminder(overdue_debt.id, level)

    @pytest.mark.asyncio
    async def test_unknown_debt(self, outreach):
        with pytest.raises(NotFoundError):
            await outreach.send_reminder("missing", 1)

    @pytest.mark.asyncio
    async def test_channel_failure_logged_not_committed(self, outreach, ledger, store, channel, overdue_debt):
        channel.fail_with = "Gateway returned 500"

        result = await outreach.send_reminder(overdue_debt.id, 1)

        assert result.success is False
        assert result.skipped is False
        assert result.error == "Gateway returned 500"
        assert (await ledger.get_debt(overdue_debt.id)).reminder_count == 0
        logs = await store.list_reminder_logs(overdue_debt.id)
        assert [log.status for log in logs] == [DeliveryStatus.FAILED]
        assert logs[0].error == "Gateway returned 500"

    @pytest.mark.asyncio
    async def test_generation_failure_uses_template(self, outreach, channel, intelligence, overdue_debt):
        intelligence.generate_reminder.side_effect = IntelligenceError("model down", operation="generate_reminder")

        result = await outreach.send_reminder(overdue_debt.id, 1)

        assert result.success is True
        assert "INV-001" in result.message
        assert "Rp 1.000.000" in result.message
        assert "Finance Team" in result.message
        assert channel.sent[0][1] == result.message

    @pytest.mark.asyncio
    async def test_unexpected_generation_error_uses_template(self, outreach, ledger, channel, intelligence, overdue_debt):
        intelligence.generate_reminder.side_effect = TimeoutError("read timed out")

        result = await outreach.send_reminder(overdue_debt.id, 1)

        assert result.success is True
        assert "INV-001" in result.message
        assert channel.sent[0][1] == result.message
        assert (await ledger.get_debt(overdue_debt.id)).reminder_count == 1

    @pytest.mark.asyncio
    async def test_paid_debt_refused(self, outreach, ledger, channel, overdue_debt, now):
        await ledger.record_payment(overdue_debt.id, 1_000_000, now)

        result = await outreach.send_reminder(overdue_debt.id, 1)

        assert result.success is False
        assert result.skipped is True
        assert "paid" in result.error
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_blacklisted_debtor_refused(self, outreach, registry, store, channel, overdue_debt, debtor):
        await registry.blacklist(debtor.id, "Legal hold")

        result = await outreach.send_reminder(overdue_debt.id, 1)

        assert result.skipped is True
        assert channel.sent == []
        assert await store.list_reminder_logs() == []

    @pytest.mark.asyncio
    async def test_in_flight_claim_refused(self, outreach, ledger, overdue_debt):
        ledger.locks.try_claim(overdue_debt.id)

        result = await outreach.send_reminder(overdue_debt.id, 1)
        assert result.skipped is True

        ledger.locks.release(overdue_debt.id)
        assert (await outreach.send_reminder(overdue_debt.id, 1)).success is True

    @pytest.mark.asyncio
    async def test_concurrent_sends_for_same_debt(self, outreach, ledger, intelligence, overdue_debt):
        async def slow_generate(*args):
            await asyncio.sleep(0.01)
            return "Reminder text"

        intelligence.generate_reminder.side_effect = slow_generate

        results = await asyncio.gather(
            outreach.send_reminder(overdue_debt.id, 1),
            outreach.send_reminder(overdue_debt.id, 1),
        )

        assert sorted(r.success for r in results) == [False, True]
        assert (await ledger.get_debt(overdue_debt.id)).reminder_count == 1
        assert not ledger.locks.is_claimed(overdue_debt.id)


class TestPaymentConfirmation:

    @pytest.mark.asyncio
    async def test_confirmation_only_logs(self, outreach, ledger, store, intelligence, overdue_debt, now):
        payment = await ledger.record_payment(overdue_debt.id, 400_000, now, method=PaymentMethod.CASH)

        result = await outreach.send_payment_confirmation(overdue_debt.id, payment)

        assert result.success is True
        assert result.message == "Confirmation text"
        payment_ctx = intelligence.generate_confirmation.call_args.args[1]
        assert payment_ctx.method == "cash"
        assert payment_ctx.remaining_balance == Decimal("600000")

        logs = await store.list_reminder_logs(overdue_debt.id)
        assert logs[0].kind == MessageKind.PAYMENT_CONFIRMATION
        assert logs[0].level == 0
        assert (await ledger.get_debt(overdue_debt.id)).reminder_count == 0

    @pytest.mark.asyncio
    async def test_confirmation_template_fallback(self, outreach, intelligence, overdue_debt, now):
        intelligence.generate_confirmation.side_effect = IntelligenceError("down")
        payment = Payment(amount=Decimal("250000"), payment_date=now)

        result = await outreach.send_payment_confirmation(overdue_debt.id, payment)

        assert result.success is True
        assert "Rp 250.000" in result.message


class TestEscalateDebt:
    """Test escalation."""

    @pytest.mark.asyncio
    async def test_escalation_commits_and_logs(self, outreach, ledger, store, channel, overdue_debt, now):
        result = await outreach.escalate_debt(overdue_debt.id)

        assert result.success is True
        assert result.level == 99
        assert channel.sent[0][1] == "Escalation text"

        debt = await ledger.get_debt(overdue_debt.id)
        assert debt.status == DebtStatus.ESCALATED
        assert debt.escalation_type == EscalationType.LEGAL
        assert debt.escalation_date == now

        logs = await store.list_reminder_logs(overdue_debt.id)
        assert [(log.kind, log.level, log.status) for log in logs] == [
            (MessageKind.ESCALATION, 99, DeliveryStatus.SENT)
        ]

    @pytest.mark.asyncio
    async def test_explicit_type(self, outreach, ledger, overdue_debt):
        await outreach.escalate_debt(overdue_debt.id, "management")
        assert (await ledger.get_debt(overdue_debt.id)).escalation_type == EscalationType.MANAGEMENT

    @pytest.mark.asyncio
    async def test_second_escalation_rejected(self, outreach, ledger, store, channel, overdue_debt):
        await outreach.escalate_debt(overdue_debt.id)
        second = await outreach.escalate_debt(overdue_debt.id)

        assert second.success is False
        assert second.skipped is True
        assert second.error == "Debt already escalated"
        assert len(channel.sent) == 1
        assert len(await store.list_reminder_logs(overdue_debt.id)) == 1
        assert (await ledger.get_debt(overdue_debt.id)).status == DebtStatus.ESCALATED

    @pytest.mark.asyncio
    async def test_concurrent_escalations_commit_once(self, outreach, ledger, store, overdue_debt):
        results = await asyncio.gather(
            outreach.escalate_debt(overdue_debt.id),
            outreach.escalate_debt(overdue_debt.id),
        )

        assert sum(r.success for r in results) == 1
        assert len(await store.list_reminder_logs(overdue_debt.id)) == 1

    @pytest.mark.asyncio
    async def test_send_failure_still_escalates(self, outreach, ledger, store, channel, overdue_debt):
        channel.fail_with = "Circuit breaker is OPEN"

        result = await outreach.escalate_debt(overdue_debt.id)

        assert result.success is True
        assert result.error == "Circuit breaker is OPEN"
        assert (await ledger.get_debt(overdue_debt.id)).status == DebtStatus.ESCALATED
        logs = await store.list_reminder_logs(overdue_debt.id)
        assert logs[0].status == DeliveryStatus.FAILED

    @pytest.mark.asyncio
    async def test_blacklisted_debtor_escalated_without_notice(self, outreach, ledger, registry, channel, overdue_debt, debtor):
        await registry.blacklist(debtor.id, "Fraud")

        result = await outreach.escalate_debt(overdue_debt.id)

        assert result.success is True
        assert result.error == "Debtor cannot be contacted"
        assert channel.sent == []
        assert (await ledger.get_debt(overdue_debt.id)).status == DebtStatus.ESCALATED

    @pytest.mark.asyncio
    async def test_terminal_debt_skipped(self, outreach, ledger, channel, overdue_debt):
        await ledger.change_status(overdue_debt.id, DebtStatus.CANCELLED)

        result = await outreach.escalate_debt(overdue_debt.id)

        assert result.skipped is True
        assert channel.sent == []
        assert (await ledger.get_debt(overdue_debt.id)).status == DebtStatus.CANCELLED


class TestAutoReplyAndBulk:

    @pytest.mark.asyncio
    async def test_auto_reply_logged_per_debt(self, outreach, ledger, store, channel, debtor, overdue_debt, now):
        second = await ledger.create_debt(debtor.id, "INV-002", 500_000, due_date=now - timedelta(days=2))

        result = await outreach.send_auto_reply(debtor, [overdue_debt, second], "Terima kasih")

        assert result.success is True
        assert len(channel.sent) == 1
        logs = await store.list_reminder_logs()
        assert {log.debt_id for log in logs} == {overdue_debt.id, second.id}
        assert all(log.level == 0 and log.kind == MessageKind.AUTO_RESPONSE for log in logs)
        assert all(log.message_id == "msg-1" for log in logs)

    @pytest.fixture
    async def three_debts(self, ledger, registry, debtor, now):
        other = await registry.register("Andi", "0811000000")
        first = await ledger.create_debt(debtor.id, "INV-B1", 100, due_date=now - timedelta(days=9))
        second = await ledger.create_debt(other.id, "INV-B2", 100, due_date=now - timedelta(days=8))
        third = await ledger.create_debt(debtor.id, "INV-B3", 100, due_date=now - timedelta(days=7))
        return first, second, third, other

    @pytest.mark.asyncio
    async def test_bulk_skips_and_sends(self, outreach, registry, three_debts):
        first, second, third, other = three_debts
        await registry.blacklist(other.id, "Do not contact")

        results = await outreach.send_bulk_reminders()

        assert [r.debt_id for r in results] == [first.id, second.id, third.id]
        assert [r.success for r in results] == [True, False, True]
        assert results[1].skipped is True

    @pytest.mark.asyncio
    async def test_bulk_isolates_failures(self, outreach, ledger, channel, three_debts):
        first, second, third, _ = three_debts
        channel.send = AsyncMock(side_effect=[ChannelError("boom"), "msg-2", "msg-3"])

        results = await outreach.send_bulk_reminders(level=2)

        assert [r.success for r in results] == [False, True, True]
        assert results[0].error == "boom"
        assert all(r.level == 2 for r in results)
        assert (await ledger.get_debt(first.id)).reminder_count == 0
        assert (await ledger.get_debt(third.id)).reminder_count == 1

    @pytest.mark.asyncio
    async def test_bulk_criteria(self, outreach, three_debts, debtor):
        first, _, third, _ = three_debts

        results = await outreach.send_bulk_reminders(BulkReminderCriteria(debtor_id=debtor.id))

        assert [r.debt_id for r in results] == [first.id, third.id]

    @pytest.mark.asyncio
    async def test_bulk_stops_on_event(self, outreach, three_debts):
        stop_event = asyncio.Event()
        stop_event.set()

        results = await outreach.send_bulk_reminders(stop_event=stop_event)

        assert len(results) == 1
