"""
Tests for the reminder and escalation scheduler.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from debt_agent.core.config import Settings
from debt_agent.core.exceptions import ChannelError
from debt_agent.models.debt import DebtStatus
from debt_agent.services.scheduler import DAILY_TASK, ESCALATION_SWEEP, REMINDER_SWEEP, WEEKLY_TASK


class TestReminderSweep:
    """Test reminder sweeps."""

    @pytest.mark.asyncio
    async def test_sends_due_reminders(self, scheduler, ledger, overdue_debt, channel):
        report = await scheduler.run_reminder_sweep()

        assert report.sweep == REMINDER_SWEEP
        assert (report.selected, report.sent, report.skipped, report.failed) == (1, 1, 0, 0)
        assert len(channel.sent) == 1
        assert (await ledger.get_debt(overdue_debt.id)).reminder_count == 1

        again = await scheduler.run_reminder_sweep()
        assert again.selected == 0

    @pytest.mark.asyncio
    async def test_revalidates_stale_selection(self, scheduler, ledger, overdue_debt, channel, now):
        stale = await ledger.get_debt(overdue_debt.id)
        await ledger.record_payment(overdue_debt.id, 1_000_000, now)
        ledger.find_due_for_reminder = AsyncMock(return_value=[stale])

        report = await scheduler.run_reminder_sweep()

        assert (report.selected, report.sent, report.skipped) == (1, 0, 1)
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_skips_debtor_outside_contact_window(self, scheduler, registry, clock, overdue_debt, channel):
        registry.settings = Settings(_env_file=None, respect_contact_window=True)
        clock.set(datetime(2024, 6, 3, 14, 0, tzinfo=timezone.utc))  # 21:00 in Jakarta

        report = await scheduler.run_reminder_sweep()

        assert report.skipped == 1
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_skips_blacklisted_debtor(self, scheduler, registry, debtor, overdue_debt, channel):
        await registry.blacklist(debtor.id, "Disputed")

        report = await scheduler.run_reminder_sweep()

        assert (report.sent, report.skipped, report.failed) == (0, 1, 0)

    @pytest.mark.asyncio
    async def test_isolates_failures(self, scheduler, ledger, debtor, overdue_debt, channel, now):
        second = await ledger.create_debt(debtor.id, "INV-002", 100, due_date=now - timedelta(days=2))
        channel.send = AsyncMock(side_effect=[ChannelError("Gateway returned 503"), "msg-2"])

        report = await scheduler.run_reminder_sweep()

        assert (report.selected, report.sent, report.failed) == (2, 1, 1)
        assert report.errors[0].debt_id == overdue_debt.id
        assert report.errors[0].error == "Gateway returned 503"
        assert (await ledger.get_debt(second.id)).reminder_count == 1

    @pytest.mark.asyncio
    async def test_isolates_unexpected_exceptions(self, scheduler, outreach, ledger, debtor, overdue_debt, now):
        await ledger.create_debt(debtor.id, "INV-002", 100, due_date=now - timedelta(days=2))
        outreach.send_reminder = AsyncMock(side_effect=RuntimeError("kaput"))

        report = await scheduler.run_reminder_sweep()

        assert (report.selected, report.failed) == (2, 2)
        assert {e.error for e in report.errors} == {"kaput"}

    @pytest.mark.asyncio
    async def test_query_failure_abandons_sweep(self, scheduler, ledger, outreach):
        ledger.find_due_for_reminder = AsyncMock(side_effect=RuntimeError("store offline"))
        outreach.send_reminder = AsyncMock()

        report = await scheduler.run_reminder_sweep()

        assert report.selected == 0
        assert report.errors[0].debt_id == "*"
        assert report.errors[0].error == "store offline"
        outreach.send_reminder.assert_not_called()

    @pytest.mark.asyncio
    async def test_delay_between_sends(self, scheduler, ledger, debtor, overdue_debt, now):
        await ledger.create_debt(debtor.id, "INV-002", 100, due_date=now - timedelta(days=2))
        await ledger.create_debt(debtor.id, "INV-003", 100, due_date=now - timedelta(days=1))

        with patch("debt_agent.services.scheduler.interruptible_sleep", new=AsyncMock(return_value=False)) as mock_sleep:
            report = await scheduler.run_reminder_sweep()

        assert report.sent == 3
        assert mock_sleep.await_count == 2
        mock_sleep.assert_awaited_with(scheduler.settings.message_delay_seconds, scheduler._stop_event)

    @pytest.mark.asyncio
    async def test_stop_event_interrupts_sweep(self, scheduler, ledger, debtor, overdue_debt, channel, now):
        await ledger.create_debt(debtor.id, "INV-002", 100, due_date=now - timedelta(days=2))

        async def send_then_stop(address, text):
            scheduler._stop_event.set()
            return "msg-1"

        channel.send = AsyncMock(side_effect=send_then_stop)

        report = await scheduler.run_reminder_sweep()

        assert report.interrupted is True
        assert report.sent == 1
        assert channel.send.await_count == 1


class TestEscalationSweep:
    """Test escalation sweeps."""

    @pytest.mark.asyncio
    async def test_escalates_due_debts(self, scheduler, ledger, overdue_debt):
        report = await scheduler.run_escalation_sweep()

        assert report.sweep == ESCALATION_SWEEP
        assert (report.selected, report.sent) == (1, 1)
        assert (await ledger.get_debt(overdue_debt.id)).status == DebtStatus.ESCALATED
        assert (await scheduler.run_escalation_sweep()).selected == 0

    @pytest.mark.asyncio
    async def test_failed_notice_counts_as_failure(self, scheduler, ledger, store, channel, overdue_debt):
        channel.fail_with = "Gateway returned 503"

        report = await scheduler.run_escalation_sweep()

        assert (report.selected, report.sent, report.failed) == (1, 0, 1)
        assert report.errors[0].debt_id == overdue_debt.id
        assert report.errors[0].error == "Gateway returned 503"
        assert (await ledger.get_debt(overdue_debt.id)).status == DebtStatus.ESCALATED
        assert (await store.list_reminder_logs(overdue_debt.id))[0].error == "Gateway returned 503"

    @pytest.mark.asyncio
    async def test_exhausted_reminders_escalated(self, scheduler, ledger, debtor, settings, now):
        debt = await ledger.create_debt(debtor.id, "INV-002", 100, due_date=now - timedelta(days=1))
        for _ in range(settings.max_reminder_attempts):
            await ledger.commit_reminder_sent(debt.id, 1)

        report = await scheduler.run_escalation_sweep()

        assert report.sent == 1
        assert (await ledger.get_debt(debt.id)).status == DebtStatus.ESCALATED

    @pytest.mark.asyncio
    async def test_revalidates_stale_selection(self, scheduler, ledger, overdue_debt, channel):
        stale = await ledger.get_debt(overdue_debt.id)
        await ledger.change_status(overdue_debt.id, DebtStatus.CANCELLED)
        ledger.find_due_for_escalation = AsyncMock(return_value=[stale])

        report = await scheduler.run_escalation_sweep()

        assert (report.sent, report.skipped) == (0, 1)
        assert channel.sent == []


class TestMaintenanceTasks:

    @pytest.mark.asyncio
    async def test_daily_tasks_refresh_and_prune(self, scheduler, ledger, debtor, clock, now):
        debt = await ledger.create_debt(debtor.id, "INV-D", 100, due_date=now + timedelta(hours=1))
        clock.advance(days=1)

        summary = await scheduler.run_daily_tasks()

        assert summary["refreshed"] == 1
        assert summary["locks_pruned"] >= 1
        assert summary["debts"]["overdue"]["count"] == 1
        assert summary["debtors"]["total"] == 1
        assert (await ledger.get_debt(debt.id)).status == DebtStatus.OVERDUE
        assert scheduler.last_run[DAILY_TASK] == clock.now()

    @pytest.mark.asyncio
    async def test_weekly_report(self, scheduler, ledger, overdue_debt, now):
        await ledger.record_payment(overdue_debt.id, 1_000_000, now)

        report = await scheduler.run_weekly_report()

        assert report["total_debts"] == 1
        assert report["collection_rate"] == 100.0
        assert report["period_end"] == now
        assert scheduler.last_results[WEEKLY_TASK] is report


class TestLifecycle:
    """Test start, stop and status reporting."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, scheduler):
        await scheduler.start()
        assert scheduler.is_running is True
        assert scheduler.get_status()["tasks"][REMINDER_SWEEP]["running"] is True

        await scheduler.start()  # no duplicate loops
        assert len(scheduler._tasks) == 4

        await scheduler.stop()
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_stop_without_start(self, scheduler):
        await scheduler.stop()
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_periodic_loop_survives_job_failure(self, scheduler):
        calls = []

        async def job():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first run fails")
            scheduler._stop_event.set()

        await scheduler._run_periodic("test", 0.01, job)

        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_status_reports_last_sweep(self, scheduler, overdue_debt, now):
        await scheduler.run_reminder_sweep()

        status = scheduler.get_status()
        assert status["running"] is False
        assert set(status["tasks"]) == {REMINDER_SWEEP, ESCALATION_SWEEP, DAILY_TASK, WEEKLY_TASK}
        assert status["tasks"][REMINDER_SWEEP]["last_run"] == now.isoformat()
        assert status["tasks"][ESCALATION_SWEEP]["last_run"] is None
        assert status["last_sweeps"][REMINDER_SWEEP]["sent"] == 1
        assert status["tasks"][DAILY_TASK]["interval_seconds"] == 24 * 3600
