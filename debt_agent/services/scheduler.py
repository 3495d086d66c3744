"""
Reminder and escalation scheduler.

Four independent periodic tasks: reminder sweep, escalation sweep, daily
status refresh and cleanup, weekly collection report. Within a sweep, debts
are dispatched one at a time with ``message_delay_seconds`` between sends;
the gateway's rate limit is the budget, so sweeps are never parallelized.
"""
import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from debt_agent.core.clock import Clock, SystemClock
from debt_agent.core.config import Settings, get_settings
from debt_agent.core.logging import correlation_context, get_logger
from debt_agent.models.debt import Debt
from debt_agent.models.results import OutreachResult, SweepError, SweepReport
from debt_agent.services.debt_ledger import DebtLedger
from debt_agent.services.debtor_registry import DebtorRegistry
from debt_agent.services.outreach import OutreachOrchestrator, interruptible_sleep

logger = get_logger(__name__)

REMINDER_SWEEP = "reminder"
ESCALATION_SWEEP = "escalation"
DAILY_TASK = "daily"
WEEKLY_TASK = "weekly"


class ReminderScheduler:
    """Runs the periodic sweeps as asyncio tasks."""

    def __init__(
        self,
        ledger: DebtLedger,
        registry: DebtorRegistry,
        outreach: OutreachOrchestrator,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self.ledger = ledger
        self.registry = registry
        self.outreach = outreach
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()

        self._stop_event = asyncio.Event()
        self._tasks: Dict[str, asyncio.Task] = {}
        self.last_run: Dict[str, datetime] = {}
        self.last_results: Dict[str, Dict[str, Any]] = {}

    def _jobs(self) -> List[Tuple[str, int, Callable[[], Awaitable[Any]]]]:
        return [
            (REMINDER_SWEEP, self.settings.reminder_sweep_interval_seconds, self.run_reminder_sweep),
            (ESCALATION_SWEEP, self.settings.escalation_sweep_interval_seconds, self.run_escalation_sweep),
            (DAILY_TASK, self.settings.daily_task_interval_seconds, self.run_daily_tasks),
            (WEEKLY_TASK, self.settings.weekly_task_interval_seconds, self.run_weekly_report),
        ]

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    async def start(self) -> None:
        """Start all periodic tasks."""
        if self.is_running:
            logger.warning("Scheduler already running")
            return

        self._stop_event.clear()
        for name, interval, job in self._jobs():
            self._tasks[name] = asyncio.create_task(self._run_periodic(name, interval, job), name=f"scheduler-{name}")
        logger.info("Scheduler started", tasks=list(self._tasks))

    async def stop(self) -> None:
        """
        Stop all periodic tasks.

        Running sweeps finish their in-flight send and stop at the next
        inter-message delay.
        """
        if not self._tasks:
            return
        self._stop_event.set()
        await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()
        logger.info("Scheduler stopped")

    async def _run_periodic(self, name: str, interval: int, job: Callable[[], Awaitable[Any]]) -> None:
        logger.info("Scheduled task loop started", task=name, interval_seconds=interval)
        while not self._stop_event.is_set():
            if await interruptible_sleep(interval, self._stop_event):
                break
            try:
                await job()
            except Exception as e:
                # Retried at the next tick
                logger.error("Scheduled task failed", task=name, error=str(e), exc_info=True)
        logger.info("Scheduled task loop stopped", task=name)

    async def run_reminder_sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Send reminders to every debt currently due for one."""
        return await self._sweep(
            REMINDER_SWEEP,
            self.ledger.find_due_for_reminder,
            self._dispatch_reminder,
            now,
        )

    async def run_escalation_sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Escalate every debt past the escalation threshold or out of reminder attempts."""
        return await self._sweep(
            ESCALATION_SWEEP,
            self.ledger.find_due_for_escalation,
            self._dispatch_escalation,
            now,
        )

    async def _dispatch_reminder(self, debt: Debt) -> Optional[OutreachResult]:
        """Re-check the debt and debtor, then send. Returns None when skipped."""
        current = await self.ledger.get_debt(debt.id)
        now = self.clock.now()
        if not self.ledger.can_send_reminder(current, now):
            logger.info("Debt no longer due for reminder", debt_id=debt.id, status=current.status.value)
            return None
        debtor = await self.registry.get(current.debtor_id)
        if not self.registry.can_contact(debtor, now):
            logger.info("Debtor not contactable now", debt_id=debt.id, debtor_id=debtor.id)
            return None
        return await self.outreach.send_reminder(current.id)

    async def _dispatch_escalation(self, debt: Debt) -> Optional[OutreachResult]:
        current = await self.ledger.get_debt(debt.id)
        if not self.ledger.should_escalate(current, self.clock.now()):
            logger.info("Debt no longer qualifies for escalation", debt_id=debt.id, status=current.status.value)
            return None
        return await self.outreach.escalate_debt(current.id)

    async def _sweep(
        self,
        name: str,
        select: Callable[[datetime], Awaitable[List[Debt]]],
        dispatch: Callable[[Debt], Awaitable[Optional[OutreachResult]]],
        now: Optional[datetime],
    ) -> SweepReport:
        report = SweepReport(sweep=name)
        with correlation_context(correlation_id=str(uuid.uuid4()), sweep=name):
            try:
                due = await select(now or self.clock.now())
            except Exception as e:
                logger.error("Sweep query failed, abandoning sweep", sweep=name, error=str(e), exc_info=True)
                report.errors.append(SweepError(debt_id="*", error=str(e)))
                self._remember(name, report)
                return report

            report.selected = len(due)
            logger.info("Sweep started", sweep=name, selected=report.selected)

            attempted = False
            for debt in due:
                if self._stop_event.is_set() or (
                    attempted and await interruptible_sleep(self.settings.message_delay_seconds, self._stop_event)
                ):
                    report.interrupted = True
                    logger.info("Sweep interrupted", sweep=name)
                    break

                with correlation_context(debt_id=debt.id):
                    try:
                        result = await dispatch(debt)
                    except Exception as e:
                        logger.error("Sweep item failed", sweep=name, debt_id=debt.id, error=str(e))
                        report.record_failure(debt.id, str(e))
                        attempted = True
                        continue

                if result is None or result.skipped:
                    report.skipped += 1
                    continue
                attempted = True
                # Escalations commit even when the notice was not delivered
                if result.success and not result.error:
                    report.sent += 1
                else:
                    report.record_failure(debt.id, result.error or "unknown error")

            logger.info(
                "Sweep completed",
                sweep=name,
                selected=report.selected,
                sent=report.sent,
                skipped=report.skipped,
                failed=report.failed,
                interrupted=report.interrupted,
            )
        self._remember(name, report)
        return report

    async def run_daily_tasks(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Refresh overdue statuses, log statistics and prune idle debt locks."""
        now = now or self.clock.now()
        with correlation_context(correlation_id=str(uuid.uuid4()), sweep=DAILY_TASK):
            refreshed = await self.ledger.refresh_statuses(now)
            debt_stats = await self.ledger.get_debt_statistics(now)
            debtor_stats = await self.registry.get_statistics()
            pruned = self.ledger.locks.prune()

            summary = {
                "refreshed": refreshed,
                "locks_pruned": pruned,
                "debts": debt_stats,
                "debtors": debtor_stats,
            }
            logger.info(
                "Daily statistics",
                refreshed=refreshed,
                locks_pruned=pruned,
                overdue_count=debt_stats["overdue"]["count"],
                debtors_total=debtor_stats["total"],
            )
        self._remember(DAILY_TASK, summary)
        return summary

    async def run_weekly_report(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Collection efficiency over the last seven days."""
        end = now or self.clock.now()
        start = end - timedelta(days=7)
        with correlation_context(correlation_id=str(uuid.uuid4()), sweep=WEEKLY_TASK):
            efficiency = await self.ledger.get_collection_efficiency(start, end)
            logger.info(
                "Weekly collection report",
                period_start=start.isoformat(),
                period_end=end.isoformat(),
                total_debts=efficiency["total_debts"],
                collection_rate=efficiency["collection_rate"],
                amount_collection_rate=efficiency["amount_collection_rate"],
            )
        self._remember(WEEKLY_TASK, efficiency)
        return efficiency

    def _remember(self, name: str, result: Any) -> None:
        self.last_run[name] = self.clock.now()
        self.last_results[name] = result.model_dump(mode="json") if isinstance(result, SweepReport) else result

    def get_status(self) -> Dict[str, Any]:
        intervals = {name: interval for name, interval, _ in self._jobs()}
        return {
            "running": self.is_running,
            "tasks": {
                name: {
                    "running": name in self._tasks and not self._tasks[name].done(),
                    "interval_seconds": intervals[name],
                    "last_run": self.last_run[name].isoformat() if name in self.last_run else None,
                }
                for name in intervals
            },
            "last_sweeps": {
                name: self.last_results[name]
                for name in (REMINDER_SWEEP, ESCALATION_SWEEP)
                if name in self.last_results
            },
        }
