"""In-memory storage for debtors, debts and audit logs."""

from typing import Callable, Dict, List, Optional

from debt_agent.core.logging import get_logger
from debt_agent.models.debt import Debt
from debt_agent.models.debtor import Debtor
from debt_agent.models.logs import DebtorResponseLog, ReminderLog

logger = get_logger(__name__)


class InMemoryStore:
    """
    Async repository backed by dictionaries.

    Reads return deep copies, so a caller's changes reach storage only when it
    explicitly saves them. Log collections are append-only.
    """

    def __init__(self):
        self._debtors: Dict[str, Debtor] = {}
        self._debts: Dict[str, Debt] = {}
        self._reminder_logs: List[ReminderLog] = []
        self._response_logs: List[DebtorResponseLog] = []

    # Debtors
    async def save_debtor(self, debtor: Debtor) -> Debtor:
        self._debtors[debtor.id] = debtor.model_copy(deep=True)
        return debtor

    async def get_debtor(self, debtor_id: str) -> Optional[Debtor]:
        debtor = self._debtors.get(debtor_id)
        return debtor.model_copy(deep=True) if debtor else None

    async def find_debtor_by_phone(self, phone: str) -> Optional[Debtor]:
        for debtor in self._debtors.values():
            if debtor.phone == phone:
                return debtor.model_copy(deep=True)
        return None

    async def list_debtors(self) -> List[Debtor]:
        return [d.model_copy(deep=True) for d in self._debtors.values()]

    # Debts
    async def save_debt(self, debt: Debt) -> Debt:
        self._debts[debt.id] = debt.model_copy(deep=True)
        return debt

    async def get_debt(self, debt_id: str) -> Optional[Debt]:
        debt = self._debts.get(debt_id)
        return debt.model_copy(deep=True) if debt else None

    async def find_debt_by_invoice(self, invoice_number: str) -> Optional[Debt]:
        for debt in self._debts.values():
            if debt.invoice_number == invoice_number:
                return debt.model_copy(deep=True)
        return None

    async def query_debts(self, predicate: Optional[Callable[[Debt], bool]] = None) -> List[Debt]:
        """Return copies of every debt matching ``predicate`` in insertion order."""
        return [
            debt.model_copy(deep=True)
            for debt in self._debts.values()
            if predicate is None or predicate(debt)
        ]

    # Audit logs
    async def append_reminder_log(self, entry: ReminderLog) -> ReminderLog:
        self._reminder_logs.append(entry)
        logger.debug("Reminder log appended", debt_id=entry.debt_id, level=entry.level, status=entry.status.value)
        return entry

    async def list_reminder_logs(self, debt_id: Optional[str] = None) -> List[ReminderLog]:
        return [e for e in self._reminder_logs if debt_id is None or e.debt_id == debt_id]

    async def append_response_log(self, entry: DebtorResponseLog) -> DebtorResponseLog:
        self._response_logs.append(entry)
        return entry

    async def list_response_logs(self, debt_id: Optional[str] = None) -> List[DebtorResponseLog]:
        return [e for e in self._response_logs if debt_id is None or e.debt_id == debt_id]
