"""
Pytest configuration and fixtures for the Debt Collection Agent.
"""
from datetime import datetime, timedelta, timezone
from typing import Generator, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from debt_agent.core.clock import FixedClock
from debt_agent.core.config import Settings
from debt_agent.core.dependencies import build_container
from debt_agent.core.exceptions import ChannelError
from debt_agent.main import create_app
from debt_agent.models.classification import Intent, ResponseClassification, SuggestedAction
from debt_agent.services.debt_ledger import DebtLedger
from debt_agent.services.debtor_registry import DebtorRegistry
from debt_agent.services.message_channel import MessageChannel
from debt_agent.services.outreach import OutreachOrchestrator
from debt_agent.services.response_handler import ResponseHandler
from debt_agent.services.scheduler import ReminderScheduler
from debt_agent.services.store import InMemoryStore
from debt_agent.services.text_intelligence import TextIntelligence

# Monday 10:00 in Asia/Jakarta
NOW = datetime(2024, 6, 3, 3, 0, tzinfo=timezone.utc)


class RecordingChannel(MessageChannel):
    """Channel double that records sends instead of contacting a gateway."""

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__(settings)
        self.sent: List[Tuple[str, str]] = []
        self.fail_with: Optional[str] = None

    async def send(self, address: str, text: str) -> str:
        if self.fail_with:
            raise ChannelError(self.fail_with, address=address)
        self.sent.append((address, text))
        return f"msg-{len(self.sent)}"

    async def is_reachable(self, address: str) -> bool:
        return True


@pytest.fixture
def settings() -> Settings:
    """Settings with no inter-message delay and no contact window."""
    return Settings(
        _env_file=None,
        message_delay_seconds=0,
        respect_contact_window=False,
        channel_retry_attempts=1,
        openai_api_key=None,
        scheduler_enabled=False,
        company_name="Finance Team",
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock(now) -> FixedClock:
    return FixedClock(now)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def registry(store, settings, clock) -> DebtorRegistry:
    return DebtorRegistry(store, settings=settings, clock=clock)


@pytest.fixture
def ledger(store, registry, settings, clock) -> DebtLedger:
    return DebtLedger(store, registry, settings=settings, clock=clock)


@pytest.fixture
def channel(settings) -> RecordingChannel:
    return RecordingChannel(settings)


@pytest.fixture
def intelligence() -> AsyncMock:
    """Text intelligence double returning fixed text and an acknowledgment."""
    mock = AsyncMock(spec=TextIntelligence)
    mock.generate_reminder.return_value = "Reminder text"
    mock.generate_confirmation.return_value = "Confirmation text"
    mock.generate_negotiation_reply.return_value = "Negotiation text"
    mock.generate_escalation.return_value = "Escalation text"
    mock.classify.return_value = ResponseClassification(
        intent=Intent.ACKNOWLEDGMENT,
        suggested_action=SuggestedAction.WAIT,
        confidence=0.9,
    )
    return mock


@pytest.fixture
def outreach(ledger, registry, channel, intelligence, settings, clock) -> OutreachOrchestrator:
    return OutreachOrchestrator(ledger, registry, channel, intelligence, settings=settings, clock=clock)


@pytest.fixture
def response_handler(ledger, registry, outreach, intelligence, settings, clock) -> ResponseHandler:
    return ResponseHandler(ledger, registry, outreach, intelligence, settings=settings, clock=clock)


@pytest.fixture
def scheduler(ledger, registry, outreach, settings, clock) -> ReminderScheduler:
    return ReminderScheduler(ledger, registry, outreach, settings=settings, clock=clock)


@pytest.fixture
async def debtor(registry):
    return await registry.register("Budi Santoso", "081234567890", company="PT Maju")


@pytest.fixture
async def overdue_debt(ledger, debtor, now):
    """1,000,000 IDR due ten days ago, never reminded."""
    return await ledger.create_debt(
        debtor.id,
        "INV-001",
        1_000_000,
        due_date=now - timedelta(days=10),
        description="Jasa konsultasi",
    )


@pytest.fixture
def container(settings, clock, channel, intelligence, store):
    return build_container(
        settings=settings,
        clock=clock,
        channel=channel,
        intelligence=intelligence,
        store=store,
    )


@pytest.fixture
def client(container) -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.

    The scheduler is disabled so no background sweeps run during requests.
    """
    with TestClient(create_app(container)) as test_client:
        yield test_client
