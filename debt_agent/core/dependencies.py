"""
Service wiring.

Builds the object graph once per application and exposes it to FastAPI
routes through ``request.app.state``.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from debt_agent.core.clock import Clock, SystemClock
from debt_agent.core.config import Settings, get_settings
from debt_agent.core.locks import DebtLockManager
from debt_agent.core.logging import get_logger
from debt_agent.services.debt_ledger import DebtLedger
from debt_agent.services.debtor_registry import DebtorRegistry
from debt_agent.services.message_channel import MessageChannel, WhatsAppGatewayChannel
from debt_agent.services.outreach import OutreachOrchestrator
from debt_agent.services.response_handler import ResponseHandler
from debt_agent.services.scheduler import ReminderScheduler
from debt_agent.services.store import InMemoryStore
from debt_agent.services.text_intelligence import (
    OpenAITextIntelligence,
    TemplateTextIntelligence,
    TextIntelligence,
)

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    clock: Clock
    store: InMemoryStore
    locks: DebtLockManager
    registry: DebtorRegistry
    ledger: DebtLedger
    channel: MessageChannel
    intelligence: TextIntelligence
    outreach: OutreachOrchestrator
    response_handler: ResponseHandler
    scheduler: ReminderScheduler


def build_intelligence(settings: Settings) -> TextIntelligence:
    """OpenAI when a key is configured, templates and keyword matching otherwise."""
    if settings.openai_api_key:
        return OpenAITextIntelligence(settings)
    logger.warning("No OpenAI API key configured, using template text intelligence")
    return TemplateTextIntelligence(settings)


def build_container(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    channel: Optional[MessageChannel] = None,
    intelligence: Optional[TextIntelligence] = None,
    store: Optional[InMemoryStore] = None,
) -> ServiceContainer:
    """
    Build every service and register the response handler on the channel.

    Args:
        settings: Settings to use; defaults to ``get_settings()``
        clock: Time source; defaults to the system clock
        channel: Message channel; defaults to the WhatsApp gateway
        intelligence: Text intelligence; chosen from settings when omitted
        store: Backing store; a fresh in-memory store when omitted
    """
    settings = settings or get_settings()
    clock = clock or SystemClock()
    store = store or InMemoryStore()
    locks = DebtLockManager()
    channel = channel or WhatsAppGatewayChannel(settings)
    intelligence = intelligence or build_intelligence(settings)

    registry = DebtorRegistry(store, settings=settings, clock=clock)
    ledger = DebtLedger(store, registry, locks=locks, settings=settings, clock=clock)
    outreach = OutreachOrchestrator(ledger, registry, channel, intelligence, settings=settings, clock=clock)
    response_handler = ResponseHandler(ledger, registry, outreach, intelligence, settings=settings, clock=clock)
    scheduler = ReminderScheduler(ledger, registry, outreach, settings=settings, clock=clock)

    channel.register_handler(response_handler.handle_inbound)

    return ServiceContainer(
        settings=settings,
        clock=clock,
        store=store,
        locks=locks,
        registry=registry,
        ledger=ledger,
        channel=channel,
        intelligence=intelligence,
        outreach=outreach,
        response_handler=response_handler,
        scheduler=scheduler,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container
