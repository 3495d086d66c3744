"""
Response handler: turns inbound debtor replies into logs, replies and escalations.
"""
import uuid
from typing import Any, Dict, List, Optional

from debt_agent.core.clock import Clock, SystemClock
from debt_agent.core.config import Settings, get_settings
from debt_agent.core.logging import correlation_context, get_logger, log_business_event
from debt_agent.models.classification import (
    TEMPLATED_INTENTS,
    Intent,
    ResponseClassification,
    SuggestedAction,
)
from debt_agent.models.context import DebtContext, DebtorContext
from debt_agent.models.debt import Debt, DebtStatus
from debt_agent.models.debtor import Debtor
from debt_agent.models.logs import DebtorResponseLog
from debt_agent.models.results import ResponseOutcome
from debt_agent.services import templates
from debt_agent.services.debt_ledger import DebtLedger
from debt_agent.services.debtor_registry import DebtorRegistry
from debt_agent.services.outreach import OutreachOrchestrator
from debt_agent.services.text_intelligence import TextIntelligence

logger = get_logger(__name__)


class ResponseHandler:
    """
    Processes one inbound message at a time.

    All open debts of the sender are treated as one conversation: the reply
    is classified once, logged against each debt and answered once.
    """

    def __init__(
        self,
        ledger: DebtLedger,
        registry: DebtorRegistry,
        outreach: OutreachOrchestrator,
        intelligence: TextIntelligence,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self.ledger = ledger
        self.registry = registry
        self.outreach = outreach
        self.intelligence = intelligence
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()

    async def handle_inbound(self, address: str, text: str, raw: Optional[Dict[str, Any]] = None) -> ResponseOutcome:
        """
        Handle an inbound message.

        Never raises: any failure is logged and reported in the outcome.

        Args:
            address: Channel address or phone of the sender
            text: Message body
            raw: Channel payload, kept for audit

        Returns:
            Summary of what was done
        """
        outcome = ResponseOutcome()
        with correlation_context(correlation_id=str(uuid.uuid4())):
            try:
                await self._process(address, text or "", outcome)
            except Exception as e:
                logger.error(
                    "Failed to handle debtor response",
                    address=address,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                outcome.error = str(e)
        return outcome

    async def _process(self, address: str, text: str, outcome: ResponseOutcome) -> None:
        debtor = await self.registry.find_by_phone(address)
        if debtor is None:
            logger.info("Inbound message from unknown sender", address=address)
            return
        outcome.phone = debtor.phone
        outcome.debtor_id = debtor.id

        debts = await self.ledger.list_active_debts_for_debtor(debtor.id)
        if not debts:
            logger.info("No open debts for sender", debtor_id=debtor.id)
            return
        outcome.matched_debt_ids = [d.id for d in debts]

        classification = await self._classify(text)
        outcome.intent = classification.intent
        outcome.suggested_action = classification.suggested_action

        received_at = self.clock.now()
        for debt in debts:
            await self.ledger.store.append_response_log(
                DebtorResponseLog(
                    debt_id=debt.id,
                    phone=debtor.phone,
                    message=text,
                    classification=classification,
                    received_at=received_at,
                )
            )
        log_business_event(
            "response_classified",
            debtor_id=debtor.id,
            debt_count=len(debts),
            intent=classification.intent.value,
            suggested_action=classification.suggested_action.value,
            confidence=classification.confidence,
        )

        if debtor.can_receive_outreach:
            reply = await self._compose_reply(debtor, debts, text, classification)
            result = await self.outreach.send_auto_reply(debtor, debts, reply)
            outcome.reply_sent = result.success
        else:
            logger.info("Reply suppressed for uncontactable debtor", debtor_id=debtor.id)

        if classification.suggested_action == SuggestedAction.ESCALATE:
            outcome.escalated_debt_ids = await self._escalate_exhausted(debts)

    async def _classify(self, text: str) -> ResponseClassification:
        try:
            return await self.intelligence.classify(text)
        except Exception as e:
            logger.warning("Classification failed, using fallback", error=str(e), error_type=type(e).__name__)
            return ResponseClassification.fallback()

    async def _compose_reply(
        self,
        debtor: Debtor,
        debts: List[Debt],
        text: str,
        classification: ResponseClassification,
    ) -> str:
        debtor_ctx = DebtorContext.from_debtor(debtor)
        debt_ctx = DebtContext.from_debts(debts, self.clock.now())

        if classification.intent in TEMPLATED_INTENTS:
            if classification.intent == Intent.PAYMENT_PROMISE:
                return templates.payment_promise_reply(debtor_ctx, debt_ctx)
            return templates.acknowledgment_reply(debtor_ctx, debt_ctx)

        try:
            return await self.intelligence.generate_negotiation_reply(debtor_ctx, debt_ctx, text)
        except Exception as e:
            logger.warning(
                "Negotiation reply generation failed, using template",
                error=str(e),
                error_type=type(e).__name__,
            )
            return templates.negotiation_fallback(debtor_ctx, debt_ctx, self.settings.company_name)

    async def _escalate_exhausted(self, debts: List[Debt]) -> List[str]:
        """Escalate debts whose reminder attempts are used up."""
        escalated = []
        for debt in debts:
            if debt.reminder_count < self.settings.max_reminder_attempts or debt.status == DebtStatus.ESCALATED:
                continue
            result = await self.outreach.escalate_debt(debt.id)
            if result.success:
                escalated.append(debt.id)
        return escalated
