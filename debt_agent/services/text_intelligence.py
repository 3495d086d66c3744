"""
Text intelligence: message generation and reply classification.

``OpenAITextIntelligence`` is the production implementation.
``TemplateTextIntelligence`` needs no external service: it renders the fixed
templates and classifies replies with keyword patterns. It backs the service
when no OpenAI key is configured.
"""
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import openai
from pydantic import ValidationError as PydanticValidationError

from debt_agent.core.config import Settings, get_settings
from debt_agent.core.exceptions import (
    IntelligenceError,
    IntelligenceRateLimitError,
    IntelligenceTimeoutError,
)
from debt_agent.core.logging import get_logger
from debt_agent.core.retry import create_async_retry_decorator, get_intelligence_retry_config
from debt_agent.models.classification import (
    Intent,
    PaymentCommitment,
    ResponseClassification,
    Sentiment,
    SuggestedAction,
    Urgency,
)
from debt_agent.models.context import DebtContext, DebtorContext, PaymentContext
from debt_agent.services import templates
from debt_agent.utils.formatting import format_amount, format_date
from debt_agent.utils.json_extractor import JSONExtractionError, extract_json

logger = get_logger(__name__)

TONE_BY_LEVEL = {
    1: "friendly and polite",
    2: "professional but firm",
    3: "serious and urgent",
    4: "formal and demanding",
    5: "final warning",
}

LANGUAGE_NAMES = {"id": "Indonesian", "en": "English"}


class TextIntelligence(ABC):
    """Generates outbound messages and classifies inbound replies."""

    @abstractmethod
    async def generate_reminder(self, debtor: DebtorContext, debt: DebtContext, level: int) -> str:
        ...

    @abstractmethod
    async def generate_confirmation(self, debtor: DebtorContext, payment: PaymentContext) -> str:
        ...

    @abstractmethod
    async def generate_negotiation_reply(self, debtor: DebtorContext, debt: DebtContext, inbound_text: str) -> str:
        ...

    @abstractmethod
    async def generate_escalation(self, debtor: DebtorContext, debt: DebtContext, escalation_type: str) -> str:
        ...

    @abstractmethod
    async def classify(self, inbound_text: str) -> ResponseClassification:
        """
        Classify a debtor reply.

        Raises:
            IntelligenceError: If the reply could not be classified
        """
        ...


class TemplateTextIntelligence(TextIntelligence):
    """Template rendering plus keyword classification."""

    # Checked in order; first match wins
    INTENT_PATTERNS: List[Tuple[Intent, List[str]]] = [
        (Intent.DISPUTE, [
            r"\b(sudah (saya )?(bayar|lunas)|bukan (hutang|utang) saya|salah (jumlah|tagihan)|tidak pernah)\b",
            r"\b(already paid|not mine|wrong amount|don'?t owe|dispute|incorrect)\b",
        ]),
        (Intent.PAYMENT_PLAN_REQUEST, [
            r"\b(cicil|angsur|dicicil|bertahap|keringanan)\w*",
            r"\b(installments?|payment plan|pay in parts|split (the )?payments?)\b",
        ]),
        (Intent.FINANCIAL_HARDSHIP, [
            r"\b(tidak ada uang|belum ada uang|sedang susah|kesulitan|bangkrut|di-?phk|sakit)\b",
            r"\b(can'?t afford|no money|lost my job|hardship|broke|medical)\b",
        ]),
        (Intent.PAYMENT_PROMISE, [
            r"\b(akan (saya )?(bayar|transfer|lunasi)|besok (saya )?(bayar|transfer)|minggu depan)\b",
            r"\b(will pay|i'?ll pay|pay (you )?(tomorrow|next week|on)|will transfer)\b",
        ]),
        (Intent.QUESTION, [
            r"\?",
            r"\b(berapa|kapan|bagaimana|kenapa|apa)\b",
            r"\b(how much|when|how|why|what)\b",
        ]),
        (Intent.ACKNOWLEDGMENT, [
            r"\b(baik|oke|ok|siap|terima kasih|noted|diterima)\b",
            r"\b(okay|thanks|thank you|understood|got it)\b",
        ]),
    ]

    HOSTILE_PATTERNS = [
        r"\b(pengacara|lapor polisi|tuntut|penipu)\b",
        r"\b(lawyer|attorney|sue|suing|scam|harass\w*)\b",
    ]

    ACTION_BY_INTENT = {
        Intent.PAYMENT_PROMISE: SuggestedAction.WAIT,
        Intent.DISPUTE: SuggestedAction.FOLLOW_UP,
        Intent.FINANCIAL_HARDSHIP: SuggestedAction.NEGOTIATE,
        Intent.PAYMENT_PLAN_REQUEST: SuggestedAction.NEGOTIATE,
        Intent.QUESTION: SuggestedAction.FOLLOW_UP,
        Intent.ACKNOWLEDGMENT: SuggestedAction.WAIT,
        Intent.UNKNOWN: SuggestedAction.FOLLOW_UP,
    }

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    async def generate_reminder(self, debtor: DebtorContext, debt: DebtContext, level: int) -> str:
        return templates.reminder_message(debtor, debt, level, self.settings.company_name)

    async def generate_confirmation(self, debtor: DebtorContext, payment: PaymentContext) -> str:
        return templates.confirmation_message(debtor, payment, self.settings.company_name)

    async def generate_negotiation_reply(self, debtor: DebtorContext, debt: DebtContext, inbound_text: str) -> str:
        return templates.negotiation_fallback(debtor, debt, self.settings.company_name)

    async def generate_escalation(self, debtor: DebtorContext, debt: DebtContext, escalation_type: str) -> str:
        return templates.escalation_message(debtor, debt, escalation_type, self.settings.company_name)

    async def classify(self, inbound_text: str) -> ResponseClassification:
        text = inbound_text.lower()
        intent = Intent.UNKNOWN
        for candidate, patterns in self.INTENT_PATTERNS:
            if any(re.search(p, text) for p in patterns):
                intent = candidate
                break

        hostile = any(re.search(p, text) for p in self.HOSTILE_PATTERNS)
        return ResponseClassification(
            intent=intent,
            sentiment=Sentiment.NEGATIVE if hostile else Sentiment.NEUTRAL,
            urgency=Urgency.HIGH if hostile else Urgency.MEDIUM,
            payment_commitment=(
                PaymentCommitment.YES if intent == Intent.PAYMENT_PROMISE else PaymentCommitment.MAYBE
            ),
            suggested_action=SuggestedAction.ESCALATE if hostile else self.ACTION_BY_INTENT[intent],
            confidence=0.5 if intent != Intent.UNKNOWN else 0.2,
            summary=f"Keyword match: {intent.value}",
        )


class OpenAITextIntelligence(TextIntelligence):
    """Text intelligence backed by the OpenAI chat completions API."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[openai.AsyncOpenAI] = None):
        self.settings = settings or get_settings()
        self.client = client or openai.AsyncOpenAI(
            api_key=self.settings.openai_api_key,
            timeout=self.settings.openai_timeout,
        )
        self.model = self.settings.openai_model
        self.temperature = self.settings.openai_temperature
        self.max_tokens = self.settings.openai_max_tokens

        retry_decorator = create_async_retry_decorator(
            config=get_intelligence_retry_config(),
            service_name="OpenAI",
        )
        self._complete_with_retry = retry_decorator(self._complete)

    async def _complete(self, prompt: str, operation: str, temperature: Optional[float] = None) -> str:
        start_time = time.monotonic()
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._system_prompt()},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature if temperature is None else temperature,
                max_tokens=self.max_tokens,
            )
        except openai.APITimeoutError as e:
            raise IntelligenceTimeoutError(f"OpenAI request timed out: {e}", operation=operation)
        except openai.RateLimitError as e:
            raise IntelligenceRateLimitError(f"OpenAI rate limit: {e}", operation=operation)
        except openai.OpenAIError as e:
            raise IntelligenceError(f"OpenAI request failed: {e}", operation=operation)

        content = completion.choices[0].message.content if completion.choices else None
        if not content or not content.strip():
            raise IntelligenceError("OpenAI returned empty content", operation=operation)

        logger.info(
            "Text generated",
            operation=operation,
            model=self.model,
            processing_time_ms=int((time.monotonic() - start_time) * 1000),
        )
        return content.strip()

    def _system_prompt(self) -> str:
        return (
            f"You are a professional debt collection assistant for {self.settings.company_name}. "
            "You write WhatsApp messages that are respectful, clear and human. "
            "Never threaten, never invent amounts or dates, and always leave a way to reply."
        )

    @staticmethod
    def _debtor_block(debtor: DebtorContext) -> str:
        return f"Debtor:\n- Name: {debtor.name}\n- Company: {debtor.company or 'N/A'}"

    @staticmethod
    def _debt_block(debt: DebtContext) -> str:
        due = format_date(debt.due_date) if debt.due_date else "N/A"
        return (
            "Debt:\n"
            f"- Invoice: {debt.invoice_number}\n"
            f"- Amount: {format_amount(debt.amount, debt.currency)}\n"
            f"- Outstanding: {format_amount(debt.remaining_balance, debt.currency)}\n"
            f"- Due date: {due}\n"
            f"- Days overdue: {debt.days_overdue}\n"
            f"- Previous reminders: {debt.previous_reminders}\n"
            f"- Description: {debt.description or 'Outstanding payment'}"
        )

    async def generate_reminder(self, debtor: DebtorContext, debt: DebtContext, level: int) -> str:
        tone = TONE_BY_LEVEL.get(level, "professional")
        language = LANGUAGE_NAMES.get(debtor.language, "Indonesian")
        prompt = (
            f"Write a {tone} payment reminder in {language}.\n\n"
            f"{self._debtor_block(debtor)}\n\n{self._debt_block(debt)}\n\n"
            f"Reminder level: {level}/5 (1 = gentle, 5 = final warning).\n"
            "State the outstanding amount and due date. For level 4 and above mention possible "
            "consequences. Keep it under 300 words. Return only the message text."
        )
        return await self._complete_with_retry(prompt, "generate_reminder")

    async def generate_confirmation(self, debtor: DebtorContext, payment: PaymentContext) -> str:
        language = LANGUAGE_NAMES.get(debtor.language, "Indonesian")
        prompt = (
            f"Write a short, warm payment confirmation in {language}.\n\n"
            f"{self._debtor_block(debtor)}\n\n"
            "Payment:\n"
            f"- Amount paid: {format_amount(payment.amount, payment.currency)}\n"
            f"- Date: {format_date(payment.payment_date)}\n"
            f"- Method: {payment.method}\n"
            f"- Reference: {payment.reference or 'N/A'}\n"
            f"- Remaining balance: {format_amount(payment.remaining_balance, payment.currency)}\n\n"
            "Thank the debtor, confirm the details and mention any remaining balance. "
            "Return only the message text."
        )
        return await self._complete_with_retry(prompt, "generate_confirmation")

    async def generate_negotiation_reply(self, debtor: DebtorContext, debt: DebtContext, inbound_text: str) -> str:
        language = LANGUAGE_NAMES.get(debtor.language, "Indonesian")
        prompt = (
            f"A debtor replied to a payment reminder. Write a response in {language}.\n\n"
            f"{self._debtor_block(debtor)}\n\n{self._debt_block(debt)}\n\n"
            f'Debtor message: "{inbound_text}"\n\n'
            "If they ask for a payment plan, acknowledge it and explain next steps. If they dispute "
            "the debt, ask for details. If they promise to pay, confirm the commitment. Be empathetic "
            "and solution-oriented. Return only the message text."
        )
        return await self._complete_with_retry(prompt, "generate_negotiation_reply")

    async def generate_escalation(self, debtor: DebtorContext, debt: DebtContext, escalation_type: str) -> str:
        language = LANGUAGE_NAMES.get(debtor.language, "Indonesian")
        prompt = (
            f"Write a formal escalation notice in {language}.\n\n"
            f"{self._debtor_block(debtor)}\n\n{self._debt_block(debt)}\n\n"
            f"Escalation type: {escalation_type}\n\n"
            "State the consequence clearly, give a final opportunity to resolve with a specific "
            "response deadline, and stay formal without threatening. Return only the message text."
        )
        return await self._complete_with_retry(prompt, "generate_escalation")

    async def classify(self, inbound_text: str) -> ResponseClassification:
        prompt = (
            "Classify this debtor WhatsApp reply. Respond only with a JSON object.\n\n"
            f'Message: "{inbound_text}"\n\n'
            "Fields:\n"
            f"- intent: one of {[i.value for i in Intent]}\n"
            f"- sentiment: one of {[s.value for s in Sentiment]}\n"
            f"- urgency: one of {[u.value for u in Urgency]}\n"
            f"- payment_commitment: one of {[c.value for c in PaymentCommitment]}\n"
            f"- suggested_action: one of {[a.value for a in SuggestedAction]}\n"
            "- confidence: number between 0 and 1\n"
            "- summary: one sentence"
        )
        content = await self._complete_with_retry(prompt, "classify", 0.0)

        try:
            data = extract_json(content)
        except JSONExtractionError as e:
            raise IntelligenceError(f"Classification was not JSON: {e}", operation="classify")
        return self._parse_classification(data)

    @staticmethod
    def _parse_classification(data: Dict[str, Any]) -> ResponseClassification:
        """Build a classification, replacing unrecognized values with defaults."""
        defaults = ResponseClassification()
        fields = {
            "intent": Intent,
            "sentiment": Sentiment,
            "urgency": Urgency,
            "payment_commitment": PaymentCommitment,
            "suggested_action": SuggestedAction,
        }
        parsed: Dict[str, Any] = {}
        for name, enum_cls in fields.items():
            raw = str(data.get(name, "")).strip().lower()
            try:
                parsed[name] = enum_cls(raw)
            except ValueError:
                parsed[name] = getattr(defaults, name)

        try:
            parsed["confidence"] = min(1.0, max(0.0, float(data.get("confidence", defaults.confidence))))
        except (TypeError, ValueError):
            parsed["confidence"] = defaults.confidence
        summary = data.get("summary")
        parsed["summary"] = str(summary) if summary is not None else None

        try:
            return ResponseClassification(**parsed)
        except PydanticValidationError as e:
            raise IntelligenceError(f"Invalid classification: {e}", operation="classify")
