"""
Structured interpretation of a free-text debtor reply.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Intent(str, Enum):
    PAYMENT_PROMISE = "payment_promise"
    DISPUTE = "dispute"
    FINANCIAL_HARDSHIP = "financial_hardship"
    PAYMENT_PLAN_REQUEST = "payment_plan_request"
    QUESTION = "question"
    ACKNOWLEDGMENT = "acknowledgment"
    UNKNOWN = "unknown"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PaymentCommitment(str, Enum):
    YES = "yes"
    NO = "no"
    MAYBE = "maybe"


class SuggestedAction(str, Enum):
    FOLLOW_UP = "follow_up"
    ESCALATE = "escalate"
    NEGOTIATE = "negotiate"
    CLOSE_CASE = "close_case"
    WAIT = "wait"


# Intents answered with a fixed template rather than a generated reply
TEMPLATED_INTENTS = frozenset({Intent.PAYMENT_PROMISE, Intent.ACKNOWLEDGMENT})


class ResponseClassification(BaseModel):
    """Classification of one inbound message."""

    intent: Intent = Intent.UNKNOWN
    sentiment: Sentiment = Sentiment.NEUTRAL
    urgency: Urgency = Urgency.MEDIUM
    payment_commitment: PaymentCommitment = PaymentCommitment.MAYBE
    suggested_action: SuggestedAction = SuggestedAction.FOLLOW_UP
    confidence: float = Field(default=0.1, ge=0.0, le=1.0)
    summary: Optional[str] = None

    @classmethod
    def fallback(cls) -> "ResponseClassification":
        """Conservative classification used when the classifier fails."""
        return cls(summary="Analysis failed, manual review required")
