"""
Append-only audit entries for outbound messages and inbound replies.
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from .classification import ResponseClassification

# Level stamped on escalation notices so they never count as reminders
ESCALATION_LEVEL = 99
# Level for auto-replies and payment confirmations
NON_REMINDER_LEVEL = 0


class MessageKind(str, Enum):
    REMINDER = "reminder"
    AUTO_RESPONSE = "auto_response"
    PAYMENT_CONFIRMATION = "payment_confirmation"
    ESCALATION = "escalation"


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class ReminderLog(BaseModel):
    """One outbound message attempt tied to a debt."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    debt_id: str
    level: int = Field(..., ge=0)
    kind: MessageKind = MessageKind.REMINDER
    status: DeliveryStatus
    message: str
    message_id: Optional[str] = None
    error: Optional[str] = None
    sent_at: datetime


class DebtorResponseLog(BaseModel):
    """One classified inbound reply, logged once per matched debt."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    debt_id: str
    phone: str
    message: str
    classification: ResponseClassification
    received_at: datetime
