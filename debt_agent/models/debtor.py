"""
Debtor models: identity, contact preferences and payment history.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BusinessType(str, Enum):
    INDIVIDUAL = "individual"
    SMALL_BUSINESS = "small_business"
    CORPORATION = "corporation"
    GOVERNMENT = "government"
    NGO = "ngo"


class CreditRating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    UNKNOWN = "unknown"


class PaymentOutcome(str, Enum):
    """Classification of a closed payment event in the debtor's history."""
    ON_TIME = "on_time"
    LATE = "late"
    DEFAULTED = "defaulted"


class PaymentHistory(BaseModel):
    """Running payment counters, mutated only by the debt ledger."""

    total: int = Field(default=0, ge=0)
    paid_on_time: int = Field(default=0, ge=0)
    paid_late: int = Field(default=0, ge=0)
    defaulted: int = Field(default=0, ge=0)
    average_payment_days: float = Field(default=0.0, ge=0.0)


class ContactWindow(BaseModel):
    """Hours of the day (in the debtor's timezone) when contact is allowed."""

    start_hour: int = Field(default=9, ge=0, le=23)
    end_hour: int = Field(default=17, ge=0, le=23)
    timezone: str = "Asia/Jakarta"


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "Indonesia"


class Debtor(BaseModel):
    """A party owing one or more debts."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., description="Canonical digit-only international phone")
    email: Optional[str] = None
    company: Optional[str] = Field(default=None, max_length=100)
    address: Address = Field(default_factory=Address)
    business_type: BusinessType = BusinessType.INDIVIDUAL
    credit_rating: CreditRating = CreditRating.UNKNOWN
    payment_history: PaymentHistory = Field(default_factory=PaymentHistory)
    preferred_contact_time: ContactWindow = Field(default_factory=ContactWindow)
    language: str = "id"
    is_blacklisted: bool = False
    blacklist_reason: Optional[str] = None
    is_active: bool = True
    last_contact_date: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        if not v.isdigit():
            raise ValueError("Phone must be normalized to digits only before storage")
        return v

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: str) -> str:
        if v not in ("id", "en"):
            raise ValueError("Language must be 'id' or 'en'")
        return v

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.company})" if self.company else self.name

    @property
    def can_receive_outreach(self) -> bool:
        return self.is_active and not self.is_blacklisted
