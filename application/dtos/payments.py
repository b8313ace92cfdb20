"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from domain.payment.entity import CanonicalOutcome, PaymentIntent, PaymentStatus


class CheckoutRequest(BaseModel):
    order_reference: str = Field(min_length=1, max_length=100)
    # Strict so that booleans and numeric strings are refused at the edge;
    # positivity is a domain rule checked before any signing.
    amount_minor_units: int = Field(strict=True)
    description: Optional[str] = Field(default=None, max_length=255)
    locale: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @field_validator("order_reference")
    @classmethod
    def _strip_reference(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("order_reference must not be blank")
        return v


class CheckoutContext(BaseModel):
    """Request-scoped facts the URL builders need besides the intent."""

    client_ip: Optional[str] = None
    locale: str = "vi"
    now: Optional[datetime] = None  # injectable clock, defaults to current time


class CheckoutResult(BaseModel):
    payment_url: str
    order_reference: str
    gateway: str
    status: PaymentStatus


class ResultTranslation(BaseModel):
    outcome: CanonicalOutcome
    vendor_code: Optional[str] = None
    unknown_code: bool = False
    reclassified: bool = False

    model_config = ConfigDict(frozen=True)


class CallbackResult(BaseModel):
    """What the callback flow tells the HTTP layer. Deliberately reason-free on failure."""

    acknowledged: bool
    gateway: str
    order_reference: Optional[str] = None
    outcome: CanonicalOutcome = CanonicalOutcome.FAILED
    status: Optional[PaymentStatus] = None
    applied: bool = False
    duplicate: bool = False
    stale: bool = False

    @property
    def redirect_status(self) -> str:
        """Coarse status for the storefront return page."""
        if not self.acknowledged or self.status is None:
            return "failed"
        if self.status == PaymentStatus.SETTLED:
            return "success"
        if self.status in (PaymentStatus.PENDING_CONFIRMATION, PaymentStatus.AWAITING_CALLBACK, PaymentStatus.INITIATED):
            return "pending"
        return "failed"


class PaymentIntentView(BaseModel):
    order_reference: str
    gateway: str
    amount_minor_units: int
    currency: str
    status: PaymentStatus
    description: Optional[str] = None
    transaction_ref: Optional[str] = None
    failure_reason: Optional[str] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, intent: PaymentIntent) -> "PaymentIntentView":
        return cls(
            order_reference=intent.order_reference,
            gateway=intent.gateway.value,
            amount_minor_units=intent.amount_minor_units,
            currency=intent.currency,
            status=intent.status,
            description=intent.description,
            transaction_ref=intent.transaction_ref,
            failure_reason=intent.failure_reason,
            version=intent.version,
            created_at=intent.created_at,
            updated_at=intent.updated_at,
        )
