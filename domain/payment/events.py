"""
Payment domain events.

Dataclass events record payment state transitions for downstream handling
(e.g., order fulfilment, notifications). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentEvent:
    order_reference: str
    gateway: str
    transaction_ref: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentSettled(PaymentEvent):
    amount_minor_units: int = 0


@dataclass
class PaymentRejected(PaymentEvent):
    reason: Optional[str] = None


@dataclass
class PaymentPendingConfirmation(PaymentEvent):
    vendor_result_code: Optional[str] = None


@dataclass
class PaymentExpired(PaymentEvent):
    pass
