"""
PayPal adapter through the merchant's signed checkout relay.

The relay accepts a signed redirect, creates the PayPal order on its side and
redirects the buyer back with a signed result. Amounts are converted from VND
to USD cents at the configured rate, rounding half up.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping

from application.dtos.payments import CheckoutContext
from core.settings import PaypalSettings
from domain.common.exceptions import PaymentValidationError
from domain.payment.entity import PaymentIntent
from infrastructure.external.payments.base import BaseGatewaySigner, default_order_info, with_query


CALLBACK_SIGNATURE_FIELDS = (
    "amount", "currency_code", "order_id", "reference_id", "status", "update_time",
)


class PaypalClient(BaseGatewaySigner):
    gateway = "paypal"
    hash_algorithm = "sha256"
    # VND -> USD uses the exchange rate; cents per dollar is the fixed part
    scaling_factor = 100
    signature_field = "signature"

    order_reference_field = "reference_id"
    transaction_ref_field = "order_id"
    result_code_field = "status"
    amount_field = "amount"

    def __init__(self, cfg: PaypalSettings, *, currency: str = "VND") -> None:
        super().__init__(
            secret=cfg.relay_secret.get_secret_value(),
            payment_url=cfg.checkout_url,
            currency=currency,
        )
        self._cfg = cfg

    def scale_amount(self, amount_minor_units: int) -> int:
        amount = Decimal(super().scale_amount(amount_minor_units)) / Decimal(self._cfg.exchange_rate)
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def validate_intent(self, intent: PaymentIntent) -> None:
        super().validate_intent(intent)
        cents = self.scale_amount(intent.amount_minor_units)
        if cents < self._cfg.min_amount_cents or cents > self._cfg.max_amount_cents:
            raise PaymentValidationError(
                "PayPal amount out of range after currency conversion",
                field="amount_minor_units",
                details={
                    "usd_cents": cents,
                    "min_cents": self._cfg.min_amount_cents,
                    "max_cents": self._cfg.max_amount_cents,
                },
            )

    def build_payment_params(self, intent: PaymentIntent, ctx: CheckoutContext) -> dict[str, str]:
        now = ctx.now or datetime.now(timezone.utc)
        ref = intent.order_reference
        return {
            "merchant_id": self._cfg.merchant_id,
            "reference_id": ref,
            "description": intent.description or default_order_info(ref),
            "amount": str(self.scale_amount(intent.amount_minor_units)),
            "currency_code": "USD",
            "return_url": with_query(self._cfg.return_url, orderNumber=ref),
            "cancel_url": with_query(self._cfg.cancel_url, orderNumber=ref),
            "brand_name": self._cfg.brand_name,
            "user_action": "PAY_NOW",
            "locale": "vi-VN" if (ctx.locale or "vi").lower().startswith("vi") else "en-US",
            "create_time": now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        }

    def callback_signing_params(self, params: Mapping[str, str]) -> dict[str, str]:
        return {name: params.get(name, "") for name in CALLBACK_SIGNATURE_FIELDS}

    def result_code(self, params: Mapping[str, str]):
        code = super().result_code(params)
        return code.upper() if code else code
