"""
MoMo adapter (wallet gateway, v2 "payWithMethod").

Both the create request and the callback are signed over a fixed, alphabetical
field list that includes ``accessKey``. The access key takes part in the
signature but is never sent in the redirect URL.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Mapping

from application.dtos.payments import CheckoutContext, ResultTranslation
from core.settings import MomoSettings
from domain.common.exceptions import PaymentValidationError
from domain.payment.entity import CanonicalOutcome, PaymentIntent
from infrastructure.external.payments.base import BaseGatewaySigner, default_order_info
from shared.codes.payment_codes import MOMO_AMBIGUOUS_CODES, SUCCESS


CREATE_SIGNATURE_FIELDS = (
    "accessKey", "amount", "extraData", "ipnUrl", "orderId", "orderInfo",
    "partnerCode", "redirectUrl", "requestId", "requestType",
)

CALLBACK_SIGNATURE_FIELDS = (
    "accessKey", "amount", "extraData", "message", "orderId", "orderInfo",
    "orderType", "partnerCode", "payType", "requestId", "responseTime",
    "resultCode", "transId",
)


def has_transaction_evidence(trans_id: str | None) -> bool:
    """A real MoMo transId is a non-zero run of digits."""
    value = (trans_id or "").strip()
    return value.isdigit() and value.strip("0") != ""


class MomoClient(BaseGatewaySigner):
    gateway = "momo"
    hash_algorithm = "sha256"
    scaling_factor = 1
    signature_field = "signature"

    order_reference_field = "orderId"
    transaction_ref_field = "transId"
    result_code_field = "resultCode"
    amount_field = "amount"

    def __init__(self, cfg: MomoSettings, *, currency: str = "VND") -> None:
        super().__init__(
            secret=cfg.secret_key.get_secret_value(),
            payment_url=cfg.payment_url,
            currency=currency,
        )
        self._cfg = cfg
        self._access_key = cfg.access_key.get_secret_value()

    def validate_intent(self, intent: PaymentIntent) -> None:
        super().validate_intent(intent)
        amount = intent.amount_minor_units
        if amount < self._cfg.min_amount or amount > self._cfg.max_amount:
            raise PaymentValidationError(
                f"MoMo amount must be between {self._cfg.min_amount} and {self._cfg.max_amount} VND",
                field="amount_minor_units",
                details={"min": self._cfg.min_amount, "max": self._cfg.max_amount},
            )

    def build_payment_params(self, intent: PaymentIntent, ctx: CheckoutContext) -> dict[str, str]:
        now = ctx.now or datetime.now(timezone.utc)
        return {
            "partnerCode": self._cfg.partner_code,
            "requestId": f"{self._cfg.partner_code}{int(now.timestamp() * 1000)}",
            "orderId": intent.order_reference,
            "amount": str(self.scale_amount(intent.amount_minor_units)),
            "orderInfo": intent.description or default_order_info(intent.order_reference),
            "redirectUrl": self._cfg.redirect_url,
            "ipnUrl": self._cfg.ipn_url,
            "requestType": self._cfg.request_type,
            "extraData": "",
            "lang": "vi" if (ctx.locale or "vi").lower().startswith("vi") else "en",
        }

    def _with_access_key(self, params: Mapping[str, str], fields: tuple[str, ...]) -> dict[str, str]:
        signed = {name: params.get(name, "") for name in fields if name != "accessKey"}
        signed["accessKey"] = self._access_key
        return signed

    def signing_params(self, params: Mapping[str, str]) -> dict[str, str]:
        return self._with_access_key(params, CREATE_SIGNATURE_FIELDS)

    def callback_signing_params(self, params: Mapping[str, str]) -> dict[str, str]:
        return self._with_access_key(params, CALLBACK_SIGNATURE_FIELDS)

    def translate(self, params: Mapping[str, str]) -> ResultTranslation:
        translation = super().translate(params)
        code = translation.vendor_code
        if code not in MOMO_AMBIGUOUS_CODES:
            return translation
        trans_id = params.get(self.transaction_ref_field)
        if self._cfg.trust_sandbox_code_99 and has_transaction_evidence(trans_id):
            self._log("vendor_code_reclassified", level="warning", vendor_code=code, outcome=SUCCESS)
            return ResultTranslation(outcome=CanonicalOutcome.SUCCESS, vendor_code=code, reclassified=True)
        return translation
