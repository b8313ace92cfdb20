"""
VNPay adapter (bank gateway, API version 2.1.0).

Amounts go out as minor units x 100. The raw canonical string is signed with
HMAC-SHA512 and carried in ``vnp_SecureHash``. Success requires both
``vnp_ResponseCode`` and ``vnp_TransactionStatus`` to be ``00``.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional
from zoneinfo import ZoneInfo

from application.dtos.payments import CheckoutContext, ResultTranslation
from core.settings import VnpaySettings
from domain.payment.entity import CanonicalOutcome, PaymentIntent
from infrastructure.external.payments.base import (
    BaseGatewaySigner,
    default_order_info,
    normalize_client_ip,
)
from shared.codes.payment_codes import VNPAY_TRANSACTION_STATUS


VNPAY_DATE_FORMAT = "%Y%m%d%H%M%S"


class VnpayClient(BaseGatewaySigner):
    gateway = "vnpay"
    hash_algorithm = "sha512"
    scaling_factor = 100
    signature_field = "vnp_SecureHash"
    signature_fields = frozenset({"vnp_SecureHash", "vnp_SecureHashType"})

    order_reference_field = "vnp_TxnRef"
    transaction_ref_field = "vnp_TransactionNo"
    result_code_field = "vnp_ResponseCode"
    amount_field = "vnp_Amount"

    def __init__(self, cfg: VnpaySettings, *, currency: str = "VND") -> None:
        super().__init__(
            secret=cfg.hash_secret.get_secret_value(),
            payment_url=cfg.payment_url,
            currency=currency,
        )
        self._cfg = cfg
        self._tz = ZoneInfo(cfg.timezone)

    @staticmethod
    def locale_code(locale: Optional[str]) -> str:
        return "vn" if (locale or "vi").lower().startswith("vi") else "en"

    def build_payment_params(self, intent: PaymentIntent, ctx: CheckoutContext) -> dict[str, str]:
        now = (ctx.now or datetime.now(timezone.utc)).astimezone(self._tz)
        expire = now + timedelta(minutes=self._cfg.expire_minutes)
        return {
            "vnp_Version": self._cfg.version,
            "vnp_Command": "pay",
            "vnp_TmnCode": self._cfg.tmn_code,
            "vnp_Locale": self.locale_code(ctx.locale),
            "vnp_CurrCode": self.currency,
            "vnp_TxnRef": intent.order_reference,
            "vnp_OrderInfo": intent.description or default_order_info(intent.order_reference),
            "vnp_OrderType": self._cfg.order_type,
            "vnp_Amount": str(self.scale_amount(intent.amount_minor_units)),
            "vnp_ReturnUrl": self._cfg.return_url,
            "vnp_IpAddr": normalize_client_ip(ctx.client_ip),
            "vnp_CreateDate": now.strftime(VNPAY_DATE_FORMAT),
            "vnp_ExpireDate": expire.strftime(VNPAY_DATE_FORMAT),
        }

    def translate(self, params: Mapping[str, str]) -> ResultTranslation:
        translation = super().translate(params)
        if translation.unknown_code or translation.outcome != CanonicalOutcome.SUCCESS:
            return translation
        # "00" only means the request went through; the transaction status decides.
        status = (params.get("vnp_TransactionStatus") or "").strip()
        mapped = VNPAY_TRANSACTION_STATUS.get(status)
        if mapped is None:
            return self._failed(translation.vendor_code)
        return ResultTranslation(outcome=CanonicalOutcome(mapped), vendor_code=translation.vendor_code)
