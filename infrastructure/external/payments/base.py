"""
Base gateway signer implementing shared concerns: validation, canonical
signing, callback verification, result-code translation and logging.

Concrete gateways subclass and declare their field names, hash algorithm,
amount scaling and result table, overriding only what differs.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from core.logging_config import get_logger
from application.dtos.payments import CheckoutContext, ResultTranslation
from application.ports.payment_gateway import GatewaySigner
from domain.common.exceptions import PaymentValidationError
from domain.payment.entity import (
    CallbackTransport,
    CanonicalOutcome,
    Gateway,
    GatewayCallback,
    PaymentIntent,
    validate_amount_minor_units,
    validate_order_reference,
)
from infrastructure.external.payments.codec import canonicalize, encode_query, flatten_params
from infrastructure.external.payments.signing import sign, verify
from shared.codes.payment_codes import FAILED, VENDOR_RESULT_TABLES


logger = get_logger(__name__)

# Placeholders vendors send instead of a real transaction id.
_EMPTY_TRANSACTION_REFS = frozenset({"", "0", "N/A", "NA", "null", "None"})


def normalize_client_ip(ip: Optional[str]) -> str:
    """Best-effort IPv4 for gateways that reject IPv6 loopback forms."""
    if not ip:
        return "127.0.0.1"
    ip = ip.split(",")[0].strip()
    if ip in ("::1", "::ffff:127.0.0.1"):
        return "127.0.0.1"
    if ip.startswith("::ffff:"):
        return ip[len("::ffff:"):]
    return ip or "127.0.0.1"


def default_order_info(order_reference: str) -> str:
    return f"Thanh toan don hang {order_reference}"


def with_query(url: str, **params: str) -> str:
    """Append params to ``url`` keeping any query it already has."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class BaseGatewaySigner(GatewaySigner):
    gateway: str = "base"
    hash_algorithm: str = "sha256"
    scaling_factor: int = 1
    signature_field: str = "signature"
    # Fields dropped from callbacks before canonicalisation
    signature_fields: frozenset[str] = frozenset({"signature"})

    # Callback field names
    order_reference_field: str = ""
    transaction_ref_field: str = ""
    result_code_field: str = ""
    amount_field: str = ""

    def __init__(self, *, secret: str, payment_url: str, currency: str = "VND") -> None:
        self._secret = secret
        self._payment_url = payment_url
        self.currency = currency

    def __repr__(self) -> str:
        return f"<{type(self).__name__} gateway={self.gateway}>"

    @property
    def result_table(self) -> dict[str, str]:
        return VENDOR_RESULT_TABLES.get(self.gateway, {})

    # Outbound
    def build_payment_params(self, intent: PaymentIntent, ctx: CheckoutContext) -> dict[str, str]:
        raise NotImplementedError

    def signing_params(self, params: Mapping[str, str]) -> dict[str, str]:
        return dict(params)

    def scale_amount(self, amount_minor_units: int) -> int:
        return validate_amount_minor_units(amount_minor_units) * self.scaling_factor

    def validate_intent(self, intent: PaymentIntent) -> None:
        """Re-check the inputs before anything gets scaled or signed."""
        validate_order_reference(intent.order_reference)
        validate_amount_minor_units(intent.amount_minor_units)
        if Gateway(intent.gateway).value != self.gateway:
            raise PaymentValidationError(
                f"Intent belongs to gateway '{intent.gateway}', not '{self.gateway}'",
                field="gateway",
            )

    def build_payment_url(self, intent: PaymentIntent, ctx: CheckoutContext) -> str:
        self.validate_intent(intent)
        params = self.build_payment_params(intent, ctx)
        canonical = canonicalize(self.signing_params(params))
        params[self.signature_field] = sign(canonical, self._secret, self.hash_algorithm)
        self._log(
            "payment_url_built",
            order_reference=intent.order_reference,
            amount_minor_units=intent.amount_minor_units,
        )
        return f"{self._payment_url}?{encode_query(params)}"

    # Inbound
    def parse_callback(self, raw: Mapping[str, Any]) -> dict[str, str]:
        return flatten_params(raw)

    def callback_signing_params(self, params: Mapping[str, str]) -> dict[str, str]:
        """Fields covered by the callback signature (everything but the signature by default)."""
        return {k: v for k, v in params.items() if k not in self.signature_fields}

    def verify_callback(self, raw: Mapping[str, Any], transport: CallbackTransport) -> GatewayCallback:
        params = self.parse_callback(raw)
        supplied = params.get(self.signature_field, "")
        canonical = canonicalize(self.callback_signing_params(params), exclude=self.signature_fields)
        computed = sign(canonical, self._secret, self.hash_algorithm)
        valid = verify(canonical, self._secret, supplied, self.hash_algorithm)

        translation = self.translate(params)
        order_reference = params.get(self.order_reference_field) or None
        callback = GatewayCallback(
            gateway=Gateway(self.gateway),
            transport=CallbackTransport(transport),
            raw_params=params,
            signature_supplied=supplied,
            signature_computed=computed,
            signature_valid=valid,
            vendor_result_code=translation.vendor_code,
            canonical_outcome=translation.outcome,
            order_reference=order_reference,
            transaction_ref=self.extract_transaction_ref(params),
            vendor_amount=self.extract_amount(params),
            unknown_code=translation.unknown_code,
            reclassified=translation.reclassified,
            received_at=datetime.now(timezone.utc),
        )
        if not valid:
            self._log(
                "callback_signature_invalid",
                level="warning",
                order_reference=order_reference,
                transport=callback.transport.value,
                signed=bool(supplied),
            )
        return callback

    def extract_transaction_ref(self, params: Mapping[str, str]) -> Optional[str]:
        value = (params.get(self.transaction_ref_field) or "").strip()
        if value in _EMPTY_TRANSACTION_REFS:
            return None
        return value

    def extract_amount(self, params: Mapping[str, str]) -> Optional[int]:
        value = (params.get(self.amount_field) or "").strip()
        if not value.isdigit():
            return None
        return int(value)

    # Translation
    def result_code(self, params: Mapping[str, str]) -> Optional[str]:
        value = params.get(self.result_code_field)
        return value.strip() if value is not None else None

    def translate(self, params: Mapping[str, str]) -> ResultTranslation:
        code = self.result_code(params)
        mapped = self.result_table.get(code) if code is not None else None
        if mapped is None:
            self._log("vendor_code_unknown", level="warning", vendor_code=code)
            return ResultTranslation(outcome=CanonicalOutcome.FAILED, vendor_code=code, unknown_code=True)
        return ResultTranslation(outcome=CanonicalOutcome(mapped), vendor_code=code)

    def _failed(self, code: Optional[str]) -> ResultTranslation:
        return ResultTranslation(outcome=CanonicalOutcome(FAILED), vendor_code=code)

    def _log(self, event: str, *, level: str = "info", **kwargs) -> None:
        getattr(logger, level)(
            event,
            provider=self.gateway,
            **kwargs,
        )
