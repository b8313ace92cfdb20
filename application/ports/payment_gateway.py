"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements one signer
per gateway. Signers are pure: they build signed redirect URLs and verify
callbacks, they never talk to the network.
"""
from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from application.dtos.payments import CheckoutContext, ResultTranslation
from domain.payment.entity import CallbackTransport, GatewayCallback, PaymentIntent


@runtime_checkable
class GatewaySigner(Protocol):
    """Unified strategy for redirect-style payment gateways.

    ``scaling_factor`` converts minor currency units to what the gateway
    expects on the wire (VNPay wants amount x 100).
    """

    gateway: str
    hash_algorithm: str
    scaling_factor: int
    signature_field: str
    order_reference_field: str

    def build_payment_params(self, intent: PaymentIntent, ctx: CheckoutContext) -> dict[str, str]: ...

    def signing_params(self, params: Mapping[str, str]) -> dict[str, str]: ...

    def build_payment_url(self, intent: PaymentIntent, ctx: CheckoutContext) -> str: ...

    def scale_amount(self, amount_minor_units: int) -> int: ...

    def parse_callback(self, raw: Mapping[str, Any]) -> dict[str, str]: ...

    def verify_callback(self, raw: Mapping[str, Any], transport: CallbackTransport) -> GatewayCallback: ...

    def translate(self, params: Mapping[str, str]) -> ResultTranslation: ...
