"""
Factory for payment gateway signers.
"""
from __future__ import annotations

from typing import Optional

from core.settings import PaymentSettings, payment_settings
from application.ports.payment_gateway import GatewaySigner
from domain.common.exceptions import UnsupportedGatewayError


def get_gateway_signer(gateway: str, cfg: Optional[PaymentSettings] = None) -> GatewaySigner:
    cfg = cfg or payment_settings
    name = (gateway or "").lower()
    if name not in {g.lower() for g in cfg.enabled_gateways}:
        raise UnsupportedGatewayError(name)
    if name == "vnpay":
        from .vnpay_client import VnpayClient
        return VnpayClient(cfg.vnpay, currency=cfg.currency)
    if name == "momo":
        from .momo_client import MomoClient
        return MomoClient(cfg.momo, currency=cfg.currency)
    if name == "paypal":
        from .paypal_client import PaypalClient
        return PaypalClient(cfg.paypal, currency=cfg.currency)
    raise UnsupportedGatewayError(name)
