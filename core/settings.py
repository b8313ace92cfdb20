"""
Payment gateway settings using pydantic-settings v2 with nested env keys.

Secrets are held as ``SecretStr`` so they never show up in reprs or logs.
Example env keys: ``VNPAY__TMN_CODE``, ``VNPAY__HASH_SECRET``,
``MOMO__SECRET_KEY``, ``PAYPAL__RELAY_SECRET``, ``PAYMENT__CURRENCY``.
"""
from __future__ import annotations

from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, SecretStr

from core.exceptions import ConfigurationError


class VnpaySettings(BaseModel):
    tmn_code: str = ""
    hash_secret: SecretStr = SecretStr("")
    payment_url: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    return_url: str = "http://localhost:8000/api/v1/payments/vnpay/return"
    version: str = "2.1.0"
    order_type: str = "other"
    expire_minutes: int = 15
    timezone: str = "Asia/Ho_Chi_Minh"


class MomoSettings(BaseModel):
    partner_code: str = ""
    access_key: SecretStr = SecretStr("")
    secret_key: SecretStr = SecretStr("")
    payment_url: str = "https://test-payment.momo.vn/v2/gateway/pay"
    redirect_url: str = "http://localhost:8000/api/v1/payments/momo/return"
    ipn_url: str = "http://localhost:8000/api/v1/payments/momo/ipn"
    request_type: str = "payWithMethod"
    lang: str = "vi"
    min_amount: int = 1_000
    max_amount: int = 50_000_000
    # Sandbox reports resultCode 99 for payments that did go through.
    trust_sandbox_code_99: bool = True


class PaypalSettings(BaseModel):
    merchant_id: str = ""
    relay_secret: SecretStr = SecretStr("")
    checkout_url: str = "http://localhost:8000/paypal/relay/checkout"
    return_url: str = "http://localhost:8000/api/v1/payments/paypal/return"
    cancel_url: str = "http://localhost:8000/api/v1/payments/paypal/return"
    brand_name: str = "Storefront"
    # VND per USD
    exchange_rate: int = 24_000
    min_amount_cents: int = 1
    max_amount_cents: int = 1_000_000


class PaymentSettings(BaseSettings):
    currency: str = Field(default="VND", validation_alias="PAYMENT__CURRENCY")
    enabled_gateways: list[str] = Field(
        default_factory=lambda: ["vnpay", "momo", "paypal"],
        validation_alias="PAYMENT__ENABLED_GATEWAYS",
    )
    callback_timeout_seconds: float = Field(default=10.0, validation_alias="PAYMENT__CALLBACK_TIMEOUT_SECONDS")
    transition_max_attempts: int = Field(default=3, validation_alias="PAYMENT__TRANSITION_MAX_ATTEMPTS")

    vnpay: VnpaySettings = Field(default_factory=VnpaySettings)
    momo: MomoSettings = Field(default_factory=MomoSettings)
    paypal: PaypalSettings = Field(default_factory=PaypalSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
        populate_by_name=True,
    )


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value or "")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _gateway_problems(name: str, cfg: BaseModel) -> list[str]:
    problems: list[str] = []
    for field_name, value in cfg:
        if isinstance(value, SecretStr):
            if not value.get_secret_value().strip():
                problems.append(f"{name}.{field_name} is empty")
        elif field_name.endswith("_url"):
            if not _is_http_url(value):
                problems.append(f"{name}.{field_name} is not an absolute http(s) URL")
        elif field_name in ("tmn_code", "partner_code", "merchant_id"):
            if not str(value).strip():
                problems.append(f"{name}.{field_name} is empty")
    return problems


def validate_gateway_settings(cfg: PaymentSettings) -> None:
    """Fail fast when an enabled gateway is missing credentials or endpoints.

    Only the field names are reported, never the values.
    """
    problems: list[str] = []
    for name in cfg.enabled_gateways:
        gateway_cfg = getattr(cfg, name, None)
        if not isinstance(gateway_cfg, BaseModel):
            problems.append(f"unknown gateway '{name}' in enabled_gateways")
            continue
        problems.extend(_gateway_problems(name, gateway_cfg))
    if cfg.momo.min_amount <= 0 or cfg.momo.max_amount < cfg.momo.min_amount:
        problems.append("momo amount limits are inconsistent")
    if cfg.paypal.exchange_rate <= 0:
        problems.append("paypal.exchange_rate must be positive")
    if cfg.callback_timeout_seconds <= 0:
        problems.append("callback_timeout_seconds must be positive")
    if problems:
        raise ConfigurationError(problems)


payment_settings = PaymentSettings()
