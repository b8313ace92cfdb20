import pytest
from pydantic import SecretStr

from core.exceptions import ConfigurationError, business_code_to_http_status
from core.settings import PaymentSettings, validate_gateway_settings
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


def test_valid_configuration_passes(payment_cfg):
    validate_gateway_settings(payment_cfg)


def test_missing_secret_is_reported_without_value(settings_factory, payment_cfg):
    vnpay = payment_cfg.vnpay.model_copy(update={"hash_secret": SecretStr("")})
    momo = payment_cfg.momo.model_copy(update={"partner_code": "", "ipn_url": "not-a-url"})
    cfg = settings_factory(vnpay=vnpay, momo=momo)
    with pytest.raises(ConfigurationError) as exc_info:
        validate_gateway_settings(cfg)
    problems = exc_info.value.problems
    assert "vnpay.hash_secret is empty" in problems
    assert "momo.partner_code is empty" in problems
    assert any(p.startswith("momo.ipn_url") for p in problems)
    assert "momo-test-secret" not in str(exc_info.value)
    assert exc_info.value.code == BusinessCode.CONFIGURATION_ERROR


def test_disabled_gateway_is_not_checked(settings_factory, payment_cfg):
    paypal = payment_cfg.paypal.model_copy(update={"relay_secret": SecretStr("")})
    validate_gateway_settings(settings_factory(paypal=paypal, enabled_gateways=["vnpay", "momo"]))


def test_unknown_enabled_gateway(settings_factory):
    with pytest.raises(ConfigurationError):
        validate_gateway_settings(settings_factory(enabled_gateways=["vnpay", "zalopay"]))


def test_inconsistent_limits(settings_factory, payment_cfg):
    momo = payment_cfg.momo.model_copy(update={"min_amount": 10_000, "max_amount": 1_000})
    with pytest.raises(ConfigurationError):
        validate_gateway_settings(settings_factory(momo=momo))
    with pytest.raises(ConfigurationError):
        validate_gateway_settings(settings_factory(callback_timeout_seconds=0))


def test_settings_read_nested_env(monkeypatch):
    monkeypatch.setenv("VNPAY__TMN_CODE", "ENVTMN")
    monkeypatch.setenv("VNPAY__HASH_SECRET", "env-secret")
    monkeypatch.setenv("MOMO__MIN_AMOUNT", "2000")
    monkeypatch.setenv("PAYMENT__CURRENCY", "VND")
    monkeypatch.setenv("PAYMENT__CALLBACK_TIMEOUT_SECONDS", "3")
    cfg = PaymentSettings()
    assert cfg.vnpay.tmn_code == "ENVTMN"
    assert cfg.vnpay.hash_secret.get_secret_value() == "env-secret"
    assert cfg.momo.min_amount == 2000
    assert cfg.callback_timeout_seconds == 3
    # secrets stay masked in reprs
    assert "env-secret" not in repr(cfg)


@pytest.mark.parametrize("code,status", [
    (PaymentCode.INTENT_NOT_FOUND, 404),
    (PaymentCode.GATEWAY_NOT_SUPPORTED, 404),
    (PaymentCode.INTENT_ALREADY_EXISTS, 409),
    (PaymentCode.TRANSITION_CONFLICT, 409),
    (PaymentCode.GATEWAY_MISMATCH, 400),
    (BusinessCode.PARAM_VALIDATION_ERROR, 422),
    (BusinessCode.CONFIGURATION_ERROR, 500),
    (12345, 400),
])
def test_business_code_to_http_status(code, status):
    assert business_code_to_http_status(code) == status
