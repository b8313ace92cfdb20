"""Builders for vendor-signed callback payloads.

The signatures are computed from the documented field lists so the tests do
not depend on the signer under test to produce them.
"""
import pytest

from infrastructure.external.payments.codec import canonicalize
from infrastructure.external.payments.signing import sign


MOMO_CALLBACK_FIELDS = (
    "amount", "extraData", "message", "orderId", "orderInfo", "orderType",
    "partnerCode", "payType", "requestId", "responseTime", "resultCode", "transId",
)
PAYPAL_CALLBACK_FIELDS = ("amount", "currency_code", "order_id", "reference_id", "status", "update_time")


def make_vnpay_callback(ref="ORD1", amount=100_000_000, response_code="00", status="00",
                        transaction_no="14000001", secret="", **extra):
    params = {
        "vnp_Amount": str(amount),
        "vnp_BankCode": "NCB",
        "vnp_BankTranNo": "VNP14000001",
        "vnp_CardType": "ATM",
        "vnp_OrderInfo": f"Thanh toan don hang {ref}",
        "vnp_PayDate": "20240101120000",
        "vnp_ResponseCode": response_code,
        "vnp_TmnCode": "TESTTMN1",
        "vnp_TransactionNo": transaction_no,
        "vnp_TransactionStatus": status,
        "vnp_TxnRef": ref,
    }
    params.update(extra)
    params["vnp_SecureHashType"] = "HmacSHA512"
    params["vnp_SecureHash"] = sign(canonicalize(params), secret, "sha512")
    return params


def make_momo_callback(ref="ORD1", amount=1_000_000, result_code="0", trans_id="4088878653",
                       secret="", access_key="", **extra):
    params = {
        "partnerCode": "MOMOTEST",
        "orderId": ref,
        "requestId": "MOMOTEST1704110400000",
        "amount": str(amount),
        "orderInfo": f"Thanh toan don hang {ref}",
        "orderType": "momo_wallet",
        "transId": trans_id,
        "resultCode": result_code,
        "message": "Successful.",
        "payType": "qr",
        "responseTime": "1704110460000",
        "extraData": "",
    }
    params.update(extra)
    signed = {name: params.get(name, "") for name in MOMO_CALLBACK_FIELDS}
    signed["accessKey"] = access_key
    params["signature"] = sign(canonicalize(signed), secret, "sha256")
    return params


def make_paypal_callback(ref="ORD1", amount=4167, status="COMPLETED", order_id="5O190127TN364715T",
                         secret="", **extra):
    params = {
        "reference_id": ref,
        "order_id": order_id,
        "status": status,
        "amount": str(amount),
        "currency_code": "USD",
        "update_time": "2024-01-01T12:01:00Z",
    }
    params.update(extra)
    signed = {name: params.get(name, "") for name in PAYPAL_CALLBACK_FIELDS}
    params["signature"] = sign(canonicalize(signed), secret, "sha256")
    return params


@pytest.fixture
def vnpay_callback(payment_cfg):
    secret = payment_cfg.vnpay.hash_secret.get_secret_value()

    def _build(**kwargs):
        kwargs.setdefault("secret", secret)
        return make_vnpay_callback(**kwargs)
    return _build


@pytest.fixture
def momo_callback(payment_cfg):
    secret = payment_cfg.momo.secret_key.get_secret_value()
    access_key = payment_cfg.momo.access_key.get_secret_value()

    def _build(**kwargs):
        kwargs.setdefault("secret", secret)
        kwargs.setdefault("access_key", access_key)
        return make_momo_callback(**kwargs)
    return _build


@pytest.fixture
def paypal_callback(payment_cfg):
    secret = payment_cfg.paypal.relay_secret.get_secret_value()

    def _build(**kwargs):
        kwargs.setdefault("secret", secret)
        return make_paypal_callback(**kwargs)
    return _build
