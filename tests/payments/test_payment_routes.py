from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_payment_service
from application.services.payment_service import PaymentService
from core.config import settings
from infrastructure.external.payments import get_gateway_signer
from main import app


BASE = "/api/v1/payments"


@pytest.fixture
def client(memory_uow_factory, payment_cfg):
    def _service() -> PaymentService:
        return PaymentService(
            uow_factory=memory_uow_factory,
            signer_factory=lambda gateway: get_gateway_signer(gateway, payment_cfg),
            cfg=payment_cfg,
        )

    app.dependency_overrides[get_payment_service] = _service
    # no context manager: the lifespan (config check, table creation) stays out of these tests
    yield TestClient(app)
    app.dependency_overrides.clear()


def _checkout(client, gateway="vnpay", ref="ORD1", amount=1_000_000):
    return client.post(f"{BASE}/{gateway}/checkout", json={"order_reference": ref, "amount_minor_units": amount})


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}
    assert resp.headers["X-Request-ID"]


def test_request_id_is_echoed(client):
    resp = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"


def test_checkout_returns_payment_url(client):
    resp = _checkout(client)
    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == 0
    data = body["data"]
    assert data["order_reference"] == "ORD1"
    assert data["gateway"] == "vnpay"
    assert data["status"] == "awaiting_callback"
    assert parse_qs(urlsplit(data["payment_url"]).query)["vnp_Amount"] == ["100000000"]


def test_checkout_duplicate_is_conflict(client):
    _checkout(client)
    resp = _checkout(client)
    assert resp.status_code == 409
    assert resp.json()["code"] == 20102


@pytest.mark.parametrize("amount", [0, -5])
def test_checkout_non_positive_amount(client, amount):
    resp = _checkout(client, amount=amount)
    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == 10003
    assert body["error"]["field"] == "amount_minor_units"


@pytest.mark.parametrize("amount", [True, "1000", 10.5])
def test_checkout_non_integer_amount(client, amount):
    resp = _checkout(client, amount=amount)
    assert resp.status_code == 422
    assert resp.json()["code"] == 10003


def test_checkout_unknown_gateway(client):
    resp = _checkout(client, gateway="stripe")
    assert resp.status_code == 404
    assert resp.json()["code"] == 20103


def test_vnpay_return_redirects_to_storefront(client, vnpay_callback):
    _checkout(client)
    resp = client.get(f"{BASE}/vnpay/return", params=vnpay_callback(), follow_redirects=False)
    assert resp.status_code == 302
    location = resp.headers["location"]
    assert location.startswith(settings.FRONTEND_RETURN_URL)
    q = parse_qs(urlsplit(location).query)
    assert q == {"status": ["success"], "orderReference": ["ORD1"]}


def test_vnpay_return_with_bad_signature_redirects_failed(client, vnpay_callback):
    _checkout(client)
    resp = client.get(f"{BASE}/vnpay/return", params=vnpay_callback(secret="wrong"), follow_redirects=False)
    assert resp.status_code == 302
    q = parse_qs(urlsplit(resp.headers["location"]).query, keep_blank_values=True)
    # the browser still gets its order reference back, never the reason
    assert q == {"status": ["failed"], "orderReference": ["ORD1"]}


def test_return_without_reference_redirects_with_empty_reference(client):
    resp = client.get(f"{BASE}/vnpay/return", params={"vnp_ResponseCode": "00"}, follow_redirects=False)
    assert resp.status_code == 302
    q = parse_qs(urlsplit(resp.headers["location"]).query, keep_blank_values=True)
    assert q == {"status": ["failed"], "orderReference": [""]}


def test_vnpay_ipn_acknowledgement(client, vnpay_callback):
    _checkout(client)
    resp = client.get(f"{BASE}/vnpay/ipn", params=vnpay_callback())
    assert resp.status_code == 200
    assert resp.json() == {"RspCode": "00", "Message": "Confirm Success"}
    status = client.get(f"{BASE}/intents/ORD1").json()["data"]
    assert status["status"] == "settled"
    assert status["transaction_ref"] == "14000001"


def test_vnpay_ipn_tampered(client, vnpay_callback):
    _checkout(client)
    params = vnpay_callback()
    params["vnp_Amount"] = "1"
    resp = client.get(f"{BASE}/vnpay/ipn", params=params)
    assert resp.json() == {"RspCode": "99", "Message": "Unknown error"}
    assert client.get(f"{BASE}/intents/ORD1").json()["data"]["status"] == "awaiting_callback"


def test_momo_ipn_json_returns_no_content(client, momo_callback):
    _checkout(client, gateway="momo")
    params = momo_callback()
    payload = dict(params, amount=1_000_000, resultCode=0, transId=4088878653, responseTime=1704110460000)
    resp = client.post(f"{BASE}/momo/ipn", json=payload)
    assert resp.status_code == 204
    assert client.get(f"{BASE}/intents/ORD1").json()["data"]["status"] == "settled"


def test_momo_ipn_rejection_is_generic(client, momo_callback):
    _checkout(client, gateway="momo")
    resp = client.post(f"{BASE}/momo/ipn", json=momo_callback(secret="wrong"))
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == 60005
    assert body["error"]["details"] is None


def test_paypal_ipn_form_post(client, paypal_callback):
    _checkout(client, gateway="paypal")
    resp = client.post(f"{BASE}/paypal/ipn", data=paypal_callback())
    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == 0
    assert body["data"]["status"] == "settled"


def test_ipn_for_unknown_order(client, vnpay_callback):
    resp = client.get(f"{BASE}/vnpay/ipn", params=vnpay_callback(ref="MISSING"))
    assert resp.json()["RspCode"] == "99"


def test_intent_not_found(client):
    resp = client.get(f"{BASE}/intents/NOPE")
    assert resp.status_code == 404
    assert resp.json()["code"] == 20101


def test_expire_endpoint(client):
    _checkout(client)
    resp = client.post(f"{BASE}/intents/ORD1/expire")
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "expired"
