import asyncio
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlsplit

import pytest
from pydantic import ValidationError

from application.dtos.payments import CheckoutContext, CheckoutRequest
from application.services.payment_service import AMOUNT_MISMATCH, PaymentService
from domain.common.exceptions import (
    PaymentIntentAlreadyExistsException,
    PaymentIntentNotFoundException,
    PaymentValidationError,
    UnsupportedGatewayError,
)
from domain.payment.entity import CallbackTransport, CanonicalOutcome, PaymentStatus
from infrastructure.external.payments import get_gateway_signer
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


NOW = datetime(2024, 1, 1, 5, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def service(uow_factory, payment_cfg):
    return PaymentService(
        uow_factory=uow_factory,
        signer_factory=lambda gateway: get_gateway_signer(gateway, payment_cfg),
        cfg=payment_cfg,
    )


async def _checkout(service, gateway="vnpay", ref="ORD1", amount=1_000_000):
    return await service.create_payment_url(
        gateway,
        CheckoutRequest(order_reference=ref, amount_minor_units=amount),
        CheckoutContext(client_ip="203.0.113.9", now=NOW),
    )


async def _callbacks(uow_factory, ref="ORD1"):
    async with uow_factory() as uow:
        return await uow.gateway_callbacks.list_by_reference(ref)


# ---- checkout ----

@pytest.mark.asyncio
async def test_checkout_issues_signed_url_and_awaits_callback(service):
    result = await _checkout(service)
    assert result.status == PaymentStatus.AWAITING_CALLBACK
    assert result.gateway == "vnpay"
    q = parse_qs(urlsplit(result.payment_url).query)
    assert q["vnp_Amount"] == ["100000000"]
    assert q["vnp_IpAddr"] == ["203.0.113.9"]
    assert "vnp_SecureHash" in q
    view = await service.get_status("ORD1")
    assert view.status == PaymentStatus.AWAITING_CALLBACK
    assert view.amount_minor_units == 1_000_000
    assert view.version == 2


@pytest.mark.asyncio
async def test_duplicate_checkout_is_refused(service):
    await _checkout(service)
    with pytest.raises(PaymentIntentAlreadyExistsException):
        await _checkout(service)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -1])
async def test_non_positive_amount_is_rejected_before_signing(service, amount):
    with pytest.raises(PaymentValidationError):
        await _checkout(service, amount=amount)
    with pytest.raises(PaymentIntentNotFoundException):
        await service.get_status("ORD1")


@pytest.mark.asyncio
async def test_amount_of_one_is_accepted(service):
    result = await _checkout(service, amount=1)
    assert parse_qs(urlsplit(result.payment_url).query)["vnp_Amount"] == ["100"]


def test_checkout_request_refuses_non_integer_amounts():
    with pytest.raises(ValidationError):
        CheckoutRequest(order_reference="ORD1", amount_minor_units=True)
    with pytest.raises(ValidationError):
        CheckoutRequest(order_reference="ORD1", amount_minor_units="1000")
    with pytest.raises(ValidationError):
        CheckoutRequest(order_reference="   ", amount_minor_units=1000)


@pytest.mark.asyncio
async def test_gateway_limit_failure_rolls_back_intent(service):
    with pytest.raises(PaymentValidationError):
        await _checkout(service, gateway="momo", amount=500)
    with pytest.raises(PaymentIntentNotFoundException):
        await service.get_status("ORD1")


@pytest.mark.asyncio
async def test_unknown_gateway(service):
    with pytest.raises(UnsupportedGatewayError):
        await _checkout(service, gateway="stripe")


# ---- callbacks ----

@pytest.mark.asyncio
async def test_vnpay_happy_path_settles(service, uow_factory, vnpay_callback):
    await _checkout(service)
    result = await service.handle_callback("vnpay", vnpay_callback(), CallbackTransport.IPN)
    assert result.acknowledged and result.applied
    assert result.status == PaymentStatus.SETTLED
    assert result.redirect_status == "success"
    view = await service.get_status("ORD1")
    assert view.status == PaymentStatus.SETTLED
    assert view.transaction_ref == "14000001"
    records = await _callbacks(uow_factory)
    assert len(records) == 1
    assert records[0].signature_valid and records[0].applied
    assert records[0].idempotency_key == "ORD1:14000001"


@pytest.mark.asyncio
async def test_tampered_callback_leaves_order_awaiting(service, uow_factory, vnpay_callback):
    await _checkout(service)
    params = vnpay_callback()
    params["vnp_ResponseCode"] = "24"
    result = await service.handle_callback("vnpay", params, CallbackTransport.IPN)
    assert not result.acknowledged
    assert result.order_reference is None and result.status is None
    assert result.redirect_status == "failed"
    assert (await service.get_status("ORD1")).status == PaymentStatus.AWAITING_CALLBACK
    records = await _callbacks(uow_factory)
    assert len(records) == 1
    assert not records[0].signature_valid and not records[0].applied


@pytest.mark.asyncio
async def test_amount_mismatch_rejects_order(service, vnpay_callback):
    await _checkout(service)
    result = await service.handle_callback("vnpay", vnpay_callback(amount=100), CallbackTransport.IPN)
    assert result.acknowledged
    assert result.outcome == CanonicalOutcome.FAILED
    view = await service.get_status("ORD1")
    assert view.status == PaymentStatus.REJECTED
    assert view.failure_reason == AMOUNT_MISMATCH


@pytest.mark.asyncio
async def test_duplicate_callback_is_flagged_and_stale(service, uow_factory, vnpay_callback):
    await _checkout(service)
    params = vnpay_callback()
    first = await service.handle_callback("vnpay", params, CallbackTransport.RETURN)
    second = await service.handle_callback("vnpay", params, CallbackTransport.IPN)
    assert first.applied and not first.duplicate
    assert second.acknowledged and second.duplicate and second.stale and not second.applied
    assert second.status == PaymentStatus.SETTLED
    assert [r.duplicate for r in await _callbacks(uow_factory)] == [False, True]


@pytest.mark.asyncio
async def test_late_failure_after_settlement_is_stale(service, vnpay_callback):
    await _checkout(service)
    await service.handle_callback("vnpay", vnpay_callback(), CallbackTransport.IPN)
    late = await service.handle_callback(
        "vnpay", vnpay_callback(response_code="99", transaction_no="0"), CallbackTransport.IPN
    )
    assert late.acknowledged and late.stale
    assert (await service.get_status("ORD1")).status == PaymentStatus.SETTLED


@pytest.mark.asyncio
async def test_callback_for_unknown_order_is_rejected(service, uow_factory, vnpay_callback):
    result = await service.handle_callback("vnpay", vnpay_callback(ref="MISSING"), CallbackTransport.IPN)
    assert not result.acknowledged
    assert len(await _callbacks(uow_factory, "MISSING")) == 1


@pytest.mark.asyncio
async def test_momo_code_99_without_transaction_is_rejected(service, momo_callback):
    await _checkout(service, gateway="momo")
    result = await service.handle_callback(
        "momo", momo_callback(result_code="99", trans_id="0"), CallbackTransport.IPN
    )
    assert result.acknowledged
    assert result.outcome == CanonicalOutcome.FAILED
    view = await service.get_status("ORD1")
    assert view.status == PaymentStatus.REJECTED
    assert view.failure_reason == "vendor_code:99"


@pytest.mark.asyncio
async def test_momo_code_99_with_transaction_settles(service, uow_factory, momo_callback):
    await _checkout(service, gateway="momo")
    result = await service.handle_callback("momo", momo_callback(result_code="99"), CallbackTransport.IPN)
    assert result.status == PaymentStatus.SETTLED
    records = await _callbacks(uow_factory)
    # the audit trail shows the success came from the code 99 heuristic
    assert [r.reclassified for r in records] == [True]


@pytest.mark.asyncio
async def test_plain_success_is_not_marked_reclassified(service, uow_factory, momo_callback):
    await _checkout(service, gateway="momo")
    await service.handle_callback("momo", momo_callback(), CallbackTransport.IPN)
    assert [r.reclassified for r in await _callbacks(uow_factory)] == [False]


@pytest.mark.asyncio
async def test_callback_from_other_gateway_is_refused(service, uow_factory, momo_callback):
    await _checkout(service, gateway="vnpay")
    result = await service.handle_callback(
        "momo", momo_callback(ref="ORD1", amount=1_000_000), CallbackTransport.IPN
    )
    assert not result.acknowledged
    assert result.order_reference is None
    view = await service.get_status("ORD1")
    assert view.status == PaymentStatus.AWAITING_CALLBACK
    assert view.transaction_ref is None
    records = await _callbacks(uow_factory)
    assert len(records) == 1
    assert records[0].gateway == "momo"
    assert records[0].signature_valid and not records[0].applied


def test_claimed_order_reference(service, vnpay_callback):
    assert service.claimed_order_reference("vnpay", vnpay_callback(secret="wrong")) == "ORD1"
    assert service.claimed_order_reference("vnpay", {"vnp_TxnRef": {"nested": "x"}}) is None
    assert service.claimed_order_reference("vnpay", {}) is None


@pytest.mark.asyncio
async def test_momo_pending_then_paid(service, momo_callback):
    await _checkout(service, gateway="momo")
    pending = await service.handle_callback(
        "momo", momo_callback(result_code="7000", trans_id=""), CallbackTransport.IPN
    )
    assert pending.status == PaymentStatus.PENDING_CONFIRMATION
    assert pending.redirect_status == "pending"
    paid = await service.handle_callback("momo", momo_callback(), CallbackTransport.IPN)
    assert paid.status == PaymentStatus.SETTLED


@pytest.mark.asyncio
async def test_paypal_completed_settles(service, paypal_callback):
    await _checkout(service, gateway="paypal")
    result = await service.handle_callback("paypal", paypal_callback(), CallbackTransport.RETURN)
    assert result.status == PaymentStatus.SETTLED


@pytest.mark.asyncio
async def test_paypal_cancelled_rejects(service, paypal_callback):
    await _checkout(service, gateway="paypal")
    result = await service.handle_callback("paypal", paypal_callback(status="CANCELLED"), CallbackTransport.RETURN)
    assert result.status == PaymentStatus.REJECTED
    assert result.redirect_status == "failed"


@pytest.mark.asyncio
async def test_malformed_payload_is_rejected(service):
    result = await service.handle_callback("vnpay", {"vnp_TxnRef": {"nested": "x"}}, CallbackTransport.IPN)
    assert not result.acknowledged


class _SlowUnitOfWork(SQLAlchemyUnitOfWork):
    async def __aenter__(self):
        await asyncio.sleep(1)
        return await super().__aenter__()


@pytest.mark.asyncio
async def test_callback_timeout_fails_closed(service, session_factory, payment_cfg, settings_factory, vnpay_callback):
    await _checkout(service)
    cfg = settings_factory(callback_timeout_seconds=0.05)
    slow = PaymentService(
        uow_factory=lambda: _SlowUnitOfWork(session_factory=session_factory),
        signer_factory=lambda gateway: get_gateway_signer(gateway, cfg),
        cfg=cfg,
    )
    result = await slow.handle_callback("vnpay", vnpay_callback(), CallbackTransport.IPN)
    assert not result.acknowledged
    assert (await service.get_status("ORD1")).status == PaymentStatus.AWAITING_CALLBACK


# ---- expiry ----

@pytest.mark.asyncio
async def test_expire_then_late_success_is_stale(service, vnpay_callback):
    await _checkout(service)
    view = await service.expire_intent("ORD1")
    assert view.status == PaymentStatus.EXPIRED
    result = await service.handle_callback("vnpay", vnpay_callback(), CallbackTransport.IPN)
    assert result.acknowledged and result.stale
    assert (await service.get_status("ORD1")).status == PaymentStatus.EXPIRED


@pytest.mark.asyncio
async def test_expire_unknown_order(service):
    with pytest.raises(PaymentIntentNotFoundException):
        await service.expire_intent("NOPE")
