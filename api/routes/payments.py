"""
Payments API routes.

Checkout, browser return, server IPN and status endpoints. Keep this thin:
signing and state transitions live in the application service.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.responses import Response as StarletteResponse

from api.dependencies import get_payment_service
from application.dtos.payments import (
    CallbackResult,
    CheckoutContext,
    CheckoutRequest,
    CheckoutResult,
    PaymentIntentView,
)
from application.services.payment_service import PaymentService
from core.config import settings
from core.i18n import get_locale, t
from core.response import Response as ApiResponse, error_response, success_response
from domain.payment.entity import CallbackTransport, Gateway
from infrastructure.external.payments.base import with_query
from shared.codes.payment_codes import PaymentCode


router = APIRouter(prefix="/payments", tags=["Payments"])

VNPAY_ACK_SUCCESS = {"RspCode": "00", "Message": "Confirm Success"}
VNPAY_ACK_FAILURE = {"RspCode": "99", "Message": "Unknown error"}


async def _collect_callback_params(request: Request) -> dict[str, Any]:
    """Vendor payloads arrive as query string, form body or JSON body."""
    params: dict[str, Any] = dict(request.query_params)
    if request.method != "POST":
        return params
    ct = (request.headers.get("content-type") or "").lower()
    if "application/json" in ct:
        try:
            body = await request.json()
        except ValueError:
            # 非法 JSON 交给签名校验统一拒绝
            body = None
        if isinstance(body, dict):
            params.update(body)
    elif "application/x-www-form-urlencoded" in ct or "multipart/form-data" in ct:
        form = await request.form()
        params.update({k: v for k, v in form.items()})
    return params


def _generic_rejection() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_response(
            code=PaymentCode.CALLBACK_REJECTED,
            message=t("payments.callback.rejected", default="Callback rejected"),
        ).model_dump(mode="json"),
    )


def _ipn_acknowledgement(gateway: str, result: CallbackResult) -> StarletteResponse:
    if gateway == Gateway.VNPAY.value:
        # VNPay retries on anything but 200 with its own body
        return JSONResponse(content=VNPAY_ACK_SUCCESS if result.acknowledged else VNPAY_ACK_FAILURE)
    if not result.acknowledged:
        return _generic_rejection()
    if gateway == Gateway.MOMO.value:
        return StarletteResponse(status_code=status.HTTP_204_NO_CONTENT)
    return JSONResponse(
        content=success_response(
            data=result.model_dump(mode="json"),
            message=t("payments.callback.accepted", default="Callback accepted"),
        ).model_dump(mode="json")
    )


# 固定前缀的路由先注册，避免被 /{gateway}/... 匹配
@router.get("/intents/{order_reference}", summary="Query payment", response_model=ApiResponse[PaymentIntentView])
async def get_intent(order_reference: str, service: PaymentService = Depends(get_payment_service)):
    view = await service.get_status(order_reference)
    return success_response(data=view, message=t("payments.intent.status", default="Payment status"))


@router.post("/intents/{order_reference}/expire", summary="Expire payment", response_model=ApiResponse[PaymentIntentView])
async def expire_intent(order_reference: str, service: PaymentService = Depends(get_payment_service)):
    view = await service.expire_intent(order_reference)
    return success_response(data=view, message=t("payments.intent.expired", default="Payment expired"))


@router.post("/{gateway}/checkout", summary="Create payment URL", response_model=ApiResponse[CheckoutResult])
async def checkout(
    gateway: str,
    payload: CheckoutRequest,
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    """
    创建支付意图并返回网关跳转地址

    - **order_reference**: 商户订单号（唯一）
    - **amount_minor_units**: 金额（最小货币单位，正整数）
    """
    ctx = CheckoutContext(
        client_ip=getattr(request.state, "client_ip", None) or (request.client.host if request.client else None),
        locale=payload.locale or get_locale(),
    )
    result = await service.create_payment_url(gateway, payload, ctx)
    return success_response(data=result, message=t("payments.checkout.created", default="Payment URL created"))


@router.get("/{gateway}/return", summary="Browser return from gateway")
async def browser_return(
    gateway: str,
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    params = await _collect_callback_params(request)
    result = await service.handle_callback(gateway, params, CallbackTransport.RETURN)
    # 被拒绝时回显浏览器带来的订单号（未经校验），不附带原因
    order_reference = result.order_reference or service.claimed_order_reference(gateway, params) or ""
    target = with_query(
        settings.FRONTEND_RETURN_URL,
        status=result.redirect_status,
        orderReference=order_reference,
    )
    return RedirectResponse(url=target, status_code=status.HTTP_302_FOUND)


@router.api_route("/{gateway}/ipn", methods=["GET", "POST"], summary="Server-to-server payment notification")
async def ipn(
    gateway: str,
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    params = await _collect_callback_params(request)
    result = await service.handle_callback(gateway, params, CallbackTransport.IPN)
    return _ipn_acknowledgement(gateway.lower(), result)
