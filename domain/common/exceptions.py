"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key
        self.format_params = format_params
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
        message_key: str | None = None,
        format_params: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
            message_key=message_key or "validation.domain",
            format_params=format_params,
        )


class PaymentValidationError(DomainValidationException):
    """支付参数校验失败（金额、订单号、描述等），在任何签名之前抛出"""

    def __init__(self, message: str, *, field: str | None = None, details: dict | None = None):
        super().__init__(
            message,
            field=field,
            details=details,
            message_key="payment.validation.failed",
            format_params={"reason": message},
        )
        self.error_type = "PaymentValidationError"


class PaymentIntentNotFoundException(BusinessException):
    def __init__(self, order_reference: str):
        super().__init__(
            code=PaymentCode.INTENT_NOT_FOUND,
            message=f"Payment intent not found: {order_reference}",
            error_type="PaymentIntentNotFound",
            details={"order_reference": order_reference},
            message_key="payment.intent.not_found",
            format_params={"order_reference": order_reference},
        )


class PaymentIntentAlreadyExistsException(BusinessException):
    def __init__(self, order_reference: str):
        super().__init__(
            code=PaymentCode.INTENT_ALREADY_EXISTS,
            message=f"Payment intent already exists: {order_reference}",
            error_type="PaymentIntentAlreadyExists",
            details={"order_reference": order_reference},
            field="order_reference",
            message_key="payment.intent.exists",
            format_params={"order_reference": order_reference},
        )


class PaymentTransitionConflictException(BusinessException):
    """并发回调反复抢占失败，超过重试次数"""

    def __init__(self, order_reference: str, attempts: int):
        super().__init__(
            code=PaymentCode.TRANSITION_CONFLICT,
            message=f"Payment state kept changing concurrently: {order_reference}",
            error_type="PaymentTransitionConflict",
            details={"order_reference": order_reference, "attempts": attempts},
            message_key="payment.transition.conflict",
        )


class UnsupportedGatewayError(BusinessException):
    def __init__(self, gateway: str):
        super().__init__(
            code=PaymentCode.GATEWAY_NOT_SUPPORTED,
            message=f"Unsupported payment gateway: {gateway}",
            error_type="UnsupportedGateway",
            details={"gateway": gateway},
            field="gateway",
            message_key="payment.gateway.unsupported",
            format_params={"gateway": gateway},
        )


class PaymentSignatureError(BusinessException):
    """回调签名校验失败；原因只写日志，不返回给调用方"""

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="PaymentSignatureError",
            details=full_details,
            message_key="payment.callback.rejected",
        )


class PaymentCallbackTimeoutError(BusinessException):
    def __init__(self, *, provider: str, timeout: float):
        super().__init__(
            code=PaymentCode.TIMEOUT,
            message="Callback processing timed out",
            error_type="PaymentCallbackTimeout",
            details={"provider": provider, "timeout": timeout},
            message_key="payment.callback.rejected",
        )


class PaymentGatewayMismatchError(BusinessException):
    """回调网关与订单创建时的网关不一致"""

    def __init__(self, order_reference: str, *, provider: str, expected: str):
        super().__init__(
            code=PaymentCode.GATEWAY_MISMATCH,
            message="Callback gateway does not own the payment intent",
            error_type="PaymentGatewayMismatch",
            details={"order_reference": order_reference, "provider": provider, "expected": expected},
            message_key="payment.callback.rejected",
        )
