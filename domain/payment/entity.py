"""
支付领域实体 - 支付意图聚合根与网关回调记录
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import PaymentValidationError


class Gateway(str, Enum):
    """支持的支付网关"""
    VNPAY = "vnpay"    # 银行网关
    MOMO = "momo"      # 钱包网关
    PAYPAL = "paypal"  # 钱包网关（商户签名中继）


class PaymentStatus(str, Enum):
    """支付意图状态"""
    INITIATED = "initiated"                        # 已创建，尚未签发跳转链接
    AWAITING_CALLBACK = "awaiting_callback"        # 已签发链接，等待回调
    PENDING_CONFIRMATION = "pending_confirmation"  # 网关反馈处理中
    SETTLED = "settled"                            # 支付成功（终态）
    REJECTED = "rejected"                          # 支付失败/拒绝（终态）
    EXPIRED = "expired"                            # 已过期（终态）


class CanonicalOutcome(str, Enum):
    """网关结果码翻译后的统一结果"""
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"
    REJECTED = "rejected"


class CallbackTransport(str, Enum):
    RETURN = "return"  # 浏览器跳转
    IPN = "ipn"        # 服务端通知


TERMINAL_STATUSES = frozenset({
    PaymentStatus.SETTLED,
    PaymentStatus.REJECTED,
    PaymentStatus.EXPIRED,
})

# 可以接受回调结果的状态
OPEN_STATUSES = frozenset({
    PaymentStatus.AWAITING_CALLBACK,
    PaymentStatus.PENDING_CONFIRMATION,
})

_OUTCOME_TO_STATUS = {
    CanonicalOutcome.SUCCESS: PaymentStatus.SETTLED,
    CanonicalOutcome.PENDING: PaymentStatus.PENDING_CONFIRMATION,
    CanonicalOutcome.FAILED: PaymentStatus.REJECTED,
    CanonicalOutcome.REJECTED: PaymentStatus.REJECTED,
}


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def validate_amount_minor_units(amount) -> int:
    """业务规则：金额必须是正整数（最小货币单位），布尔值不算整数"""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise PaymentValidationError(
            f"金额必须是整数: {amount!r}",
            field="amount_minor_units",
        )
    if amount <= 0:
        raise PaymentValidationError(
            f"支付金额必须大于0: {amount}",
            field="amount_minor_units",
        )
    return amount


def validate_order_reference(order_reference) -> str:
    if not isinstance(order_reference, str) or not order_reference.strip():
        raise PaymentValidationError("订单号不能为空", field="order_reference")
    return order_reference


def build_idempotency_key(
    order_reference: str,
    transaction_ref: Optional[str],
    outcome: CanonicalOutcome,
) -> str:
    """优先使用网关交易号，缺失时退化为 订单号:结果"""
    if transaction_ref:
        return f"{order_reference}:{transaction_ref}"
    return f"{order_reference}:{outcome.value}"


@dataclass
class PaymentIntent:
    """
    支付意图聚合根 - 一个订单的一次网关支付

    业务规则：
    1. 订单号创建后不可变，且全局唯一
    2. 金额为正整数（最小货币单位）
    3. 终态（settled/rejected/expired）不再变化
    4. 状态变更由仓储的 compare-and-set 持久化，version 每次递增
    """

    order_reference: str
    gateway: Gateway
    amount_minor_units: int
    currency: str = "VND"
    status: PaymentStatus = PaymentStatus.INITIATED
    description: Optional[str] = None
    transaction_ref: Optional[str] = None
    failure_reason: Optional[str] = None
    version: int = 1
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        """初始化后验证"""
        validate_order_reference(self.order_reference)
        validate_amount_minor_units(self.amount_minor_units)
        self._validate_currency()
        self.gateway = Gateway(self.gateway)
        self.status = PaymentStatus(self.status)
        self.created_at = _ensure_utc(self.created_at) or datetime.now(timezone.utc)
        self.updated_at = _ensure_utc(self.updated_at) or self.created_at
        if self.metadata is None:
            self.metadata = {}

    def _validate_currency(self) -> None:
        """业务规则：货币代码必须是3位字母"""
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise PaymentValidationError(
                f"无效的货币代码: {self.currency}",
                field="currency",
            )

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def target_status_for(self, outcome: CanonicalOutcome) -> Optional[PaymentStatus]:
        """
        计算回调结果对应的目标状态

        返回 None 表示不发生迁移：
        - 终态不可再变
        - initiated 尚未签发链接，回调不被采纳
        - 已是 pending_confirmation 时再次收到 pending
        """
        if self.status not in OPEN_STATUSES:
            return None
        target = _OUTCOME_TO_STATUS[CanonicalOutcome(outcome)]
        if target == self.status:
            return None
        return target

    def can_expire(self) -> bool:
        return self.status in OPEN_STATUSES


@dataclass(frozen=True)
class GatewayCallback:
    """
    网关回调记录（不可变，用于审计与幂等判断）

    无论签名是否有效都会落库；只有签名有效的回调才可能推动状态变化。
    """

    gateway: Gateway
    transport: CallbackTransport
    raw_params: dict
    signature_supplied: str
    signature_computed: str
    signature_valid: bool
    vendor_result_code: Optional[str]
    canonical_outcome: CanonicalOutcome
    order_reference: Optional[str]
    transaction_ref: Optional[str] = None
    vendor_amount: Optional[int] = None  # 网关回传的金额（网关计价单位）
    unknown_code: bool = False
    reclassified: bool = False  # 结果码经启发式改判（如 MoMo 99）
    idempotency_key: Optional[str] = None
    duplicate: bool = False
    applied: bool = False
    id: Optional[int] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
