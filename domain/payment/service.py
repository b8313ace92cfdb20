"""
支付领域服务 - 幂等的支付状态机

所有状态写入都经过仓储的 compare-and-set：读取当前状态，计算目标状态，
仅当状态未被其他请求改动时写入；抢占失败则重新读取并重新判断。
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from .entity import (
    CanonicalOutcome,
    Gateway,
    PaymentIntent,
    PaymentStatus,
)
from .events import (
    PaymentExpired,
    PaymentPendingConfirmation,
    PaymentRejected,
    PaymentSettled,
)
from .repository import PaymentIntentRepository
from domain.common.exceptions import (
    PaymentIntentAlreadyExistsException,
    PaymentIntentNotFoundException,
    PaymentTransitionConflictException,
)


@dataclass(frozen=True)
class TransitionResult:
    """状态机一次判定的结果

    applied: 本次调用写入了新状态
    stale:   订单已处于终态，回调被记录但不改变状态（对网关按成功确认）
    ignored: 订单尚未签发链接（initiated）或不可过期，未做任何迁移
    """

    order_reference: str
    status: PaymentStatus
    previous_status: PaymentStatus
    applied: bool = False
    stale: bool = False
    ignored: bool = False
    attempts: int = 1


class PaymentDomainService:
    """
    支付领域服务 - 编排支付意图的生命周期

    职责：
    1. 创建支付意图（订单唯一性）
    2. 签发链接后进入 awaiting_callback
    3. 按回调结果推进状态（幂等、乱序安全）
    4. 调用方驱动的过期
    5. 产生领域事件
    """

    def __init__(self, intent_repository: PaymentIntentRepository, *, max_attempts: int = 3):
        self.intent_repository = intent_repository
        self.max_attempts = max(1, max_attempts)
        self.events: List = []  # 领域事件收集

    async def create_intent(
        self,
        order_reference: str,
        gateway: Gateway,
        amount_minor_units: int,
        currency: str = "VND",
        description: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> PaymentIntent:
        """
        创建支付意图

        业务规则：
        1. 订单号不能重复
        2. 金额必须为正整数（实体内部校验）
        """
        # 先构造实体，非法输入在查库之前就被拒绝
        intent = PaymentIntent(
            order_reference=order_reference,
            gateway=gateway,
            amount_minor_units=amount_minor_units,
            currency=currency.upper(),
            status=PaymentStatus.INITIATED,
            description=description,
            metadata=metadata or {},
        )
        if await self.intent_repository.exists_by_reference(order_reference):
            raise PaymentIntentAlreadyExistsException(order_reference)
        return await self.intent_repository.create(intent)

    async def get_intent(self, order_reference: str) -> PaymentIntent:
        intent = await self.intent_repository.find_by_reference(order_reference)
        if intent is None:
            raise PaymentIntentNotFoundException(order_reference)
        return intent

    async def mark_url_issued(self, order_reference: str) -> TransitionResult:
        """initiated -> awaiting_callback；重复签发不报错"""
        intent = await self.get_intent(order_reference)
        if intent.status != PaymentStatus.INITIATED:
            return TransitionResult(
                order_reference=order_reference,
                status=intent.status,
                previous_status=intent.status,
                ignored=True,
            )
        ok = await self.intent_repository.compare_and_set_status(
            order_reference, PaymentStatus.INITIATED, PaymentStatus.AWAITING_CALLBACK,
        )
        if not ok:
            # 并发签发：以当前库内状态为准
            current = await self.get_intent(order_reference)
            return TransitionResult(
                order_reference=order_reference,
                status=current.status,
                previous_status=PaymentStatus.INITIATED,
                ignored=True,
            )
        return TransitionResult(
            order_reference=order_reference,
            status=PaymentStatus.AWAITING_CALLBACK,
            previous_status=PaymentStatus.INITIATED,
            applied=True,
        )

    async def apply_outcome(
        self,
        order_reference: str,
        outcome: CanonicalOutcome,
        *,
        transaction_ref: Optional[str] = None,
        vendor_result_code: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> TransitionResult:
        """
        按已验签回调的统一结果推进状态

        - 终态：不变，返回 stale
        - initiated：不变，返回 ignored
        - awaiting_callback / pending_confirmation：success->settled，
          failed/rejected->rejected，pending->pending_confirmation
        """
        outcome = CanonicalOutcome(outcome)
        for attempt in range(1, self.max_attempts + 1):
            intent = await self.get_intent(order_reference)

            if intent.is_terminal():
                return TransitionResult(
                    order_reference=order_reference,
                    status=intent.status,
                    previous_status=intent.status,
                    stale=True,
                    attempts=attempt,
                )
            if intent.status == PaymentStatus.INITIATED:
                return TransitionResult(
                    order_reference=order_reference,
                    status=intent.status,
                    previous_status=intent.status,
                    ignored=True,
                    attempts=attempt,
                )

            target = intent.target_status_for(outcome)
            if target is None:
                # pending -> pending：已在确认中
                return TransitionResult(
                    order_reference=order_reference,
                    status=intent.status,
                    previous_status=intent.status,
                    attempts=attempt,
                )

            changes: dict = {}
            if transaction_ref:
                changes["transaction_ref"] = transaction_ref
            if target == PaymentStatus.REJECTED:
                changes["failure_reason"] = failure_reason or (
                    f"vendor_code:{vendor_result_code}" if vendor_result_code else outcome.value
                )
            elif target == PaymentStatus.SETTLED:
                changes["failure_reason"] = None

            ok = await self.intent_repository.compare_and_set_status(
                order_reference, intent.status, target, changes,
            )
            if ok:
                self._record_event(intent, target, transaction_ref, vendor_result_code, changes)
                return TransitionResult(
                    order_reference=order_reference,
                    status=target,
                    previous_status=intent.status,
                    applied=True,
                    attempts=attempt,
                )

        raise PaymentTransitionConflictException(order_reference, self.max_attempts)

    async def expire(self, order_reference: str) -> TransitionResult:
        """调用方驱动的过期：awaiting_callback / pending_confirmation -> expired"""
        for attempt in range(1, self.max_attempts + 1):
            intent = await self.get_intent(order_reference)
            if intent.is_terminal():
                return TransitionResult(
                    order_reference=order_reference,
                    status=intent.status,
                    previous_status=intent.status,
                    stale=True,
                    attempts=attempt,
                )
            if not intent.can_expire():
                return TransitionResult(
                    order_reference=order_reference,
                    status=intent.status,
                    previous_status=intent.status,
                    ignored=True,
                    attempts=attempt,
                )
            ok = await self.intent_repository.compare_and_set_status(
                order_reference, intent.status, PaymentStatus.EXPIRED,
                {"failure_reason": "expired"},
            )
            if ok:
                self.events.append(PaymentExpired(
                    order_reference=order_reference,
                    gateway=intent.gateway.value,
                    transaction_ref=intent.transaction_ref,
                    occurred_at=datetime.now(timezone.utc),
                ))
                return TransitionResult(
                    order_reference=order_reference,
                    status=PaymentStatus.EXPIRED,
                    previous_status=intent.status,
                    applied=True,
                    attempts=attempt,
                )

        raise PaymentTransitionConflictException(order_reference, self.max_attempts)

    def _record_event(
        self,
        intent: PaymentIntent,
        target: PaymentStatus,
        transaction_ref: Optional[str],
        vendor_result_code: Optional[str],
        changes: dict,
    ) -> None:
        """记录领域事件"""
        common = dict(
            order_reference=intent.order_reference,
            gateway=intent.gateway.value,
            transaction_ref=transaction_ref or intent.transaction_ref,
        )
        if target == PaymentStatus.SETTLED:
            self.events.append(PaymentSettled(amount_minor_units=intent.amount_minor_units, **common))
        elif target == PaymentStatus.REJECTED:
            self.events.append(PaymentRejected(reason=changes.get("failure_reason"), **common))
        elif target == PaymentStatus.PENDING_CONFIRMATION:
            self.events.append(PaymentPendingConfirmation(vendor_result_code=vendor_result_code, **common))

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
