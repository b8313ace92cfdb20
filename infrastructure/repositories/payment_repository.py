"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import PaymentIntentAlreadyExistsException
from domain.payment.entity import (
    CallbackTransport,
    CanonicalOutcome,
    Gateway,
    GatewayCallback,
    PaymentIntent,
    PaymentStatus,
)
from domain.payment.repository import GatewayCallbackRepository, PaymentIntentRepository
from infrastructure.models.payment import GatewayCallbackModel, PaymentIntentModel
from core.logging_config import get_logger


logger = get_logger(__name__)

# 允许随状态迁移一起写入的列
_CAS_WRITABLE_FIELDS = frozenset({"transaction_ref", "failure_reason"})


class SQLAlchemyPaymentIntentRepository(PaymentIntentRepository):
    """支付意图仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentIntentModel) -> PaymentIntent:
        """将数据库模型转换为领域实体"""
        return PaymentIntent(
            id=model.id,
            order_reference=model.order_reference,
            gateway=Gateway(model.gateway),
            amount_minor_units=int(model.amount_minor_units),
            currency=model.currency,
            status=PaymentStatus(model.status),
            description=model.description,
            transaction_ref=model.transaction_ref,
            failure_reason=model.failure_reason,
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
            metadata=model.extra_metadata or {},
        )

    def _to_model(self, entity: PaymentIntent) -> PaymentIntentModel:
        """将领域实体转换为数据库模型"""
        return PaymentIntentModel(
            id=entity.id,
            order_reference=entity.order_reference,
            gateway=entity.gateway.value,
            amount_minor_units=entity.amount_minor_units,
            currency=entity.currency,
            status=entity.status.value,
            description=entity.description,
            transaction_ref=entity.transaction_ref,
            failure_reason=entity.failure_reason,
            version=entity.version,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            extra_metadata=entity.metadata,
        )

    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        """创建支付意图"""
        db_intent = self._to_model(intent)
        self.session.add(db_intent)
        try:
            await self.session.flush()
        except IntegrityError:
            # 并发创建同一订单；事务由 UoW 在异常退出时回滚
            logger.warning("payment_intent_create_conflict", order_reference=intent.order_reference)
            raise PaymentIntentAlreadyExistsException(intent.order_reference)
        await self.session.refresh(db_intent)
        logger.info(
            "payment_intent_created",
            intent_id=db_intent.id,
            order_reference=db_intent.order_reference,
            gateway=db_intent.gateway,
        )
        return self._to_entity(db_intent)

    async def find_by_reference(self, order_reference: str) -> Optional[PaymentIntent]:
        """根据订单号获取支付意图（总是读取库内最新值）"""
        result = await self.session.execute(
            select(PaymentIntentModel)
            .where(PaymentIntentModel.order_reference == order_reference)
            .execution_options(populate_existing=True)
        )
        db_intent = result.scalar_one_or_none()
        return self._to_entity(db_intent) if db_intent else None

    async def exists_by_reference(self, order_reference: str) -> bool:
        """检查订单是否已有支付意图"""
        result = await self.session.execute(
            select(func.count())
            .select_from(PaymentIntentModel)
            .where(PaymentIntentModel.order_reference == order_reference)
        )
        return (result.scalar() or 0) > 0

    async def compare_and_set_status(
        self,
        order_reference: str,
        expected: PaymentStatus,
        new: PaymentStatus,
        metadata: Optional[dict] = None,
    ) -> bool:
        """UPDATE ... WHERE order_reference = ? AND status = ?，命中一行才算成功"""
        values = {
            "status": PaymentStatus(new).value,
            "version": PaymentIntentModel.version + 1,
            "updated_at": datetime.now(timezone.utc),
        }
        for key, value in (metadata or {}).items():
            if key in _CAS_WRITABLE_FIELDS:
                values[key] = value
        result = await self.session.execute(
            update(PaymentIntentModel)
            .where(
                PaymentIntentModel.order_reference == order_reference,
                PaymentIntentModel.status == PaymentStatus(expected).value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        swapped = result.rowcount == 1
        logger.info(
            "payment_intent_cas",
            order_reference=order_reference,
            expected=PaymentStatus(expected).value,
            new=PaymentStatus(new).value,
            swapped=swapped,
        )
        return swapped


class SQLAlchemyGatewayCallbackRepository(GatewayCallbackRepository):
    """回调记录仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: GatewayCallbackModel) -> GatewayCallback:
        received_at = model.received_at
        if received_at is not None and received_at.tzinfo is None:
            received_at = received_at.replace(tzinfo=timezone.utc)
        return GatewayCallback(
            id=model.id,
            gateway=Gateway(model.gateway),
            transport=CallbackTransport(model.transport),
            raw_params=dict(model.raw_params or {}),
            signature_supplied=model.signature_supplied,
            signature_computed=model.signature_computed,
            signature_valid=model.signature_valid,
            vendor_result_code=model.vendor_result_code,
            canonical_outcome=CanonicalOutcome(model.canonical_outcome),
            order_reference=model.order_reference,
            transaction_ref=model.transaction_ref,
            vendor_amount=model.vendor_amount,
            unknown_code=model.unknown_code,
            reclassified=model.reclassified,
            idempotency_key=model.idempotency_key,
            duplicate=model.duplicate,
            applied=model.applied,
            received_at=received_at,
        )

    def _to_model(self, entity: GatewayCallback) -> GatewayCallbackModel:
        return GatewayCallbackModel(
            gateway=entity.gateway.value,
            transport=entity.transport.value,
            order_reference=entity.order_reference,
            transaction_ref=entity.transaction_ref,
            raw_params=dict(entity.raw_params),
            signature_supplied=entity.signature_supplied or "",
            signature_computed=entity.signature_computed or "",
            signature_valid=entity.signature_valid,
            vendor_result_code=entity.vendor_result_code,
            canonical_outcome=entity.canonical_outcome.value,
            unknown_code=entity.unknown_code,
            reclassified=entity.reclassified,
            vendor_amount=entity.vendor_amount,
            idempotency_key=entity.idempotency_key,
            duplicate=entity.duplicate,
            applied=entity.applied,
            received_at=entity.received_at,
        )

    async def add(self, callback: GatewayCallback) -> GatewayCallback:
        db_callback = self._to_model(callback)
        self.session.add(db_callback)
        await self.session.flush()
        return self._to_entity(db_callback)

    async def exists_by_idempotency_key(self, idempotency_key: str) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(GatewayCallbackModel)
            .where(
                GatewayCallbackModel.idempotency_key == idempotency_key,
                GatewayCallbackModel.signature_valid.is_(True),
            )
        )
        return (result.scalar() or 0) > 0

    async def list_by_reference(self, order_reference: str, limit: int = 100) -> List[GatewayCallback]:
        result = await self.session.execute(
            select(GatewayCallbackModel)
            .where(GatewayCallbackModel.order_reference == order_reference)
            .order_by(GatewayCallbackModel.received_at.asc(), GatewayCallbackModel.id.asc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]
