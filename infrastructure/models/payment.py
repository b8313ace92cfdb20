"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, JSON, Index, BigInteger
)
from datetime import datetime, timezone

from .base import Base


class PaymentIntentModel(Base):
    """
    支付意图数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.PaymentIntent 中
    """
    __tablename__ = "payment_intents"

    # 主键
    id = Column(Integer, primary_key=True, index=True)

    # 订单信息
    order_reference = Column(String(100), unique=True, index=True, nullable=False, comment="订单号")
    gateway = Column(String(20), nullable=False, index=True, comment="支付网关: vnpay/momo/paypal")

    # 金额（最小货币单位整数）
    amount_minor_units = Column(BigInteger, nullable=False, comment="支付金额（最小货币单位）")
    currency = Column(String(3), nullable=False, default="VND", comment="货币代码 ISO-4217")

    # 状态与乐观并发版本号
    status = Column(
        String(30),
        nullable=False,
        default="initiated",
        index=True,
        comment="状态: initiated/awaiting_callback/pending_confirmation/settled/rejected/expired"
    )
    version = Column(Integer, nullable=False, default=1, comment="状态版本号，每次迁移+1")

    description = Column(String(255), nullable=True, comment="订单描述")
    transaction_ref = Column(String(100), nullable=True, index=True, comment="网关交易号")
    failure_reason = Column(String(255), nullable=True, comment="失败原因")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    # 扩展字段
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    def __repr__(self):
        return f"<PaymentIntentModel(order_reference={self.order_reference}, status={self.status}, version={self.version})>"


class GatewayCallbackModel(Base):
    """
    网关回调记录数据库模型（只追加，审计用）
    """
    __tablename__ = "gateway_callbacks"

    id = Column(Integer, primary_key=True, index=True)

    gateway = Column(String(20), nullable=False, comment="支付网关")
    transport = Column(String(10), nullable=False, comment="回调通道: return/ipn")
    order_reference = Column(String(100), nullable=True, index=True, comment="订单号（来自回调）")
    transaction_ref = Column(String(100), nullable=True, comment="网关交易号")

    # 原始参数与签名
    raw_params = Column(JSON, nullable=False, comment="原始回调参数")
    signature_supplied = Column(String(256), nullable=False, default="", comment="回调携带的签名")
    signature_computed = Column(String(256), nullable=False, default="", comment="本地计算的签名")
    signature_valid = Column(Boolean, nullable=False, default=False, comment="签名是否有效")

    # 结果翻译
    vendor_result_code = Column(String(50), nullable=True, comment="网关原始结果码")
    canonical_outcome = Column(String(20), nullable=False, comment="统一结果: success/pending/failed/rejected")
    unknown_code = Column(Boolean, nullable=False, default=False, comment="是否为未知结果码")
    reclassified = Column(Boolean, nullable=False, default=False, comment="结果码是否经启发式改判")
    vendor_amount = Column(BigInteger, nullable=True, comment="网关回传金额")

    # 幂等
    idempotency_key = Column(String(200), nullable=True, index=True, comment="幂等键")
    duplicate = Column(Boolean, nullable=False, default=False, comment="是否重复回调")
    applied = Column(Boolean, nullable=False, default=False, comment="是否推动了状态迁移")

    received_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="接收时间"
    )

    # 索引
    __table_args__ = (
        Index("idx_callback_reference_received", "order_reference", "received_at"),
    )

    def __repr__(self):
        return f"<GatewayCallbackModel(id={self.id}, order_reference={self.order_reference}, valid={self.signature_valid})>"
