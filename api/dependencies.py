"""
API依赖项 - 应用服务装配
"""
from application.services.payment_service import PaymentService
from infrastructure.external.payments import get_gateway_signer
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


async def get_payment_service() -> PaymentService:
    # 组合根：在这里把基础设施实现注入应用层
    return PaymentService(uow_factory=SQLAlchemyUnitOfWork, signer_factory=get_gateway_signer)
