"""
支付仓储接口 - 定义支付意图与回调记录的数据访问抽象
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import GatewayCallback, PaymentIntent, PaymentStatus


class PaymentIntentRepository(ABC):
    """支付意图仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        """创建支付意图"""
        pass

    @abstractmethod
    async def find_by_reference(self, order_reference: str) -> Optional[PaymentIntent]:
        """根据订单号获取支付意图"""
        pass

    @abstractmethod
    async def exists_by_reference(self, order_reference: str) -> bool:
        """检查订单是否已有支付意图"""
        pass

    @abstractmethod
    async def compare_and_set_status(
        self,
        order_reference: str,
        expected: PaymentStatus,
        new: PaymentStatus,
        metadata: Optional[dict] = None,
    ) -> bool:
        """
        原子地把状态从 expected 改为 new

        只有当前状态等于 expected 时才写入并递增 version，返回是否写入成功。
        metadata 可携带 transaction_ref / failure_reason 等随迁移一起落库的字段。
        """
        pass


class GatewayCallbackRepository(ABC):
    """回调记录仓储抽象接口（只追加）"""

    @abstractmethod
    async def add(self, callback: GatewayCallback) -> GatewayCallback:
        """保存回调记录"""
        pass

    @abstractmethod
    async def exists_by_idempotency_key(self, idempotency_key: str) -> bool:
        """是否已处理过同一幂等键的有效回调"""
        pass

    @abstractmethod
    async def list_by_reference(self, order_reference: str, limit: int = 100) -> List[GatewayCallback]:
        """按订单号列出回调记录（按接收时间升序）"""
        pass
