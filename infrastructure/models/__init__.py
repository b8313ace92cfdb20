"""Infrastructure models package exports."""
from .base import Base, metadata
from .payment import PaymentIntentModel, GatewayCallbackModel

__all__ = [
    "Base",
    "metadata",
    "PaymentIntentModel",
    "GatewayCallbackModel",
]
