"""Gateway de pagamento PIX (interface base + implementações)."""

from pixfunnel.payments.gateway.base import (
    ChargeStatus,
    CreateChargeResult,
    PaymentGatewayProtocol,
)
from pixfunnel.payments.gateway.example import ExampleGateway
from pixfunnel.payments.gateway.factory import get_gateway
from pixfunnel.payments.gateway.pushinpay import PushInPayGateway

__all__ = [
    "ChargeStatus",
    "CreateChargeResult",
    "ExampleGateway",
    "PaymentGatewayProtocol",
    "PushInPayGateway",
    "get_gateway",
]
