"""Factory do gateway de pagamento (retorna implementação conforme config)."""

import logging
import os

from pixfunnel.payments.gateway.base import PaymentGatewayProtocol
from pixfunnel.payments.gateway.example import ExampleGateway
from pixfunnel.payments.gateway.pushinpay import PushInPayGateway

logger = logging.getLogger(__name__)


def get_gateway() -> PaymentGatewayProtocol:
    """
    Retorna a implementação do gateway conforme PAYMENT_GATEWAY.
    'pushinpay' (default) ou 'example' (stub offline).
    """
    name = (os.getenv("PAYMENT_GATEWAY") or "pushinpay").strip().lower()
    if name == "example":
        return ExampleGateway()
    if name != "pushinpay":
        logger.warning("PAYMENT_GATEWAY desconhecido (%s); usando pushinpay", name)
    return PushInPayGateway()
