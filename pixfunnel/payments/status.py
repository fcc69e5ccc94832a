"""Status internos de venda e tradução dos status do gateway."""

from enum import Enum
from typing import Optional


class SaleStatus(str, Enum):
    PENDING = "Pendente"
    APPROVED = "Aprovado"
    REFUSED = "Recusado"
    REFUNDED = "Reembolsado"
    EXPIRED = "Expirado"

    @property
    def is_terminal(self) -> bool:
        return self is not SaleStatus.PENDING


_STATUS_MAP = {
    "paid": SaleStatus.APPROVED,
    "approved": SaleStatus.APPROVED,
    "refused": SaleStatus.REFUSED,
    "pending": SaleStatus.PENDING,
    "in_process": SaleStatus.PENDING,
    "expired": SaleStatus.EXPIRED,
    "refunded": SaleStatus.REFUNDED,
    "chargeback": SaleStatus.REFUNDED,
}


def translate_status(raw_status: Optional[str]) -> SaleStatus:
    """
    Traduz o status do gateway para o status interno.
    Nunca lança: valor ausente ou desconhecido vira Pendente.
    """
    if not isinstance(raw_status, str):
        return SaleStatus.PENDING
    return _STATUS_MAP.get(raw_status.strip().lower(), SaleStatus.PENDING)
