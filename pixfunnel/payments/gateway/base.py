"""Interface base do gateway de pagamento PIX (desacoplada)."""

from dataclasses import dataclass
from typing import Optional, Protocol

from pixfunnel.payments.errors import ValidationError


@dataclass
class CreateChargeResult:
    """Resultado da criação de uma cobrança PIX."""

    transaction_id: str
    pix_code: str
    qr_code_image: Optional[str] = None  # data URI (base64) quando o gateway fornece


@dataclass
class ChargeStatus:
    """Status bruto de uma cobrança, como o gateway informa."""

    raw_status: Optional[str]  # paid, approved, pending, expired, refunded...


class PaymentGatewayProtocol(Protocol):
    """Protocolo do gateway de pagamento PIX."""

    def create_pix_charge(
        self,
        customer_name: str,
        customer_email: str,
        amount_cents: int,
    ) -> CreateChargeResult:
        """Cria uma cobrança PIX (uma única requisição, sem retry)."""
        ...

    def get_charge_status(self, transaction_id: str) -> Optional[ChargeStatus]:
        """Consulta o status atual. None quando o gateway ainda não conhece a transação (404)."""
        ...


def validate_amount_cents(amount_cents: object) -> int:
    """Valor deve ser inteiro positivo (em centavos)."""
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError(f"amount_cents deve ser inteiro positivo, recebido {amount_cents!r}")
    return amount_cents
