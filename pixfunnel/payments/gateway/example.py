"""Implementação de exemplo (stub) do gateway PIX: sem API externa."""

import uuid
from typing import Optional

from pixfunnel.payments.gateway.base import ChargeStatus, CreateChargeResult, validate_amount_cents


class ExampleGateway:
    """Gateway stub: retorna dados fictícios para desenvolver/testar o fluxo."""

    def create_pix_charge(
        self,
        customer_name: str,
        customer_email: str,
        amount_cents: int,
    ) -> CreateChargeResult:
        validate_amount_cents(amount_cents)
        transaction_id = f"example-{uuid.uuid4().hex[:16]}"
        return CreateChargeResult(
            transaction_id=transaction_id,
            pix_code=f"00020126580014br.gov.bcb.pix0136{transaction_id}5204000053039865802BR",
            qr_code_image=None,
        )

    def get_charge_status(self, transaction_id: str) -> Optional[ChargeStatus]:
        # Para testes: transaction_id que termina com "-paid" é considerado pago
        if transaction_id.endswith("-paid") or transaction_id == "example-paid":
            return ChargeStatus(raw_status="paid")
        if transaction_id.endswith("-missing"):
            return None
        return ChargeStatus(raw_status="pending")
