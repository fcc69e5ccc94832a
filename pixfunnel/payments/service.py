"""Serviço de domínio: criação de pagamentos PIX, consulta de status e vendas."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional

from pixfunnel.db.models import Sale
from pixfunnel.payments.errors import ValidationError
from pixfunnel.payments.gateway.base import CreateChargeResult, PaymentGatewayProtocol
from pixfunnel.payments.gateway.factory import get_gateway
from pixfunnel.payments.status import SaleStatus, translate_status
from pixfunnel.payments.store import NewSale, SaleStoreProtocol, get_sale_store, validate_new_sale

logger = logging.getLogger(__name__)


@dataclass
class StatusCheckResult:
    """Resultado de uma consulta manual (um único passo de consulta)."""

    transaction_id: str
    status: Optional[SaleStatus]  # None quando o gateway ainda não conhece a transação
    updated: bool = False

    @property
    def found(self) -> bool:
        return self.status is not None


@dataclass
class SalesSummary:
    total_sales: int
    approved_sales: int
    pending_sales: int
    approved_amount_cents: int
    approval_rate: float  # % de vendas aprovadas no período
    unique_customers: int  # compradores distintos entre as aprovadas


class PaymentService:
    """Serviço síncrono (usar via asyncio.to_thread a partir do loop de conciliação)."""

    def __init__(
        self,
        gateway: Optional[PaymentGatewayProtocol] = None,
        store: Optional[SaleStoreProtocol] = None,
    ):
        self._gateway = gateway or get_gateway()
        self._store = store or get_sale_store()

    @property
    def store(self) -> SaleStoreProtocol:
        return self._store

    def create_payment(
        self,
        customer_name: str,
        customer_email: str,
        product_name: str,
        amount_in_cents: int,
    ) -> tuple[Sale, CreateChargeResult]:
        """
        Cria a cobrança no gateway e registra a venda como Pendente.
        Se o gateway falhar, o erro propaga e nenhuma venda é criada.
        """
        # valida antes de qualquer I/O; transaction_id ainda não existe
        validate_new_sale(
            NewSale(
                transaction_id="-",
                customer_name=customer_name,
                customer_email=customer_email,
                product_name=product_name,
                amount_in_cents=amount_in_cents,
            )
        )
        result = self._gateway.create_pix_charge(
            customer_name=customer_name,
            customer_email=customer_email,
            amount_cents=amount_in_cents,
        )
        sale = self._store.create(
            NewSale(
                transaction_id=result.transaction_id,
                customer_name=customer_name,
                customer_email=customer_email,
                product_name=product_name,
                amount_in_cents=amount_in_cents,
                pix_code=result.pix_code,
            )
        )
        logger.info(
            "Venda %s registrada (transação %s, %s centavos)",
            sale.id,
            result.transaction_id,
            amount_in_cents,
        )
        return sale, result

    def fetch_status(self, transaction_id: str) -> Optional[SaleStatus]:
        """Consulta o gateway e traduz. None se a transação ainda não existe lá (404)."""
        charge = self._gateway.get_charge_status(transaction_id)
        if charge is None:
            return None
        status = translate_status(charge.raw_status)
        logger.info("[PIX] Status da API: '%s', status traduzido: '%s'", charge.raw_status, status.value)
        return status

    def record_status(self, transaction_id: str, status: SaleStatus) -> bool:
        """Grava um status terminal observado. Pendente não altera a venda."""
        if not status.is_terminal:
            return False
        return self._store.update_status(transaction_id, status)

    def check_status(self, transaction_id: str) -> StatusCheckResult:
        """
        Consulta manual disparada pelo operador: um passo de consulta, erros propagam
        para virarem notificação de falha.
        """
        status = self.fetch_status(transaction_id)
        if status is None:
            return StatusCheckResult(transaction_id=transaction_id, status=None)
        updated = self.record_status(transaction_id, status)
        return StatusCheckResult(transaction_id=transaction_id, status=status, updated=updated)

    def apply_webhook(self, payload: dict[str, Any]) -> bool:
        """Aplica notificação do gateway ({id, status, ...}). Retorna True se a venda mudou."""
        transaction_id = payload.get("id") or payload.get("transaction_id")
        if not transaction_id or not isinstance(transaction_id, str):
            return False
        status = translate_status(payload.get("status"))
        logger.info("[PIX] Webhook para transação %s: '%s' -> %s", transaction_id, payload.get("status"), status.value)
        return self.record_status(transaction_id.strip(), status)

    def get_sale(self, transaction_id: str) -> Optional[Sale]:
        return self._store.find_by_transaction_id(transaction_id)

    def list_sales(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> list[Sale]:
        """
        Vendas mais recentes primeiro, filtradas por dias inteiros (UTC), inclusive.
        Só `date_from`: apenas aquele dia. Só `date_to`: tudo até o fim daquele dia.
        """
        if date_from is not None and date_to is None:
            date_to = date_from
        if date_from is not None and date_to is not None and date_from > date_to:
            raise ValidationError("date_from deve ser anterior ou igual a date_to")
        since = _start_of_day(date_from) if date_from is not None else None
        until = _start_of_day(date_to + timedelta(days=1)) if date_to is not None else None
        return self._store.list_all(since=since, until=until)

    def summarize(self, sales: Optional[list[Sale]] = None) -> SalesSummary:
        if sales is None:
            sales = self.list_sales()
        approved = [s for s in sales if s.status == SaleStatus.APPROVED.value]
        return SalesSummary(
            total_sales=len(sales),
            approved_sales=len(approved),
            pending_sales=sum(1 for s in sales if s.status == SaleStatus.PENDING.value),
            approved_amount_cents=sum(s.amount_in_cents for s in approved),
            approval_rate=round(len(approved) / len(sales) * 100, 2) if sales else 0.0,
            unique_customers=len({s.customer_email.lower() for s in approved}),
        )


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)
