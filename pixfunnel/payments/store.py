"""Armazenamento de vendas: tabela SQL (SQLModel) ou memória do processo."""

import itertools
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from pixfunnel.db.models import Sale, as_utc, utc_now
from pixfunnel.db.session import get_session
from pixfunnel.payments.errors import ValidationError
from pixfunnel.payments.status import SaleStatus

logger = logging.getLogger(__name__)


@dataclass
class NewSale:
    """Dados de uma venda recém-criada no gateway (status inicial sempre Pendente)."""

    transaction_id: str
    customer_name: str
    customer_email: str
    product_name: str
    amount_in_cents: int
    pix_code: Optional[str] = None


def validate_new_sale(new_sale: NewSale) -> None:
    for field in ("transaction_id", "customer_name", "customer_email", "product_name"):
        value = getattr(new_sale, field)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{field} é obrigatório")
    amount = new_sale.amount_in_cents
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"amount_in_cents deve ser inteiro positivo, recebido {amount!r}")


def _can_transition(transaction_id: str, current: str, new_status: SaleStatus) -> bool:
    """Só Pendente -> terminal altera a venda; status terminal é definitivo."""
    if current == new_status.value:
        return False
    if current != SaleStatus.PENDING.value:
        logger.warning(
            "Venda %s já está em status terminal %s; ignorando %s",
            transaction_id,
            current,
            new_status.value,
        )
        return False
    return True


def _with_utc_dates(sale: Sale) -> Sale:
    # SQLite devolve datetimes sem fuso mesmo com DateTime(timezone=True)
    sale.sale_date = as_utc(sale.sale_date)
    sale.updated_at = as_utc(sale.updated_at)
    return sale


class SaleStoreProtocol(Protocol):
    def create(self, new_sale: NewSale) -> Sale: ...

    def update_status(self, transaction_id: str, new_status: SaleStatus) -> bool: ...

    def list_all(self, since: Optional[datetime] = None, until: Optional[datetime] = None) -> list[Sale]: ...

    def find_by_transaction_id(self, transaction_id: str) -> Optional[Sale]: ...


class SqlSaleStore:
    """Vendas na tabela `sales`. Engine padrão vem de DATABASE_URL."""

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine

    def create(self, new_sale: NewSale) -> Sale:
        validate_new_sale(new_sale)
        with get_session(self._engine) as session:
            sale = Sale(
                transaction_id=new_sale.transaction_id.strip(),
                customer_name=new_sale.customer_name.strip(),
                customer_email=new_sale.customer_email.strip(),
                product_name=new_sale.product_name.strip(),
                amount_in_cents=new_sale.amount_in_cents,
                status=SaleStatus.PENDING.value,
                pix_code=new_sale.pix_code,
            )
            session.add(sale)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ValidationError(f"transaction_id duplicado: {new_sale.transaction_id}") from e
            session.refresh(sale)
            return _with_utc_dates(sale)

    def update_status(self, transaction_id: str, new_status: SaleStatus) -> bool:
        """Retorna True se a venda mudou. Transação desconhecida não é erro."""
        with get_session(self._engine) as session:
            sale = session.exec(select(Sale).where(Sale.transaction_id == transaction_id)).first()
            if not sale:
                logger.info("Nenhuma venda para a transação %s; nada a atualizar", transaction_id)
                return False
            if not _can_transition(transaction_id, sale.status, new_status):
                return False
            # condicional em Pendente: dois escritores concorrentes não sobrescrevem um terminal
            result = session.connection().execute(
                update(Sale)
                .where(Sale.transaction_id == transaction_id, Sale.status == SaleStatus.PENDING.value)
                .values(status=new_status.value, updated_at=utc_now())
            )
            session.commit()
            changed = result.rowcount == 1
            if changed:
                logger.info("Venda %s atualizada para %s", transaction_id, new_status.value)
            return changed

    def list_all(self, since: Optional[datetime] = None, until: Optional[datetime] = None) -> list[Sale]:
        """Mais recentes primeiro; `since` inclusivo, `until` exclusivo."""
        statement = select(Sale)
        if since is not None:
            statement = statement.where(Sale.sale_date >= as_utc(since))
        if until is not None:
            statement = statement.where(Sale.sale_date < as_utc(until))
        with get_session(self._engine) as session:
            sales = list(session.exec(statement.order_by(Sale.sale_date.desc(), Sale.id.desc())))
        return [_with_utc_dates(s) for s in sales]

    def find_by_transaction_id(self, transaction_id: str) -> Optional[Sale]:
        with get_session(self._engine) as session:
            sale = session.exec(select(Sale).where(Sale.transaction_id == transaction_id)).first()
        return _with_utc_dates(sale) if sale else None


class InMemorySaleStore:
    """Vendas apenas na memória do processo (duram enquanto o processo vive)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._rows: dict[str, dict[str, Any]] = {}

    def create(self, new_sale: NewSale) -> Sale:
        validate_new_sale(new_sale)
        transaction_id = new_sale.transaction_id.strip()
        with self._lock:
            if transaction_id in self._rows:
                raise ValidationError(f"transaction_id duplicado: {transaction_id}")
            now = utc_now()
            row = {
                "id": next(self._ids),
                "transaction_id": transaction_id,
                "customer_name": new_sale.customer_name.strip(),
                "customer_email": new_sale.customer_email.strip(),
                "product_name": new_sale.product_name.strip(),
                "amount_in_cents": new_sale.amount_in_cents,
                "status": SaleStatus.PENDING.value,
                "pix_code": new_sale.pix_code,
                "sale_date": now,
                "updated_at": now,
            }
            self._rows[transaction_id] = row
            return Sale(**row)

    def update_status(self, transaction_id: str, new_status: SaleStatus) -> bool:
        with self._lock:
            row = self._rows.get(transaction_id)
            if row is None:
                logger.info("Nenhuma venda para a transação %s; nada a atualizar", transaction_id)
                return False
            if not _can_transition(transaction_id, row["status"], new_status):
                return False
            row["status"] = new_status.value
            row["updated_at"] = utc_now()
        logger.info("Venda %s atualizada para %s", transaction_id, new_status.value)
        return True

    def list_all(self, since: Optional[datetime] = None, until: Optional[datetime] = None) -> list[Sale]:
        since = as_utc(since) if since is not None else None
        until = as_utc(until) if until is not None else None
        with self._lock:
            rows = [
                r
                for r in self._rows.values()
                if (since is None or r["sale_date"] >= since) and (until is None or r["sale_date"] < until)
            ]
        rows.sort(key=lambda r: (r["sale_date"], r["id"]), reverse=True)
        return [Sale(**row) for row in rows]

    def find_by_transaction_id(self, transaction_id: str) -> Optional[Sale]:
        with self._lock:
            row = self._rows.get(transaction_id)
            return Sale(**row) if row else None


def get_sale_store() -> SaleStoreProtocol:
    """SALES_STORE: 'sql' (default) ou 'memory'."""
    name = (os.getenv("SALES_STORE") or "sql").strip().lower()
    if name == "memory":
        return InMemorySaleStore()
    if name != "sql":
        logger.warning("SALES_STORE desconhecido (%s); usando sql", name)
    return SqlSaleStore()
