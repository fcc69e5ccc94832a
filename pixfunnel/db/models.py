"""Modelos SQLModel: vendas do checkout PIX."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Datetime em UTC com fuso. Valores sem fuso (SQLite) são tratados como UTC."""
    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class Sale(SQLModel, table=True):
    """
    Uma tentativa de checkout. Produto e valor são um retrato do momento da venda,
    não uma referência ao catálogo.
    """

    __tablename__ = "sales"

    id: Optional[int] = Field(default=None, primary_key=True)
    transaction_id: str = Field(max_length=255, unique=True, index=True)
    customer_name: str = Field(max_length=255)
    customer_email: str = Field(max_length=255)
    product_name: str = Field(max_length=255)
    amount_in_cents: int = Field()
    status: str = Field(max_length=32)  # Pendente, Aprovado, Recusado, Reembolsado, Expirado
    pix_code: Optional[str] = Field(default=None)
    sale_date: datetime = Field(default_factory=utc_now, index=True, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
