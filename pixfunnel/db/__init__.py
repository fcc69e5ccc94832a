"""Camada de persistência SQL (SQLModel)."""

from pixfunnel.db.models import Sale
from pixfunnel.db.session import create_all_tables, get_engine, get_session, make_engine

__all__ = [
    "Sale",
    "create_all_tables",
    "get_engine",
    "get_session",
    "make_engine",
]
