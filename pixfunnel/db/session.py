"""Engine e sessão SQL para uso síncrono (o loop assíncrono chama em to_thread)."""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from pixfunnel.db.models import Sale  # noqa: F401  (registra a tabela no metadata)

_engine: Optional[Engine] = None


def get_database_url() -> str:
    url = (os.getenv("DATABASE_URL") or os.getenv("SQLITE_PATH") or "").strip()
    if not url:
        url = "sqlite:///./data/pixfunnel.db"
    elif "://" not in url:
        url = f"sqlite:///{url}"
    if url.startswith("sqlite:///") and ":memory:" not in url:
        Path(url.replace("sqlite:///", "").split("?")[0]).parent.mkdir(parents=True, exist_ok=True)
    return url


def make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = make_engine(get_database_url())
    return _engine


@contextmanager
def get_session(engine: Optional[Engine] = None) -> Generator[Session, None, None]:
    with Session(engine or get_engine()) as session:
        yield session


def create_all_tables(engine: Optional[Engine] = None) -> None:
    SQLModel.metadata.create_all(engine or get_engine())
