"""Fixtures compartilhadas: gateway roteirizado, relógio falso e stores."""

import asyncio
import threading
from typing import Any, Optional

import pytest

from pixfunnel.db.session import create_all_tables, make_engine
from pixfunnel.payments.errors import GatewayError
from pixfunnel.payments.gateway.base import ChargeStatus, CreateChargeResult, validate_amount_cents
from pixfunnel.payments.service import PaymentService
from pixfunnel.payments.store import InMemorySaleStore, SqlSaleStore


class FakeGateway:
    """
    Gateway roteirizado. Cada item de `statuses` é a resposta de uma consulta:
    None (404), uma string de status bruto ou uma exceção a ser lançada.
    Esgotado o roteiro, responde "pending".
    """

    def __init__(self, statuses: Optional[list[Any]] = None, create_error: Optional[Exception] = None):
        self.statuses = list(statuses or [])
        self.create_error = create_error
        self.created: list[tuple[str, str, int]] = []
        self.status_calls: list[str] = []
        self.on_status_call = None
        self._lock = threading.Lock()

    def create_pix_charge(self, customer_name: str, customer_email: str, amount_cents: int) -> CreateChargeResult:
        validate_amount_cents(amount_cents)
        if self.create_error is not None:
            raise self.create_error
        with self._lock:
            self.created.append((customer_name, customer_email, amount_cents))
            n = len(self.created)
        return CreateChargeResult(
            transaction_id=f"tx_{n}",
            pix_code=f"00020126580014br.gov.bcb.pix{n:04d}",
            qr_code_image="data:image/png;base64,AAAA",
        )

    def get_charge_status(self, transaction_id: str) -> Optional[ChargeStatus]:
        with self._lock:
            self.status_calls.append(transaction_id)
            item = self.statuses.pop(0) if self.statuses else "pending"
        if self.on_status_call is not None:
            self.on_status_call()
        if isinstance(item, Exception):
            raise item
        if item is None:
            return None
        return ChargeStatus(raw_status=item)


class SpyStore(InMemorySaleStore):
    """InMemorySaleStore que registra as chamadas de update_status."""

    def __init__(self) -> None:
        super().__init__()
        self.updates: list[tuple[str, str]] = []

    def update_status(self, transaction_id, new_status):
        self.updates.append((transaction_id, new_status.value))
        return super().update_status(transaction_id, new_status)


class FakeClock:
    """Relógio monotônico falso: sleep avança o tempo sem esperar."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def memory_store() -> SpyStore:
    return SpyStore()


@pytest.fixture
def sql_store(tmp_path) -> SqlSaleStore:
    engine = make_engine(f"sqlite:///{tmp_path / 'sales.db'}")
    create_all_tables(engine)
    yield SqlSaleStore(engine)
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemorySaleStore()
    return request.getfixturevalue("sql_store")


@pytest.fixture
def service(gateway, memory_store) -> PaymentService:
    return PaymentService(gateway=gateway, store=memory_store)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "PUSHINPAY_API_TOKEN",
        "PUSHINPAY_API_URL",
        "PIX_WEBHOOK_URL",
        "PAYMENT_GATEWAY",
        "SALES_STORE",
        "PIX_POLL_INTERVAL_SECONDS",
        "PIX_POLL_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


def gateway_error(status_code: int = 500) -> GatewayError:
    return GatewayError("erro no gateway", status_code=status_code, body="oops")
