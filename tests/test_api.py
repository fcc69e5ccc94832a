import json
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from conftest import FakeGateway, gateway_error
from pixfunnel.api import create_app
from pixfunnel.payments.errors import ConfigurationError
from pixfunnel.payments.service import PaymentService
from pixfunnel.payments.store import InMemorySaleStore

CHECKOUT = {"name": "Ana", "email": "ana@x.com", "product_name": "Curso CTR", "amount_in_cents": 990}


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def store():
    return InMemorySaleStore()


def make_client(gateway, store, interval=60.0, timeout=300.0):
    app = create_app(PaymentService(gateway=gateway, store=store), interval=interval, timeout=timeout)
    return TestClient(app)


def test_health(gateway, store):
    with make_client(gateway, store) as client:
        assert client.get("/health").json() == {"status": "ok"}


def test_checkout_creates_pending_sale(gateway, store):
    with make_client(gateway, store) as client:
        resp = client.post("/checkout", json=CHECKOUT)
        assert resp.status_code == 200
        body = resp.json()
        assert body["transaction_id"] == "tx_1"
        assert body["status"] == "Pendente"
        assert body["qr_code_image"].startswith("data:image/png;base64,")

        status = client.get("/checkout/tx_1").json()
        assert status == {"transaction_id": "tx_1", "status": "Pendente", "polling": True}


def test_checkout_advances_when_gateway_approves(gateway, store):
    gateway.statuses = [None, "approved"]
    with make_client(gateway, store, interval=0.01, timeout=5.0) as client:
        client.post("/checkout", json=CHECKOUT)
        status = None
        for _ in range(300):
            status = client.get("/checkout/tx_1").json()
            if status["status"] == "Aprovado":
                break
            time.sleep(0.01)
        assert status["status"] == "Aprovado"

    assert store.find_by_transaction_id("tx_1").status == "Aprovado"


def test_checkout_gateway_failure(store):
    gateway = FakeGateway(create_error=gateway_error(500))
    with make_client(gateway, store) as client:
        resp = client.post("/checkout", json=CHECKOUT)
        assert resp.status_code == 502
        assert client.get("/sales").json()["sales"] == []


def test_checkout_without_credentials(store):
    gateway = FakeGateway(create_error=ConfigurationError("PUSHINPAY_API_TOKEN não está configurado."))
    with make_client(gateway, store) as client:
        assert client.post("/checkout", json=CHECKOUT).status_code == 503


def test_checkout_rejects_invalid_amount(gateway, store):
    with make_client(gateway, store) as client:
        resp = client.post("/checkout", json={**CHECKOUT, "amount_in_cents": 0})
        assert resp.status_code == 422
    assert gateway.created == []


def test_stop_watching_keeps_sale(gateway, store):
    with make_client(gateway, store) as client:
        client.post("/checkout", json=CHECKOUT)
        assert client.delete("/checkout/tx_1/watch").json() == {"transaction_id": "tx_1", "cancelled": True}
        status = client.get("/checkout/tx_1").json()
        assert status["status"] == "Pendente"
        assert status["polling"] is False


def test_unknown_checkout_is_404(gateway, store):
    with make_client(gateway, store) as client:
        assert client.get("/checkout/nope").status_code == 404


def test_sales_listing_and_summary(gateway, store):
    with make_client(gateway, store) as client:
        client.post("/checkout", json=CHECKOUT)
        client.post("/checkout", json={**CHECKOUT, "name": "Bia", "amount_in_cents": 1500})
        gateway.statuses = ["paid"]
        client.post("/sales/tx_2/check")

        body = client.get("/sales").json()

    assert [s["transaction_id"] for s in body["sales"]] == ["tx_2", "tx_1"]
    assert body["sales"][0]["status"] == "Aprovado"
    assert body["summary"] == {
        "total_sales": 2,
        "approved_sales": 1,
        "pending_sales": 1,
        "approved_amount_cents": 1500,
        "approval_rate": 50.0,
        "unique_customers": 1,
    }
    assert body["sales"][0]["sale_date"].endswith("+00:00")


def test_sales_filtered_by_date(gateway, store):
    today = datetime.now(timezone.utc).date()
    yesterday = (today - timedelta(days=1)).isoformat()
    with make_client(gateway, store) as client:
        client.post("/checkout", json=CHECKOUT)

        same_day = client.get("/sales", params={"date_from": today.isoformat()}).json()
        before = client.get("/sales", params={"date_from": yesterday, "date_to": yesterday}).json()
        inverted = client.get("/sales", params={"date_from": today.isoformat(), "date_to": yesterday})
        malformed = client.get("/sales", params={"date_from": "ontem"})

    assert [s["transaction_id"] for s in same_day["sales"]] == ["tx_1"]
    assert before["sales"] == []
    assert before["summary"]["total_sales"] == 0
    assert before["summary"]["approval_rate"] == 0.0
    assert inverted.status_code == 422
    assert malformed.status_code == 422


def test_manual_check(gateway, store):
    with make_client(gateway, store) as client:
        client.post("/checkout", json=CHECKOUT)

        gateway.statuses = ["approved"]
        assert client.post("/sales/tx_1/check").json() == {
            "transaction_id": "tx_1",
            "status": "Aprovado",
            "updated": True,
        }

        gateway.statuses = [None]
        assert client.post("/sales/tx_1/check").status_code == 404

        gateway.statuses = [gateway_error(500)]
        assert client.post("/sales/tx_1/check").status_code == 502

        assert client.post("/sales/unknown/check").status_code == 404


def test_webhook_json_and_form(gateway, store):
    with make_client(gateway, store) as client:
        client.post("/checkout", json=CHECKOUT)
        client.post("/checkout", json={**CHECKOUT, "name": "Bia"})

        assert client.post("/payments/webhook", json={"id": "tx_1", "status": "paid"}).json()["status"] == "ok"
        assert client.post("/payments/webhook", json={"id": "tx_1", "status": "refunded"}).json()["status"] == "ignored"

        resp = client.post("/payments/webhook", data={"id": "tx_2", "status": "expired", "value": "990"})
        assert resp.json()["status"] == "ok"

        assert client.post("/payments/webhook", json={"status": "paid"}).json()["status"] == "error"

    assert store.find_by_transaction_id("tx_1").status == "Aprovado"
    assert store.find_by_transaction_id("tx_2").status == "Expirado"


def test_webhook_multipart(gateway, store):
    with make_client(gateway, store) as client:
        client.post("/checkout", json=CHECKOUT)

        resp = client.post("/payments/webhook", files={"id": (None, "tx_1"), "status": (None, "paid")})

    assert resp.json()["status"] == "ok"
    assert store.find_by_transaction_id("tx_1").status == "Aprovado"


def test_webhook_json_without_json_content_type(gateway, store):
    with make_client(gateway, store) as client:
        client.post("/checkout", json=CHECKOUT)

        resp = client.post(
            "/payments/webhook",
            content=json.dumps({"id": "tx_1", "status": "paid"}),
            headers={"content-type": "text/plain"},
        )
        empty = client.post("/payments/webhook", content=b"", headers={"content-type": "text/plain"})

    assert resp.json()["status"] == "ok"
    assert empty.json()["status"] == "error"
    assert store.find_by_transaction_id("tx_1").status == "Aprovado"


class SlowStore(InMemorySaleStore):
    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay
        self.slow = False

    def find_by_transaction_id(self, transaction_id):
        if self.slow:
            time.sleep(self.delay)
        return super().find_by_transaction_id(transaction_id)


def test_slow_store_does_not_block_other_requests(gateway):
    store = SlowStore(delay=0.5)
    with make_client(gateway, store) as client:
        client.post("/checkout", json=CHECKOUT)
        store.slow = True

        with ThreadPoolExecutor(max_workers=3) as pool:
            lookups = [pool.submit(client.get, "/checkout/tx_1") for _ in range(3)]
            time.sleep(0.05)
            started = time.monotonic()
            health = client.get("/health")
            elapsed = time.monotonic() - started

            assert health.status_code == 200
            assert elapsed < 0.3
            assert all(f.result().json()["status"] == "Pendente" for f in lookups)
