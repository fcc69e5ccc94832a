"""App FastAPI: checkout PIX, vendas do painel e webhook do gateway."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import date
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from pixfunnel.db.models import Sale, as_utc
from pixfunnel.payments.errors import ConfigurationError, GatewayError, ValidationError
from pixfunnel.payments.reconciler import PaymentReconciler
from pixfunnel.payments.service import PaymentService

logger = logging.getLogger(__name__)


class CheckoutRequest(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    product_name: str = Field(min_length=1)
    amount_in_cents: int = Field(gt=0)


def _sale_to_dict(sale: Sale) -> dict[str, Any]:
    return {
        "id": sale.id,
        "transaction_id": sale.transaction_id,
        "customer_name": sale.customer_name,
        "customer_email": sale.customer_email,
        "product_name": sale.product_name,
        "amount_in_cents": sale.amount_in_cents,
        "status": sale.status,
        "pix_code": sale.pix_code,
        "sale_date": as_utc(sale.sale_date).isoformat() if sale.sale_date else None,
    }


def _raise_http(e: Exception) -> None:
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=422, detail=str(e)) from e
    if isinstance(e, ConfigurationError):
        raise HTTPException(status_code=503, detail=str(e)) from e
    if isinstance(e, GatewayError):
        raise HTTPException(status_code=502, detail=str(e)) from e
    raise e


def create_app(
    service: Optional[PaymentService] = None,
    interval: Optional[float] = None,
    timeout: Optional[float] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.reconciler = PaymentReconciler(
            service or PaymentService(),
            interval=interval,
            timeout=timeout,
        )
        yield
        await app.state.reconciler.shutdown()

    app = FastAPI(title="PIX Funnel", lifespan=lifespan)

    def reconciler_of(request: Request) -> PaymentReconciler:
        return request.app.state.reconciler

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/checkout")
    async def checkout(body: CheckoutRequest, request: Request) -> dict[str, Any]:
        """Cria a cobrança PIX e inicia a conciliação em background."""
        reconciler = reconciler_of(request)
        try:
            sale, result = await reconciler.start_payment(
                body.name,
                body.email,
                body.product_name,
                body.amount_in_cents,
            )
        except (ValidationError, ConfigurationError, GatewayError) as e:
            logger.warning("Falha ao criar pagamento para %s: %s", body.email, e)
            _raise_http(e)
        return {
            "transaction_id": result.transaction_id,
            "pix_code": result.pix_code,
            "qr_code_image": result.qr_code_image,
            "status": sale.status,
        }

    @app.get("/checkout/{transaction_id}")
    async def checkout_status(transaction_id: str, request: Request) -> dict[str, Any]:
        """Status gravado da venda; a tela de checkout avança quando vira Aprovado."""
        reconciler = reconciler_of(request)
        sale = await asyncio.to_thread(reconciler.service.get_sale, transaction_id)
        if sale is None:
            raise HTTPException(status_code=404, detail="Venda não encontrada")
        return {
            "transaction_id": transaction_id,
            "status": sale.status,
            "polling": reconciler.is_watching(transaction_id),
        }

    @app.delete("/checkout/{transaction_id}/watch")
    async def stop_watching(transaction_id: str, request: Request) -> dict[str, Any]:
        cancelled = reconciler_of(request).cancel(transaction_id)
        return {"transaction_id": transaction_id, "cancelled": cancelled}

    @app.get("/sales")
    async def list_sales(
        request: Request,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> dict[str, Any]:
        """Vendas do período (dias inteiros, inclusive) e o resumo do painel."""
        service = reconciler_of(request).service
        try:
            sales = await asyncio.to_thread(service.list_sales, date_from, date_to)
        except ValidationError as e:
            _raise_http(e)
        return {
            "sales": [_sale_to_dict(s) for s in sales],
            "summary": asdict(service.summarize(sales)),
        }

    @app.post("/sales/{transaction_id}/check")
    async def check_sale(transaction_id: str, request: Request) -> dict[str, Any]:
        """Consulta manual do operador: sucesso ou falha visível, sem loop."""
        service = reconciler_of(request).service
        if await asyncio.to_thread(service.get_sale, transaction_id) is None:
            raise HTTPException(status_code=404, detail="Venda não encontrada")
        try:
            result = await asyncio.to_thread(service.check_status, transaction_id)
        except (ConfigurationError, GatewayError) as e:
            logger.error("Falha na consulta manual da transação %s: %s", transaction_id, e)
            _raise_http(e)
        if not result.found:
            raise HTTPException(status_code=404, detail="Não foi possível obter o status da transação.")
        return {
            "transaction_id": transaction_id,
            "status": result.status.value,
            "updated": result.updated,
        }

    @app.post("/payments/webhook")
    async def payments_webhook(request: Request) -> dict[str, str]:
        """
        Recebe notificação do gateway: {"id": "...", "status": "paid", ...}
        em JSON (com ou sem content-type) ou form (urlencoded/multipart).
        """
        try:
            payload: Any = await request.json()
        except ValueError:
            payload = dict(await request.form())
        if not isinstance(payload, dict) or not payload.get("id"):
            return {"status": "error", "detail": "id required"}
        service = reconciler_of(request).service
        if await asyncio.to_thread(service.apply_webhook, payload):
            return {"status": "ok", "detail": "sale updated"}
        return {"status": "ignored", "detail": "sale not found or already settled"}

    return app
