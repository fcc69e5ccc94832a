"""Gateway PushInPay: cobrança PIX (cashIn) e consulta de transação via HTTP."""

import logging
import os
from typing import Any, Optional

import httpx

from pixfunnel.payments.errors import ConfigurationError, GatewayError
from pixfunnel.payments.gateway.base import ChargeStatus, CreateChargeResult, validate_amount_cents

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.pushinpay.com.br/api"
DEFAULT_TIMEOUT_SECONDS = 15.0


def _timeout_from_env() -> float:
    raw = (os.getenv("PUSHINPAY_TIMEOUT_SECONDS") or "").strip()
    if not raw:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_TIMEOUT_SECONDS
    return value if value > 0 else DEFAULT_TIMEOUT_SECONDS


class PushInPayGateway:
    """
    Cliente da API PushInPay.
    O token é lido a cada chamada (PUSHINPAY_API_TOKEN se não for passado),
    então a ausência dele falha antes de qualquer requisição.
    """

    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: Optional[str] = None,
        webhook_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._api_token = api_token
        self._base_url = (base_url or os.getenv("PUSHINPAY_API_URL") or DEFAULT_API_URL).strip().rstrip("/")
        self._webhook_url = webhook_url if webhook_url is not None else (os.getenv("PIX_WEBHOOK_URL") or "").strip()
        self._timeout = timeout or _timeout_from_env()
        self._transport = transport

    def _token(self) -> str:
        token = (self._api_token or os.getenv("PUSHINPAY_API_TOKEN") or "").strip()
        if not token:
            logger.error("[PIX] PUSHINPAY_API_TOKEN não está configurado.")
            raise ConfigurationError("PUSHINPAY_API_TOKEN não está configurado.")
        return token

    def _client(self, token: str) -> httpx.Client:
        return httpx.Client(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            timeout=self._timeout,
            transport=self._transport,
        )

    def create_pix_charge(
        self,
        customer_name: str,
        customer_email: str,
        amount_cents: int,
    ) -> CreateChargeResult:
        validate_amount_cents(amount_cents)
        token = self._token()
        payload: dict[str, Any] = {"value": amount_cents, "split_rules": []}
        if self._webhook_url:
            payload["webhook_url"] = self._webhook_url

        logger.info("[PIX] Criando cobrança de %s centavos para %s (%s)", amount_cents, customer_name, customer_email)
        try:
            with self._client(token) as client:
                response = client.post("/pix/cashIn", json=payload)
        except httpx.HTTPError as e:
            raise GatewayError(f"Falha de comunicação ao criar cobrança: {e}") from e

        if not response.is_success:
            logger.error("[PIX] Erro ao criar cobrança. Status: %s. Body: %s", response.status_code, response.text)
            raise GatewayError(
                f"Erro ao criar cobrança. Código: {response.status_code}.",
                status_code=response.status_code,
                body=response.text,
            )

        data = _json_body(response)
        transaction_id = str(data.get("id") or "").strip()
        pix_code = str(data.get("qr_code") or "").strip()
        if not transaction_id or not pix_code:
            raise GatewayError(
                "Resposta do gateway sem id ou qr_code.",
                status_code=response.status_code,
                body=response.text,
            )
        logger.info("[PIX] Cobrança criada: %s", transaction_id)
        return CreateChargeResult(
            transaction_id=transaction_id,
            pix_code=pix_code,
            qr_code_image=_as_data_uri(data.get("qr_code_base64")),
        )

    def get_charge_status(self, transaction_id: str) -> Optional[ChargeStatus]:
        token = self._token()
        logger.info("[PIX] Consultando status da transação %s", transaction_id)
        try:
            with self._client(token) as client:
                response = client.get(f"/transactions/{transaction_id}")
        except httpx.HTTPError as e:
            raise GatewayError(f"Falha de comunicação ao consultar transação: {e}") from e

        if response.status_code == 404:
            logger.warning("[PIX] Transação %s não encontrada (404).", transaction_id)
            return None
        if not response.is_success:
            logger.error("[PIX] Erro ao consultar API. Status: %s. Body: %s", response.status_code, response.text)
            raise GatewayError(
                f"Erro ao consultar status da transação. Código: {response.status_code}.",
                status_code=response.status_code,
                body=response.text,
            )

        data = _json_body(response)
        raw_status = data.get("status")
        if not raw_status:
            logger.warning("[PIX] Resposta da API não contém um campo 'status': %s", data)
        return ChargeStatus(raw_status=raw_status if isinstance(raw_status, str) else None)


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as e:
        raise GatewayError(
            "Resposta do gateway não é JSON.",
            status_code=response.status_code,
            body=response.text,
        ) from e
    if not isinstance(data, dict):
        raise GatewayError("Resposta do gateway inesperada.", status_code=response.status_code, body=response.text)
    return data


def _as_data_uri(value: Any) -> Optional[str]:
    if not value or not isinstance(value, str):
        return None
    if value.startswith("data:"):
        return value
    return f"data:image/png;base64,{value}"
