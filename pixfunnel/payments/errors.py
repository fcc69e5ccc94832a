"""Exceções do fluxo de pagamento PIX."""

from typing import Optional


class PaymentError(Exception):
    """Base para erros de pagamento."""


class ConfigurationError(PaymentError):
    """Configuração obrigatória ausente (ex.: token do gateway)."""


class ValidationError(PaymentError):
    """Dados de entrada inválidos, rejeitados antes de qualquer I/O."""


class GatewayError(PaymentError):
    """Resposta de erro do gateway (não 2xx e não 404) ou falha de transporte."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
