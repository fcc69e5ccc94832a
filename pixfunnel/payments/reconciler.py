"""Conciliação de pagamentos: consulta periódica do gateway até status terminal ou prazo."""

import asyncio
import inspect
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from pixfunnel.db.models import Sale
from pixfunnel.payments.errors import ConfigurationError, GatewayError
from pixfunnel.payments.gateway.base import CreateChargeResult
from pixfunnel.payments.service import PaymentService
from pixfunnel.payments.status import SaleStatus

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_POLL_TIMEOUT_SECONDS = 300.0

OUTCOME_TERMINAL = "terminal"
OUTCOME_TIMEOUT = "timeout"
OUTCOME_CANCELLED = "cancelled"

SleepFn = Callable[[float], Awaitable[Any]]
ClockFn = Callable[[], float]
OnTerminal = Callable[[str, SaleStatus], Any]


def _seconds_from_env(name: str, default: float) -> float:
    """Lê um número positivo de segundos do ambiente; inválido volta ao default."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def poll_interval_seconds() -> float:
    return _seconds_from_env("PIX_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS)


def poll_timeout_seconds() -> float:
    return _seconds_from_env("PIX_POLL_TIMEOUT_SECONDS", DEFAULT_POLL_TIMEOUT_SECONDS)


@dataclass
class ReconciliationOutcome:
    transaction_id: str
    status: SaleStatus
    reason: str  # terminal, timeout, cancelled
    polls: int

    @property
    def settled(self) -> bool:
        return self.reason == OUTCOME_TERMINAL


async def reconcile_payment(
    service: PaymentService,
    transaction_id: str,
    *,
    interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    timeout: float = DEFAULT_POLL_TIMEOUT_SECONDS,
    cancel_event: Optional[asyncio.Event] = None,
    sleep: SleepFn = asyncio.sleep,
    clock: ClockFn = time.monotonic,
    on_terminal: Optional[OnTerminal] = None,
) -> ReconciliationOutcome:
    """
    Consulta o gateway a cada `interval` segundos até observar um status terminal.
    A primeira consulta acontece após o primeiro intervalo. Passado `timeout`, desiste
    e deixa a venda como Pendente (não é erro). Consultas são estritamente sequenciais.

    Falhas de consulta (GatewayError, rede) são registradas e o loop continua;
    ConfigurationError interrompe o loop.
    """
    if cancel_event is None:
        cancel_event = asyncio.Event()
    started = clock()
    polls = 0
    while clock() - started < timeout:
        await sleep(interval)
        if cancel_event.is_set():
            return ReconciliationOutcome(transaction_id, SaleStatus.PENDING, OUTCOME_CANCELLED, polls)
        polls += 1
        try:
            status = await asyncio.to_thread(service.fetch_status, transaction_id)
        except ConfigurationError:
            logger.error("[PIX] Configuração ausente; encerrando conciliação da transação %s", transaction_id)
            raise
        except GatewayError as e:
            logger.warning("[PIX] Falha ao consultar transação %s (consulta %s): %s", transaction_id, polls, e)
            continue
        except Exception as e:
            logger.exception("[PIX] Erro inesperado ao consultar transação %s: %s", transaction_id, e)
            continue

        # resposta que chega depois do cancelamento não altera nada
        if cancel_event.is_set():
            return ReconciliationOutcome(transaction_id, SaleStatus.PENDING, OUTCOME_CANCELLED, polls)
        if status is None or not status.is_terminal:
            continue

        await asyncio.to_thread(service.record_status, transaction_id, status)
        logger.info("[PIX] Transação %s concluída com status %s após %s consultas", transaction_id, status.value, polls)
        if on_terminal is not None:
            result = on_terminal(transaction_id, status)
            if inspect.isawaitable(result):
                await result
        return ReconciliationOutcome(transaction_id, status, OUTCOME_TERMINAL, polls)

    logger.info("[PIX] Prazo de %ss esgotado para a transação %s; venda segue Pendente", timeout, transaction_id)
    return ReconciliationOutcome(transaction_id, SaleStatus.PENDING, OUTCOME_TIMEOUT, polls)


class PaymentReconciler:
    """
    Mantém no máximo uma tarefa de conciliação por transação.
    Deve ser usado dentro de um event loop em execução.
    """

    def __init__(
        self,
        service: PaymentService,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        sleep: SleepFn = asyncio.sleep,
        clock: ClockFn = time.monotonic,
    ):
        self._service = service
        self._interval = interval or poll_interval_seconds()
        self._timeout = timeout or poll_timeout_seconds()
        self._sleep = sleep
        self._clock = clock
        self._tasks: dict[str, tuple["asyncio.Task[ReconciliationOutcome]", asyncio.Event]] = {}

    @property
    def service(self) -> PaymentService:
        return self._service

    async def start_payment(
        self,
        customer_name: str,
        customer_email: str,
        product_name: str,
        amount_in_cents: int,
        on_terminal: Optional[OnTerminal] = None,
    ) -> tuple[Sale, CreateChargeResult]:
        """Cria a cobrança e a venda Pendente; a conciliação segue em background."""
        sale, result = await asyncio.to_thread(
            self._service.create_payment,
            customer_name,
            customer_email,
            product_name,
            amount_in_cents,
        )
        self.watch(result.transaction_id, on_terminal=on_terminal)
        return sale, result

    def watch(
        self,
        transaction_id: str,
        on_terminal: Optional[OnTerminal] = None,
    ) -> "asyncio.Task[ReconciliationOutcome]":
        """Inicia a conciliação. Se já existe uma em andamento, retorna a mesma tarefa."""
        existing = self._tasks.get(transaction_id)
        if existing and not existing[0].done():
            return existing[0]
        cancel_event = asyncio.Event()
        task = asyncio.create_task(
            reconcile_payment(
                self._service,
                transaction_id,
                interval=self._interval,
                timeout=self._timeout,
                cancel_event=cancel_event,
                sleep=self._sleep,
                clock=self._clock,
                on_terminal=on_terminal,
            ),
            name=f"reconcile:{transaction_id}",
        )
        self._tasks[transaction_id] = (task, cancel_event)
        task.add_done_callback(lambda t: self._forget(transaction_id, t))
        logger.info("Conciliação iniciada para a transação %s", transaction_id)
        return task

    def _forget(self, transaction_id: str, task: "asyncio.Task[ReconciliationOutcome]") -> None:
        current = self._tasks.get(transaction_id)
        if current and current[0] is task:
            del self._tasks[transaction_id]
        if task.cancelled():
            logger.info("Conciliação da transação %s cancelada", transaction_id)
            return
        error = task.exception()
        if error is not None:
            logger.error("Conciliação da transação %s terminou com erro: %s", transaction_id, error)

    def is_watching(self, transaction_id: str) -> bool:
        current = self._tasks.get(transaction_id)
        if not current:
            return False
        task, cancel_event = current
        return not task.done() and not cancel_event.is_set()

    def cancel(self, transaction_id: str) -> bool:
        """Para futuras consultas. O que já foi gravado na venda permanece."""
        current = self._tasks.get(transaction_id)
        if not current or current[0].done():
            return False
        task, cancel_event = current
        cancel_event.set()
        task.cancel()
        return True

    async def shutdown(self) -> None:
        """Cancela todas as conciliações em andamento e aguarda o encerramento."""
        tasks = []
        for task, cancel_event in list(self._tasks.values()):
            cancel_event.set()
            task.cancel()
            tasks.append(task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
