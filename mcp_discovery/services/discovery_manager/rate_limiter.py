"""
Rate Limiter para Discovery - Controle de taxa de requisições.

Implementa janela de requisições por minuto (fixa ou deslizante) para
a API de busca. Quem excede o orçamento ESPERA a próxima vaga, nunca falha.

Janela fixa: bucket = floor(now / window_seconds)
Janela deslizante: conta eventos em [now - window_seconds, now]
"""

import asyncio
import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Any, Optional

from mcp_discovery.core.constants import MAX_RESPONSE_TIME_SAMPLES
from mcp_discovery.core.exceptions import RateBudgetExceeded

logger = logging.getLogger(__name__)

# Folga para que o evento mais antigo já esteja fora da janela ao acordar
_WAKE_EPSILON = 0.001


@dataclass
class RateLimiterMetrics:
    """Métricas do rate limiter."""
    total_requests: int = 0
    total_waited: int = 0
    total_wait_time_ms: float = 0

    @property
    def avg_wait_time_ms(self) -> float:
        if self.total_waited == 0:
            return 0
        return self.total_wait_time_ms / self.total_waited


class RateLimiter:
    """
    Rate Limiter baseado em janela de tempo.

    Controla quantas requisições PODEM SER INICIADAS por janela
    (padrão: 60s), não quantas estão em andamento.

    Uso típico:
        await limiter.wait_for_slot()
        limiter.record_request()

    ou, com serialização entre tarefas concorrentes:
        await limiter.acquire()

    Features:
    - Janela fixa ou deslizante
    - Probe não bloqueante (can_make_request)
    - Últimos 100 tempos de resposta para médias
    - Métricas de espera
    """

    def __init__(
        self,
        requests_per_minute: int = 20,
        window_seconds: float = 60.0,
        enable_sliding_window: bool = True,
        name: str = "search"
    ):
        """
        Args:
            requests_per_minute: Máximo de requisições por janela
            window_seconds: Tamanho da janela em segundos
            enable_sliding_window: True = janela deslizante, False = janela fixa
            name: Nome para identificação em logs
        """
        if requests_per_minute < 1:
            raise ValueError("requests_per_minute deve ser >= 1")

        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds
        self.enable_sliding_window = enable_sliding_window
        self.name = name

        self._requests: Deque[float] = deque()
        self._response_times: Deque[float] = deque(maxlen=MAX_RESPONSE_TIME_SAMPLES)
        self._lock = asyncio.Lock()
        self._metrics = RateLimiterMetrics()

        logger.info(
            f"🚦 RateLimiter[{name}]: {requests_per_minute} req/{window_seconds:g}s, "
            f"{'deslizante' if enable_sliding_window else 'fixa'}"
        )

    def _window_start(self, now: float) -> float:
        if self.enable_sliding_window:
            return now - self.window_seconds
        return math.floor(now / self.window_seconds) * self.window_seconds

    def _cleanup(self, now: float) -> None:
        """Remove timestamps fora da janela atual."""
        window_start = self._window_start(now)
        while self._requests and self._requests[0] < window_start:
            self._requests.popleft()

    def _get_wait_time(self, now: float) -> float:
        """Segundos até abrir uma vaga (0 se já há vaga)."""
        self._cleanup(now)
        if len(self._requests) < self.requests_per_minute:
            return 0.0

        if self.enable_sliding_window:
            wait = self._requests[0] + self.window_seconds - now
        else:
            wait = self._window_start(now) + self.window_seconds - now

        return max(0.0, wait) + _WAKE_EPSILON

    def can_make_request(self) -> bool:
        """Probe não bloqueante: True se há vaga na janela atual."""
        now = time.monotonic()
        self._cleanup(now)
        return len(self._requests) < self.requests_per_minute

    async def wait_for_slot(self) -> float:
        """
        Suspende a tarefa atual até haver vaga na janela.

        NÃO registra a requisição; o chamador deve chamar record_request().

        Returns:
            Tempo total esperado em segundos
        """
        start_time = time.monotonic()
        waited = False

        while True:
            wait_time = self._get_wait_time(time.monotonic())
            if wait_time <= 0:
                break

            if not waited:
                logger.info(
                    f"⏳ RateLimiter[{self.name}]: limite de {self.requests_per_minute} "
                    f"req atingido, aguardando {wait_time:.2f}s"
                )
            waited = True
            await asyncio.sleep(wait_time)

        elapsed = time.monotonic() - start_time
        if waited:
            self._metrics.total_waited += 1
            self._metrics.total_wait_time_ms += elapsed * 1000
        return elapsed

    def record_request(self) -> None:
        """Registra uma requisição iniciada agora."""
        now = time.monotonic()
        self._cleanup(now)
        self._requests.append(now)
        self._metrics.total_requests += 1

    async def acquire(self) -> float:
        """
        Espera uma vaga e registra a requisição atomicamente.

        Tarefas concorrentes são atendidas em ordem de chegada.
        """
        async with self._lock:
            waited = await self.wait_for_slot()
            self.record_request()
            return waited

    def try_acquire(self) -> None:
        """
        Registra a requisição sem esperar.

        Raises:
            RateBudgetExceeded: janela cheia; wait_seconds indica quando abre vaga
        """
        wait_time = self._get_wait_time(time.monotonic())
        if wait_time > 0:
            raise RateBudgetExceeded(
                f"RateLimiter[{self.name}]: orçamento de {self.requests_per_minute} req esgotado",
                wait_seconds=wait_time
            )
        self.record_request()

    def record_response_time(self, response_time_ms: float) -> None:
        """Guarda tempo de resposta (mantém as últimas 100 amostras)."""
        self._response_times.append(response_time_ms)

    def get_average_response_time(self) -> float:
        if not self._response_times:
            return 0.0
        return sum(self._response_times) / len(self._response_times)

    def get_status(self) -> Dict[str, Any]:
        """Retorna status da janela atual."""
        now = time.monotonic()
        self._cleanup(now)
        window_start = self._window_start(now)
        if self.enable_sliding_window and self._requests:
            reset_in = max(0.0, self._requests[0] + self.window_seconds - now)
        elif self.enable_sliding_window:
            reset_in = 0.0
        else:
            reset_in = window_start + self.window_seconds - now

        return {
            "name": self.name,
            "remaining": max(0, self.requests_per_minute - len(self._requests)),
            "reset_in_seconds": round(reset_in, 3),
            "total_requests": self._metrics.total_requests,
            "window_start": window_start,
            "average_response_time": round(self.get_average_response_time(), 2),
        }

    def get_detailed_stats(self) -> Dict[str, Any]:
        """Status + configuração + métricas de espera e latência."""
        samples = list(self._response_times)
        return {
            **self.get_status(),
            "config": {
                "requests_per_minute": self.requests_per_minute,
                "window_seconds": self.window_seconds,
                "sliding_window": self.enable_sliding_window,
            },
            "metrics": {
                "total_waited": self._metrics.total_waited,
                "avg_wait_time_ms": round(self._metrics.avg_wait_time_ms, 2),
                "min_response_time": min(samples) if samples else 0.0,
                "max_response_time": max(samples) if samples else 0.0,
                "response_time_samples": len(samples),
            },
        }

    def reset(self) -> None:
        """Limpa todo o estado (janela, amostras e métricas)."""
        self._requests.clear()
        self._response_times.clear()
        self._metrics = RateLimiterMetrics()
        logger.info(f"RateLimiter[{self.name}]: Estado resetado")

    def update_config(
        self,
        requests_per_minute: Optional[int] = None,
        window_seconds: Optional[float] = None,
        enable_sliding_window: Optional[bool] = None
    ) -> None:
        """Atualiza configurações do rate limiter."""
        if requests_per_minute is not None:
            self.requests_per_minute = requests_per_minute
        if window_seconds is not None:
            self.window_seconds = window_seconds
        if enable_sliding_window is not None:
            self.enable_sliding_window = enable_sliding_window

        logger.info(
            f"RateLimiter[{self.name}]: Configuração atualizada - "
            f"{self.requests_per_minute} req/{self.window_seconds:g}s"
        )
