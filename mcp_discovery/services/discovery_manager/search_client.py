"""
Search Client - Gerenciamento da API de busca (Perplexity).

Controla:
- Cliente OpenAI-compatível (chat completions) com base_url do Perplexity
- Retry logic com backoff exponencial
- Classificação de erros (permanentes x transitórios x timeout)
- Coordenação com o RateLimiter em respostas 429
- Métricas de uso da API

Política de 429: sem RateLimiter acoplado, 429 é terminal. Com RateLimiter,
o retry respeita Retry-After (ou backoff) e re-adquire vaga no limiter,
consumindo o mesmo orçamento de tentativas.
"""

import asyncio
import datetime as dt_module
import logging
import time
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional

import openai
from openai import AsyncOpenAI

from mcp_discovery.core.config import settings
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

# Erros de autenticação/formato: nunca retentados (429 tem política própria)
NON_RETRYABLE_STATUS = frozenset({400, 401, 403})

SYSTEM_PROMPT = """You are an expert on the Model Context Protocol (MCP) ecosystem.
Given a request, list MCP servers that satisfy it. For EACH server provide:
1. Server name
2. NPM package name (official ones use @modelcontextprotocol/server-*, community ones often mcp-* or *-mcp)
3. GitHub repository URL
4. Documentation URL, if different from the repository
5. Installation and setup instructions (exact install commands and configuration)
6. Required credentials or environment variables (API keys, tokens, connection strings)

Format the answer as a numbered list, one server per item, with the fields above on separate lines.
Only include servers you are confident exist. Prefer official and actively maintained servers."""


def _parse_retry_after(header_value: Optional[str], max_seconds: float = 60.0) -> Optional[float]:
    """
    Parseia o header Retry-After conforme RFC 7231.

    Pode ser:
    - Número em segundos (ex: "120")
    - HTTP-date (ex: "Wed, 21 Oct 2015 07:28:00 GMT")

    Returns:
        Segundos a esperar, ou None se inválido/não presente.
        Limitado a max_seconds.
    """
    if not header_value or not header_value.strip():
        return None
    val = header_value.strip()
    try:
        seconds = float(val)
        return min(seconds, max_seconds) if seconds > 0 else None
    except ValueError:
        pass
    try:
        retry_dt = parsedate_to_datetime(val)
        now = dt_module.datetime.now(dt_module.timezone.utc)
        if retry_dt.tzinfo is None:
            retry_dt = retry_dt.replace(tzinfo=dt_module.timezone.utc)
        delta = (retry_dt - now).total_seconds()
        return min(delta, max_seconds) if delta > 0 else None
    except (ValueError, TypeError):
        return None


@dataclass
class SearchResponse:
    """Resultado de uma busca. Falhas nunca são lançadas."""
    success: bool
    data: str = ""
    usage: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    status_code: Optional[int] = None
    attempts: int = 0
    latency_ms: float = 0.0


class SearchClient:
    """
    Cliente da API de busca em linguagem natural.

    Uma requisição de chat completion por query: prompt de sistema fixo
    + query do usuário -> texto da primeira choice.

    Features:
    - Retry com backoff exponencial (base * mult^tentativa, limitado)
    - 400/401/403 nunca retentados; timeouts são terminais
    - 429 coordenado com RateLimiter (quando acoplado)
    - Rotação de API key em runtime
    - Métricas de uso (requisições, tokens, latência)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        max_delay: float = 10.0,
        backoff_multiplier: float = 2.0,
        timeout: float = 30.0,
        max_tokens: int = 4000,
        temperature: float = 0.1,
        top_p: float = 0.9,
        rate_limiter: Optional[RateLimiter] = None,
        client: Optional[Any] = None
    ):
        """
        Args:
            api_key: Chave da API (padrão: PERPLEXITY_API_KEY)
            base_url: Endpoint OpenAI-compatível
            model: Modelo de busca online
            max_retries: Retries além da primeira tentativa
            retry_delay: Delay base do backoff em segundos
            max_delay: Delay máximo do backoff em segundos
            backoff_multiplier: Multiplicador do backoff
            timeout: Timeout por requisição em segundos
            rate_limiter: Limiter compartilhado para coordenar 429
            client: Cliente já construído (injeção em testes)
        """
        self._api_key = api_key if api_key is not None else settings.PERPLEXITY_API_KEY
        self._base_url = base_url or settings.PERPLEXITY_BASE_URL
        self._model = model or settings.PERPLEXITY_MODEL
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._max_delay = max_delay
        self._backoff_multiplier = backoff_multiplier
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._top_p = top_p
        self._rate_limiter = rate_limiter

        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()

        # Métricas
        self._total_requests = 0
        self._successful_requests = 0
        self._failed_requests = 0
        self._rate_limited_requests = 0
        self._total_tokens = 0
        self._total_latency_ms = 0.0

        logger.info(
            f"SearchClient: model={self._model}, retries={max_retries}, "
            f"timeout={timeout}s, rate_limiter={'sim' if rate_limiter else 'não'}"
        )

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    async def _get_client(self) -> Any:
        """Retorna o cliente OpenAI-compatível (lazy initialization)."""
        async with self._client_lock:
            if self._client is None:
                self._client = AsyncOpenAI(
                    api_key=self._api_key,
                    base_url=self._base_url,
                    timeout=self._timeout,
                    max_retries=0
                )
                logger.info(f"🌐 SearchClient: Cliente criado ({self._base_url})")
        return self._client

    def set_api_key(self, api_key: str) -> None:
        """Rotaciona a API key. O cliente interno é recriado na próxima busca."""
        self._api_key = api_key
        if self._owns_client:
            self._client = None
        logger.info("🔑 SearchClient: API key atualizada")

    async def close(self) -> None:
        """Fecha o cliente HTTP subjacente."""
        async with self._client_lock:
            if self._client is not None and self._owns_client:
                await self._client.close()
                self._client = None
                logger.info("🌐 SearchClient: Cliente fechado")

    def _backoff(self, retry_index: int) -> float:
        return min(self._retry_delay * (self._backoff_multiplier ** retry_index), self._max_delay)

    async def search(self, query: str) -> SearchResponse:
        """
        Executa uma busca.

        Args:
            query: Query em linguagem natural

        Returns:
            SearchResponse com success, data (texto) e usage
        """
        if not self._api_key:
            logger.warning("⚠️ PERPLEXITY_API_KEY não configurada")
            return SearchResponse(success=False, error="API key não configurada")

        client = await self._get_client()
        attempts_allowed = self._max_retries + 1
        last_error: Optional[str] = None
        last_status: Optional[int] = None
        retry_after: Optional[float] = None
        attempt = 0

        for attempt in range(attempts_allowed):
            if attempt > 0:
                delay = retry_after if retry_after is not None else self._backoff(attempt - 1)
                logger.warning(
                    f"🔄 Busca retry {attempt + 1}/{attempts_allowed} após {delay:.1f}s "
                    f"(reason={last_error})"
                )
                await asyncio.sleep(delay)
                retry_after = None

                if self._rate_limiter is not None:
                    await self._rate_limiter.acquire()

            start_time = time.perf_counter()
            try:
                self._total_requests += 1
                response = await client.chat.completions.create(
                    model=self._model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": query}
                    ],
                    max_tokens=self._max_tokens,
                    temperature=self._temperature,
                    top_p=self._top_p
                )
                latency_ms = (time.perf_counter() - start_time) * 1000
                self._total_latency_ms += latency_ms
                if self._rate_limiter is not None:
                    self._rate_limiter.record_response_time(latency_ms)

                content = response.choices[0].message.content if response.choices else None
                if not content:
                    last_error = "resposta vazia"
                    last_status = None
                    logger.warning(f"⚠️ Busca retornou resposta vazia, tentativa {attempt + 1}/{attempts_allowed}")
                    continue

                usage = response.usage.model_dump() if getattr(response, "usage", None) is not None else {}
                self._total_tokens += usage.get("total_tokens", 0) or 0
                self._successful_requests += 1
                logger.info(f"✅ Busca: {len(content)} chars em {latency_ms:.0f}ms (tentativa {attempt + 1})")
                return SearchResponse(
                    success=True,
                    data=content,
                    usage=usage,
                    attempts=attempt + 1,
                    latency_ms=latency_ms
                )

            except openai.APITimeoutError:
                self._failed_requests += 1
                logger.error(f"❌ Busca timeout após {self._timeout}s: {query[:50]}...")
                return SearchResponse(
                    success=False,
                    error=f"timeout após {self._timeout}s",
                    attempts=attempt + 1
                )

            except openai.APIStatusError as e:
                last_status = e.status_code
                last_error = f"HTTP {e.status_code}"

                if e.status_code == 429:
                    self._rate_limited_requests += 1
                    if self._rate_limiter is None:
                        self._failed_requests += 1
                        logger.error("❌ Busca rate limited (429) sem RateLimiter acoplado")
                        return SearchResponse(success=False, error="Rate limit (429)", status_code=429, attempts=attempt + 1)
                    retry_after = _parse_retry_after(e.response.headers.get("retry-after"), self._max_delay)
                    logger.warning(
                        f"⚠️ Busca rate limit (429), tentativa {attempt + 1}/{attempts_allowed}"
                        + (f" (Retry-After: {retry_after:.1f}s)" if retry_after is not None else "")
                    )
                    continue

                if e.status_code in NON_RETRYABLE_STATUS:
                    self._failed_requests += 1
                    logger.error(f"❌ Busca client error: {e.status_code}")
                    return SearchResponse(
                        success=False,
                        error=f"HTTP {e.status_code}: {e.message}",
                        status_code=e.status_code,
                        attempts=attempt + 1
                    )

                logger.warning(f"⚠️ Busca HTTP {e.status_code}, tentativa {attempt + 1}/{attempts_allowed}")

            except openai.APIConnectionError as e:
                last_status = None
                last_error = str(e) or "falha ao conectar"
                logger.warning(f"⚠️ Busca ConnectionError: {last_error}, tentativa {attempt + 1}/{attempts_allowed}")

            except openai.OpenAIError as e:
                last_status = None
                last_error = str(e) or type(e).__name__
                logger.warning(f"⚠️ Busca {type(e).__name__}: {last_error}, tentativa {attempt + 1}/{attempts_allowed}")

        self._failed_requests += 1
        logger.error(f"❌ Busca falhou após {attempts_allowed} tentativas: {last_error}")
        return SearchResponse(
            success=False,
            error=last_error or "erro desconhecido",
            status_code=last_status,
            attempts=attempt + 1
        )

    async def test_connection(self) -> bool:
        """Faz uma busca mínima para validar key e endpoint."""
        response = await self.search("Model Context Protocol")
        return response.success

    def get_usage_stats(self) -> Dict[str, Any]:
        """Retorna status e métricas."""
        avg_latency = 0.0
        if self._successful_requests > 0:
            avg_latency = self._total_latency_ms / self._successful_requests

        return {
            "total_requests": self._total_requests,
            "successful_requests": self._successful_requests,
            "failed_requests": self._failed_requests,
            "rate_limited_requests": self._rate_limited_requests,
            "total_tokens": self._total_tokens,
            "avg_latency_ms": round(avg_latency, 2),
            "config": {
                "model": self._model,
                "base_url": self._base_url,
                "max_retries": self._max_retries,
                "timeout": self._timeout,
                "has_api_key": self.has_api_key
            }
        }

    def reset_metrics(self) -> None:
        """Reseta métricas."""
        self._total_requests = 0
        self._successful_requests = 0
        self._failed_requests = 0
        self._rate_limited_requests = 0
        self._total_tokens = 0
        self._total_latency_ms = 0.0
        logger.info("SearchClient: Métricas resetadas")
