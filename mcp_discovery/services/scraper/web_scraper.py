"""
Web Scraper - Busca de páginas de documentação de servidores MCP.

Usado no enriquecimento opcional dos candidatos (README do GitHub,
página do npm, documentação). Respeita robots.txt (fail-open), aplica
rate limiting próprio e retry com backoff exponencial via tenacity.
Nunca levanta exceção: falhas viram ScrapedContent(success=False).
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mcp_discovery.core.constants import DEFAULT_USER_AGENT, MAX_CONTENT_LENGTH, MAX_REDIRECTS
from mcp_discovery.core.exceptions import (
    DiscoveryError,
    PermanentRequestError,
    RequestTimeoutError,
    ScrapingError,
    TransientNetworkError,
)
from mcp_discovery.schemas.candidate import Candidate
from mcp_discovery.services.discovery_manager.rate_limiter import RateLimiter
from . import content_extractor
from .models import ScrapedContent, ScrapingTarget, TargetPriority, TargetType

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 10.0
ROBOTS_TIMEOUT = 5.0

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,text/plain;q=0.8,*/*;q=0.5",
    "Accept-Language": "en-US,en;q=0.5",
}


def parse_robots(content: str, user_agent: str) -> List[str]:
    """Caminhos disallow aplicáveis a '*' ou ao nosso user-agent."""
    agent = user_agent.lower()
    disallowed: List[str] = []
    current_agents: List[str] = []
    reading_agents = False

    for raw in content.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        key, value = (part.strip() for part in line.split(":", 1))
        key = key.lower()

        if key == "user-agent":
            if not reading_agents:
                current_agents = []
            current_agents.append(value.lower())
            reading_agents = True
            continue

        reading_agents = False
        if key == "disallow" and value:
            if any(a == "*" or (a and a in agent) for a in current_agents):
                disallowed.append(value)

    return disallowed


class WebScraper:
    """
    Scraper HTTP de documentação.

    Features:
    - httpx.AsyncClient com redirects limitados e corpo limitado
    - Retry com tenacity (nunca para 4xx ou timeout)
    - robots.txt por host, em cache, fail-open
    - Lotes concorrentes com pausa entre lotes
    """

    def __init__(
        self,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        rate_limit_per_minute: int = 10,
        respect_robots_txt: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        max_content_length: int = MAX_CONTENT_LENGTH,
        max_redirects: int = MAX_REDIRECTS,
        batch_delay: float = 2.0,
        client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[RateLimiter] = None
    ):
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.rate_limit_per_minute = rate_limit_per_minute
        self.respect_robots_txt = respect_robots_txt
        self.user_agent = user_agent
        self.max_content_length = max_content_length
        self.max_redirects = max_redirects
        self.batch_delay = batch_delay

        self._client = client
        self._owns_client = client is None
        self.rate_limiter = rate_limiter or RateLimiter(
            requests_per_minute=rate_limit_per_minute, name="scraper"
        )
        self._robots_cache: Dict[str, List[str]] = {}
        self._robots_pending: Dict[str, "asyncio.Task[List[str]]"] = {}

        # Métricas
        self._total_requests = 0
        self._successful = 0
        self._failed = 0
        self._robots_blocked = 0
        self._total_response_ms = 0.0

        logger.info(
            f"✅ WebScraper: {rate_limit_per_minute} req/min, timeout={timeout}s, "
            f"robots={'on' if respect_robots_txt else 'off'}"
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                max_redirects=self.max_redirects,
                headers={"User-Agent": self.user_agent, **DEFAULT_HEADERS},
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
            logger.info("WebScraper: Cliente HTTP fechado")

    async def scrape_url(self, target: Union[ScrapingTarget, str]) -> ScrapedContent:
        """
        Raspa uma URL.

        Returns:
            ScrapedContent; success=False em qualquer falha
        """
        if isinstance(target, str):
            target = ScrapingTarget(url=target)
        url = target.url
        self._total_requests += 1
        start = time.perf_counter()

        try:
            if self.respect_robots_txt and not await self._is_allowed(url):
                self._robots_blocked += 1
                self._failed += 1
                logger.info(f"🚫 robots.txt bloqueia {url}")
                return ScrapedContent.failure(url, "robots.txt não permite scraping desta URL")

            await self.rate_limiter.acquire()
            body, content_type, status = await self._fetch_with_retry(url)
            scraped = self._parse(body, content_type, target)
            scraped.status_code = status
        except DiscoveryError as e:
            self._failed += 1
            status = getattr(e, "status_code", None) or 0
            logger.warning(f"⚠️ Scrape falhou para {url}: {e}")
            return ScrapedContent.failure(url, str(e), status)
        except (httpx.InvalidURL, httpx.HTTPError, LookupError, ValueError) as e:
            self._failed += 1
            logger.warning(f"⚠️ Scrape falhou para {url}: {type(e).__name__}: {e}")
            return ScrapedContent.failure(url, f"{type(e).__name__}: {e}")

        elapsed_ms = (time.perf_counter() - start) * 1000
        scraped.response_time_ms = elapsed_ms
        self._total_response_ms += elapsed_ms
        self.rate_limiter.record_response_time(elapsed_ms)
        self._successful += 1
        logger.info(f"📄 Scrape OK: {url} ({scraped.content_type}, {len(scraped.content)} chars)")
        return scraped

    async def scrape_multiple(self, targets: List[ScrapingTarget]) -> List[ScrapedContent]:
        """
        Raspa vários alvos em lotes concorrentes.

        Ordena por prioridade (high > medium > low); lotes de
        max(1, rpm // 2) com pausa de batch_delay entre eles. Falhas
        individuais não afetam o lote.
        """
        ordered = sorted(targets, key=lambda t: t.priority.rank)
        batch_size = max(1, self.rate_limit_per_minute // 2)
        results: List[ScrapedContent] = []

        for i in range(0, len(ordered), batch_size):
            batch = ordered[i:i + batch_size]
            outcomes = await asyncio.gather(
                *(self.scrape_url(t) for t in batch), return_exceptions=True
            )
            for target, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(f"❌ Erro inesperado no lote para {target.url}: {outcome}")
                    results.append(ScrapedContent.failure(target.url, str(outcome)))
                else:
                    results.append(outcome)

            if i + batch_size < len(ordered) and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        logger.info(
            f"📦 Scrape em lote: {sum(1 for r in results if r.success)}/{len(results)} com sucesso"
        )
        return results

    def generate_targets(self, candidate: Candidate) -> List[ScrapingTarget]:
        """Alvos de enriquecimento: README raw, página npm e documentação."""
        targets: List[ScrapingTarget] = []
        seen = set()

        def add(url: str, kind: TargetType, priority: TargetPriority) -> None:
            if url and url not in seen:
                seen.add(url)
                targets.append(ScrapingTarget(url=url, type=kind, priority=priority))

        readme = self.github_readme_url(candidate.repository_url)
        if readme:
            add(readme, TargetType.GITHUB_README, TargetPriority.HIGH)
        if candidate.npm_package:
            add(f"https://www.npmjs.com/package/{candidate.npm_package}", TargetType.NPM_DOCS, TargetPriority.MEDIUM)
        if candidate.documentation_url and candidate.documentation_url != candidate.repository_url:
            add(candidate.documentation_url, TargetType.DOCUMENTATION, TargetPriority.MEDIUM)
        elif candidate.repository_url and not readme:
            add(candidate.repository_url, TargetType.GENERAL, TargetPriority.LOW)

        return targets

    @staticmethod
    def github_readme_url(repository_url: str) -> Optional[str]:
        """
        URL raw do README.md (branch main) para um repositório GitHub.

        Aceita subdiretórios: .../tree/<branch>/<path> vira
        raw.githubusercontent.com/<owner>/<repo>/<branch>/<path>/README.md
        """
        if not repository_url:
            return None
        parsed = urlparse(repository_url)
        if parsed.hostname not in ("github.com", "www.github.com"):
            return None
        parts = [p for p in parsed.path.split("/") if p]
        if len(parts) < 2:
            return None
        owner, repo = parts[0], parts[1].removesuffix(".git")
        branch, subpath = "main", ""
        if len(parts) >= 4 and parts[2] in ("tree", "blob"):
            branch = parts[3]
            subpath = "/".join(parts[4:])
        base = f"https://raw.githubusercontent.com/{owner}/{repo}/{branch}"
        return f"{base}/{subpath}/README.md" if subpath else f"{base}/README.md"

    async def _is_allowed(self, url: str) -> bool:
        parsed = urlparse(url)
        host = f"{parsed.scheme}://{parsed.netloc}"

        rules = self._robots_cache.get(host)
        if rules is None:
            # Scrapes concorrentes do mesmo host compartilham um único fetch
            task = self._robots_pending.get(host)
            if task is None:
                task = asyncio.ensure_future(self._load_robots(host))
                self._robots_pending[host] = task
            try:
                rules = await asyncio.shield(task)
            finally:
                if task.done():
                    self._robots_pending.pop(host, None)
            self._robots_cache[host] = rules

        path = parsed.path or "/"
        return not any(path.startswith(rule) for rule in rules)

    async def _load_robots(self, host: str) -> List[str]:
        robots_url = f"{host}/robots.txt"
        try:
            response = await self._get_client().get(robots_url, timeout=ROBOTS_TIMEOUT)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug(f"[Scraper] robots.txt indisponível em {host}, assumindo permitido: {e}")
            return []
        if response.status_code != 200:
            return []
        return parse_robots(response.text, self.user_agent)

    async def _fetch_with_retry(self, url: str):
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_delay, max=MAX_BACKOFF_SECONDS),
            retry=retry_if_exception_type(TransientNetworkError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._fetch(url)

    async def _fetch(self, url: str):
        """
        GET com corpo limitado.

        Raises:
            PermanentRequestError: 4xx
            TransientNetworkError: 5xx ou falha de conexão
            RequestTimeoutError: timeout
            ScrapingError: corpo grande demais, redirects demais ou URL inválida
        """
        client = self._get_client()
        try:
            async with client.stream("GET", url) as response:
                status = response.status_code
                if 400 <= status < 500:
                    raise PermanentRequestError(f"HTTP {status} em {url}", status_code=status)
                if status >= 500:
                    raise TransientNetworkError(f"HTTP {status} em {url}")
                if status != 200:
                    raise ScrapingError(f"Status inesperado {status} em {url}", status_code=status)

                chunks = []
                size = 0
                async for chunk in response.aiter_bytes():
                    size += len(chunk)
                    if size > self.max_content_length:
                        raise ScrapingError(
                            f"Conteúdo excede {self.max_content_length} bytes em {url}", status_code=status
                        )
                    chunks.append(chunk)

                raw = b"".join(chunks)
                try:
                    body = raw.decode(response.encoding or "utf-8", errors="replace")
                except LookupError:
                    body = raw.decode("utf-8", errors="replace")
                return body, response.headers.get("content-type", ""), status
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Timeout após {self.timeout}s em {url}") from e
        except httpx.TooManyRedirects as e:
            raise ScrapingError(f"Redirects demais (> {self.max_redirects}) em {url}") from e
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Falha de conexão em {url}: {e}") from e
        except httpx.InvalidURL as e:
            raise ScrapingError(f"URL inválida {url}: {e}") from e
        except httpx.HTTPError as e:
            raise ScrapingError(f"Erro HTTP em {url}: {e}") from e

    def _parse(self, body: str, content_type: str, target: ScrapingTarget) -> ScrapedContent:
        kind = content_extractor.determine_content_type(target.url, target.type)

        if content_extractor.is_markup(content_type, body):
            title, content, extracted, meta = content_extractor.extract_from_html(body, target.type)
        else:
            content = body.strip()
            title, extracted, meta = content_extractor.extract_from_markdown(content)

        return ScrapedContent(
            url=target.url,
            title=title,
            content=content,
            content_type=kind,
            extracted=extracted,
            metadata={**meta, "size": len(content), "mime_type": content_type, "target_type": target.type.value},
            success=True,
        )

    def clear_robots_cache(self) -> None:
        self._robots_cache.clear()
        self._robots_pending.clear()
        logger.info("WebScraper: Cache de robots.txt limpo")

    def get_stats(self) -> Dict[str, Any]:
        finished = self._successful + self._failed
        return {
            "total_requests": self._total_requests,
            "successful": self._successful,
            "failed": self._failed,
            "robots_blocked": self._robots_blocked,
            "success_rate": self._successful / finished if finished else 0.0,
            "average_response_time_ms": self._total_response_ms / self._successful if self._successful else 0.0,
            "robots_cache_size": len(self._robots_cache),
            "rate_limiter": self.rate_limiter.get_status(),
        }
