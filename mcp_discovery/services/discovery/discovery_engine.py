"""
Discovery Engine - Orquestra o pipeline de descoberta de servidores MCP.

Fluxo por chamada:
    cache -> rate limit -> busca -> parse -> score -> filtro/dedupe/ordenação
    -> enriquecimento opcional (scraping) -> cache -> resultado

Falha na busca ou parse vazio desviam para o FallbackManager (se habilitado).
Nenhum método público de descoberta lança exceção: falhas viram
DiscoveryResult(success=False, error=...).
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from mcp_discovery.core.config import settings
from mcp_discovery.core.config_loader import get_section
from mcp_discovery.core.exceptions import DiscoveryError, EngineFailure
from mcp_discovery.schemas.candidate import Candidate, DiscoveryOptions, DiscoveryResult
from mcp_discovery.schemas.config import DiscoveryConfig
from mcp_discovery.services.discovery.fallback_manager import FallbackManager
from mcp_discovery.services.discovery.query_constructor import (
    ConstructedQuery,
    QueryConstructor,
    QueryContext,
)
from mcp_discovery.services.discovery.response_parser import ResponseParser
from mcp_discovery.services.discovery_manager import (
    CacheManager,
    RateLimiter,
    SearchClient,
    generate_cache_key,
)
from mcp_discovery.services.learning import (
    AdaptiveLearningSystem,
    ConfidenceScorer,
    FeedbackRecord,
)
from mcp_discovery.services.scraper.setup_instruction_parser import SetupInstructionParser
from mcp_discovery.services.scraper.web_scraper import WebScraper

logger = logging.getLogger(__name__)

# --- CONFIGURAÇÃO DO ENRIQUECIMENTO ---
ENRICHMENT_MAX_BOOST = 0.1  # bônus máximo de score vindo da documentação raspada

# Fontes de resultado
SOURCE_SEARCH = "perplexity"
SOURCE_CACHE = "cache"
SOURCE_FALLBACK = "fallback"


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class DiscoveryEngine:
    """
    Motor de descoberta de servidores MCP.

    Todos os colaboradores são injetados; use create_discovery_engine()
    para montar os padrões a partir de DiscoveryConfig.
    """

    def __init__(
        self,
        config: DiscoveryConfig,
        *,
        rate_limiter: RateLimiter,
        cache: CacheManager,
        search_client: SearchClient,
        parser: ResponseParser,
        scorer: ConfidenceScorer,
        fallback: FallbackManager,
        query_constructor: QueryConstructor,
        web_scraper: Optional[WebScraper] = None,
        instruction_parser: Optional[SetupInstructionParser] = None
    ):
        self.config = config
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.search_client = search_client
        self.parser = parser
        self.scorer = scorer
        self.fallback = fallback
        self.query_constructor = query_constructor
        self.web_scraper = web_scraper
        self.instruction_parser = instruction_parser or SetupInstructionParser()

        # Métricas
        self._total_discoveries = 0
        self._successful_discoveries = 0
        self._failed_discoveries = 0
        self._cache_hits = 0
        self._fallback_used = 0
        self._total_queries = 0
        self._total_time_ms = 0.0

        logger.info(
            f"✅ DiscoveryEngine: cache={'on' if config.cache_enabled else 'off'}, "
            f"fallback={'on' if config.fallback_enabled else 'off'}, "
            f"scraping={'on' if config.web_scraping_enabled else 'off'}, "
            f"rpm={config.rate_limit_per_minute}"
        )

    # ------------------------------------------------------------------
    # Descoberta por query única
    # ------------------------------------------------------------------

    async def discover_mcp_servers(
        self,
        query: str,
        options: Optional[DiscoveryOptions] = None
    ) -> DiscoveryResult:
        """
        Descobre servidores MCP para uma query em linguagem natural.

        Args:
            query: Texto de busca (ex: "postgres database")
            options: Filtros e limites

        Returns:
            DiscoveryResult com source "perplexity", "cache" ou "fallback"
        """
        options = options or DiscoveryOptions()
        start = time.perf_counter()
        self._total_discoveries += 1
        logger.info(f"🔍 Discovery: '{query[:80]}' (max={options.max_results})")

        try:
            cache_key = generate_cache_key(query, options)
            cached = await self.cache.get(cache_key)
            if cached is not None:
                self._cache_hits += 1
                return self._finish(
                    start,
                    DiscoveryResult(
                        success=True,
                        results=cached.results,
                        total_found=cached.total_found,
                        source=SOURCE_CACHE,
                        queries_executed=0,
                        enriched=cached.enriched,
                    ),
                )

            candidates, error = await self._search_and_score(query)
            self._total_queries += 1

            if error is not None:
                return self._finish(start, await self._fallback_or_fail(query, options, error, queries=1))

            total_found, filtered = self._filter_with_total(candidates, options)
            filtered, enriched = await self._maybe_enrich(filtered, options)

            result = DiscoveryResult(
                success=True,
                results=filtered,
                total_found=total_found,
                source=SOURCE_SEARCH,
                queries_executed=1,
                enriched=enriched,
            )
            if filtered:
                await self.cache.set(cache_key, result)
            return self._finish(start, result)

        except Exception as e:
            # Última barreira: descoberta nunca propaga exceção
            logger.error(f"❌ Erro inesperado no discovery de '{query[:60]}': {type(e).__name__}: {e}")
            return self._finish(start, DiscoveryResult(success=False, error=str(e) or type(e).__name__))

    async def _search_and_score(self, query: str) -> Tuple[List[Candidate], Optional[str]]:
        """
        rate limit -> busca -> parse -> score.

        Returns:
            (candidatos ordenados, erro). Erro preenchido quando a busca
            falha ou o parse não extrai nenhum candidato.
        """
        await self.rate_limiter.acquire()

        response = await self.search_client.search(query)
        if not response.success:
            logger.warning(f"⚠️ Busca falhou para '{query[:60]}': {response.error}")
            return [], response.error or "Busca falhou"

        parsed = self.parser.parse_response(response.data or "")
        if not parsed:
            logger.warning(f"⚠️ Nenhum candidato extraído da resposta para '{query[:60]}'")
            return [], "Nenhum servidor MCP encontrado na resposta da busca"

        scored = await self.scorer.score_candidates(parsed, query)
        logger.info(f"📦 {len(scored)} candidatos pontuados para '{query[:60]}'")
        return scored, None

    async def _fallback_or_fail(
        self,
        query: str,
        options: DiscoveryOptions,
        error: str,
        queries: int
    ) -> DiscoveryResult:
        if not self.config.fallback_enabled:
            failure = EngineFailure(error)
            logger.error(f"❌ Discovery falhou sem fallback: {failure}")
            return DiscoveryResult(success=False, error=str(failure), queries_executed=queries)

        self._fallback_used += 1
        logger.info(f"🛟 Usando fallback para '{query[:60]}' ({error})")
        try:
            candidates = await self.fallback.attempt_fallback_discovery(query, options)
        except DiscoveryError as e:
            logger.error(f"❌ Fallback falhou: {e}")
            return DiscoveryResult(success=False, error=f"{error}; fallback: {e}", queries_executed=queries)

        total_found, filtered = self._filter_with_total(candidates, options)
        if not filtered:
            logger.warning(f"⚠️ Fallback sem resultados para '{query[:60]}'")
            return DiscoveryResult(
                success=False,
                source=SOURCE_FALLBACK,
                error=f"{error}; fallback sem resultados",
                queries_executed=queries,
            )
        return DiscoveryResult(
            success=True,
            results=filtered,
            total_found=total_found,
            source=SOURCE_FALLBACK,
            queries_executed=queries,
        )

    # ------------------------------------------------------------------
    # Modo multi-query
    # ------------------------------------------------------------------

    async def discover_mcp_servers_intelligent(
        self,
        context: QueryContext,
        options: Optional[DiscoveryOptions] = None
    ) -> DiscoveryResult:
        """
        Descoberta multi-query: constrói queries a partir do contexto,
        executa todas em paralelo e consolida.

        Falhas individuais são ignoradas; se nenhuma query trouxer
        candidatos, usa o fallback com os nomes das ferramentas.
        """
        options = options or DiscoveryOptions()
        start = time.perf_counter()
        self._total_discoveries += 1

        try:
            queries = self.query_constructor.construct_queries(context)
            logger.info(f"🔍 Discovery inteligente: {len(queries)} queries para {len(context.tool_names)} ferramentas")

            outcomes = await asyncio.gather(
                *(self._run_constructed_query(q, options) for q in queries),
                return_exceptions=True
            )

            merged: Dict[Tuple[str, str], Candidate] = {}
            errors: List[str] = []
            for constructed, outcome in zip(queries, outcomes):
                if isinstance(outcome, BaseException):
                    logger.warning(f"⚠️ Query '{constructed.query[:60]}' falhou: {outcome}")
                    errors.append(str(outcome))
                    continue
                candidates, error = outcome
                if error is not None:
                    errors.append(error)
                for candidate in candidates:
                    current = merged.get(candidate.identity)
                    if current is None or candidate.confidence_score > current.confidence_score:
                        merged[candidate.identity] = candidate

            self._total_queries += len(queries)

            if not merged:
                error = errors[0] if errors else "Nenhuma query retornou candidatos"
                fallback_query = " ".join(context.tool_names) or " ".join(context.categories)
                return self._finish(
                    start,
                    await self._fallback_or_fail(fallback_query, options, error, queries=len(queries)),
                )

            ordered = sorted(merged.values(), key=lambda c: c.confidence_score, reverse=True)
            total_found, filtered = self._filter_with_total(ordered, options)
            filtered, enriched = await self._maybe_enrich(filtered, options)

            logger.info(
                f"✅ Discovery inteligente: {len(filtered)}/{total_found} candidatos "
                f"({len(errors)} queries com falha)"
            )
            return self._finish(
                start,
                DiscoveryResult(
                    success=True,
                    results=filtered,
                    total_found=total_found,
                    source=SOURCE_SEARCH,
                    queries_executed=len(queries),
                    enriched=enriched,
                ),
            )

        except Exception as e:
            logger.error(f"❌ Erro inesperado no discovery inteligente: {type(e).__name__}: {e}")
            return self._finish(start, DiscoveryResult(success=False, error=str(e) or type(e).__name__))

    async def _run_constructed_query(
        self,
        constructed: ConstructedQuery,
        options: DiscoveryOptions
    ) -> Tuple[List[Candidate], Optional[str]]:
        cache_key = generate_cache_key(constructed.query, options)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            self._cache_hits += 1
            return list(cached.results), None

        candidates, error = await self._search_and_score(constructed.query)
        if candidates:
            total_found, filtered = self._filter_with_total(candidates, options)
            if filtered:
                await self.cache.set(
                    cache_key,
                    DiscoveryResult(
                        success=True,
                        results=filtered,
                        total_found=total_found,
                        source=SOURCE_SEARCH,
                        queries_executed=1,
                    ),
                )
        return candidates, error

    # ------------------------------------------------------------------
    # Atalhos
    # ------------------------------------------------------------------

    async def discover_by_category(
        self,
        category: str,
        options: Optional[DiscoveryOptions] = None
    ) -> DiscoveryResult:
        """Busca servidores de uma categoria (restringe o filtro à categoria)."""
        options = (options or DiscoveryOptions()).model_copy(update={"categories": [category]})
        return await self.discover_mcp_servers(
            f"MCP server {category} Model Context Protocol tools", options
        )

    async def discover_by_tool_type(
        self,
        tool_type: str,
        options: Optional[DiscoveryOptions] = None
    ) -> DiscoveryResult:
        return await self.discover_mcp_servers(
            f"MCP server {tool_type} tools Model Context Protocol", options
        )

    async def discover_by_technology(
        self,
        technology: str,
        options: Optional[DiscoveryOptions] = None
    ) -> DiscoveryResult:
        return await self.discover_mcp_servers(
            f"MCP server {technology} integration Model Context Protocol", options
        )

    # ------------------------------------------------------------------
    # Filtro
    # ------------------------------------------------------------------

    def filter_results(self, candidates: List[Candidate], options: DiscoveryOptions) -> List[Candidate]:
        """
        Aplica os filtros de DiscoveryOptions, deduplica por (name, repository_url),
        ordena por score e trunca em max_results.
        """
        return self._filter_with_total(candidates, options)[1]

    def _filter_with_total(
        self,
        candidates: List[Candidate],
        options: DiscoveryOptions
    ) -> Tuple[int, List[Candidate]]:
        kept: Dict[Tuple[str, str], Candidate] = {}
        for candidate in candidates:
            if candidate.confidence_score < options.min_confidence_score:
                continue

            text = f"{candidate.name} {candidate.setup_instructions}".lower()
            if options.categories and not any(c.lower() in text for c in options.categories):
                continue
            if options.exclude_categories and any(c.lower() in text for c in options.exclude_categories):
                continue
            if not options.include_npm_packages and candidate.npm_package:
                continue
            if not options.include_github_repos and "github.com" in candidate.repository_url.lower():
                continue

            current = kept.get(candidate.identity)
            if current is None or candidate.confidence_score > current.confidence_score:
                kept[candidate.identity] = candidate

        ordered = sorted(kept.values(), key=lambda c: c.confidence_score, reverse=True)
        logger.debug(f"[Engine] Filtro: {len(candidates)} -> {len(ordered)} (max {options.max_results})")
        return len(ordered), ordered[:options.max_results]

    # ------------------------------------------------------------------
    # Enriquecimento via scraping
    # ------------------------------------------------------------------

    async def _maybe_enrich(
        self,
        candidates: List[Candidate],
        options: DiscoveryOptions
    ) -> Tuple[List[Candidate], int]:
        if not (self.config.web_scraping_enabled and options.enable_web_scraping):
            return candidates, 0
        if self.web_scraper is None or not candidates or options.max_scraping_targets == 0:
            return candidates, 0
        return await self.enrich_with_web_scraping(candidates, options.max_scraping_targets)

    async def enrich_with_web_scraping(
        self,
        candidates: List[Candidate],
        max_targets: int = 3
    ) -> Tuple[List[Candidate], int]:
        """
        Raspa a documentação dos top candidatos e ajusta o score.

        O score recebe até ENRICHMENT_MAX_BOOST proporcional à confiança
        das instruções de setup extraídas. Falhas de scraping deixam o
        candidato inalterado.

        Returns:
            (candidatos reordenados, quantidade enriquecida)
        """
        if self.web_scraper is None:
            return candidates, 0

        top = candidates[:max_targets]
        logger.info(f"📄 Enriquecendo {len(top)} candidatos via scraping")

        scraped_per_candidate = await asyncio.gather(
            *(self.web_scraper.scrape_multiple(self.web_scraper.generate_targets(c)) for c in top),
            return_exceptions=True
        )

        enriched_count = 0
        updated: List[Candidate] = []
        for candidate, scraped in zip(top, scraped_per_candidate):
            if isinstance(scraped, BaseException):
                logger.warning(f"⚠️ Scraping falhou para {candidate.name}: {scraped}")
                updated.append(candidate)
                continue

            confidences = [
                self.instruction_parser.parse(page).confidence
                for page in scraped if page.success
            ]
            if not confidences:
                updated.append(candidate)
                continue

            boost = ENRICHMENT_MAX_BOOST * max(confidences)
            updated.append(candidate.with_score(candidate.confidence_score + boost))
            enriched_count += 1
            logger.debug(f"[Engine] {candidate.name}: +{boost:.3f} via {len(confidences)} páginas")

        result = updated + candidates[max_targets:]
        result.sort(key=lambda c: c.confidence_score, reverse=True)
        logger.info(f"✅ Enriquecimento: {enriched_count}/{len(top)} candidatos")
        return result, enriched_count

    # ------------------------------------------------------------------
    # Feedback / administração
    # ------------------------------------------------------------------

    def record_feedback(
        self,
        candidate: Candidate,
        query: str,
        actual_score: float,
        success: bool,
        usage_duration: float = 0,
        tags: Optional[List[str]] = None,
        feedback: str = ""
    ) -> FeedbackRecord:
        """Registra o resultado real de um candidato para o aprendizado adaptativo."""
        return self.scorer.record_feedback(
            candidate, query, actual_score, success,
            usage_duration=usage_duration, tags=tags, feedback=feedback
        )

    async def clear_cache(self) -> None:
        await self.cache.clear()
        logger.info("🧹 Cache de discovery limpo")

    def _finish(self, start: float, result: DiscoveryResult) -> DiscoveryResult:
        result.search_time = _elapsed_ms(start)
        self._total_time_ms += result.search_time
        if result.success:
            self._successful_discoveries += 1
        else:
            self._failed_discoveries += 1
        logger.info(
            f"{'✅' if result.success else '❌'} Discovery [{result.source}]: "
            f"{len(result.results)}/{result.total_found} resultados em {result.search_time:.0f}ms"
        )
        return result

    def get_discovery_stats(self) -> Dict[str, Any]:
        """Métricas do engine e de cada colaborador."""
        avg_time = self._total_time_ms / self._total_discoveries if self._total_discoveries else 0.0
        stats: Dict[str, Any] = {
            "total_discoveries": self._total_discoveries,
            "successful_discoveries": self._successful_discoveries,
            "failed_discoveries": self._failed_discoveries,
            "cache_hits": self._cache_hits,
            "fallback_used": self._fallback_used,
            "total_queries": self._total_queries,
            "avg_search_time_ms": round(avg_time, 2),
            "rate_limiter": self.rate_limiter.get_status(),
            "cache": self.cache.get_stats(),
            "search": self.search_client.get_usage_stats(),
            "fallback": self.fallback.get_stats(),
            "query_constructor": self.query_constructor.get_stats(),
        }
        if self.web_scraper is not None:
            stats["web_scraper"] = self.web_scraper.get_stats()
        return stats

    async def close(self) -> None:
        """Libera clientes HTTP e a task de limpeza do cache."""
        await self.cache.stop()
        await self.search_client.close()
        if self.web_scraper is not None:
            await self.web_scraper.close()
        logger.info("DiscoveryEngine: Recursos liberados")


def create_discovery_engine(config: Optional[DiscoveryConfig] = None) -> DiscoveryEngine:
    """
    Monta um DiscoveryEngine com os colaboradores padrão.

    Args:
        config: Configuração; se None, usa DiscoveryConfig.from_sources()
    """
    config = config or DiscoveryConfig.from_sources()

    rate_limiter = RateLimiter(requests_per_minute=config.rate_limit_per_minute, name="search")
    cache = CacheManager(
        enabled=config.cache_enabled,
        ttl_minutes=config.cache_ttl_minutes,
        max_entries=config.cache_max_entries,
        enable_lru=config.cache_enable_lru,
    )
    search_client = SearchClient(
        api_key=config.api_key,
        max_retries=config.max_retries,
        retry_delay=config.retry_delay,
        rate_limiter=rate_limiter,
    )

    learning_cfg = get_section("learning", {})
    learning = AdaptiveLearningSystem(
        learning_rate=learning_cfg.get("learning_rate", 0.01),
        min_samples=learning_cfg.get("min_samples", 10),
        enable_learning=learning_cfg.get("enable_learning", True),
        storage_path=settings.LEARNING_DATA_PATH or None,
    )
    scorer = ConfidenceScorer(learning=learning)

    web_scraper = None
    if config.web_scraping_enabled:
        scraping = config.web_scraping
        web_scraper = WebScraper(
            max_retries=scraping.max_retries,
            retry_delay=scraping.retry_delay,
            timeout=scraping.timeout,
            rate_limit_per_minute=scraping.rate_limit_per_minute,
            respect_robots_txt=scraping.respect_robots_txt,
            max_content_length=scraping.max_content_length,
            batch_delay=scraping.batch_delay,
        )

    return DiscoveryEngine(
        config,
        rate_limiter=rate_limiter,
        cache=cache,
        search_client=search_client,
        parser=ResponseParser(),
        scorer=scorer,
        fallback=FallbackManager(),
        query_constructor=QueryConstructor(),
        web_scraper=web_scraper,
        instruction_parser=SetupInstructionParser(),
    )
