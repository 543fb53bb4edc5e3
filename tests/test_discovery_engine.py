"""
Testes do DiscoveryEngine com colaboradores reais e busca falsa.
"""

import time

import httpx
import openai

from mcp_discovery.schemas.candidate import DiscoveryOptions
from mcp_discovery.schemas.config import DiscoveryConfig
from mcp_discovery.services.discovery import (
    DiscoveryEngine,
    FallbackManager,
    QueryConstructor,
    QueryContext,
    ResponseParser,
    create_discovery_engine,
)
from mcp_discovery.services.discovery_manager import CacheManager, RateLimiter, SearchClient
from mcp_discovery.services.learning import ConfidenceScorer
from mcp_discovery.services.scraper import SetupInstructionParser, WebScraper

from conftest import POSTGRES_RESPONSE, fake_openai_client, http_response, make_candidate

OPEN_OPTIONS = DiscoveryOptions(min_confidence_score=0.0)


def build_engine(*responses, config=None, rate_limiter=None, web_scraper=None, **overrides) -> DiscoveryEngine:
    config = config or DiscoveryConfig(api_key="test-key", **overrides)
    limiter = rate_limiter or RateLimiter(requests_per_minute=100)
    return DiscoveryEngine(
        config,
        rate_limiter=limiter,
        cache=CacheManager(enabled=config.cache_enabled),
        search_client=SearchClient(
            api_key="test-key",
            retry_delay=0.0,
            max_retries=config.max_retries,
            client=fake_openai_client(*responses),
        ),
        parser=ResponseParser(),
        scorer=ConfidenceScorer(),
        fallback=FallbackManager(),
        query_constructor=QueryConstructor(),
        web_scraper=web_scraper,
        instruction_parser=SetupInstructionParser(),
    )


def search_calls(engine: DiscoveryEngine) -> int:
    return engine.search_client._client.chat.completions.create.await_count


def server_error() -> openai.APIStatusError:
    return openai.APIStatusError("HTTP 500", response=http_response(500), body=None)


async def test_successful_discovery_returns_scored_candidates():
    engine = build_engine(POSTGRES_RESPONSE)
    result = await engine.discover_mcp_servers("postgres database", OPEN_OPTIONS)

    assert result.success
    assert result.source == "perplexity"
    assert result.queries_executed == 1
    assert result.total_found == 2
    assert {c.name for c in result.results} == {"postgres-mcp", "filesystem"}
    scores = [c.confidence_score for c in result.results]
    assert scores == sorted(scores, reverse=True)
    assert result.search_time >= 0


async def test_second_identical_call_hits_cache():
    engine = build_engine(POSTGRES_RESPONSE)

    first = await engine.discover_mcp_servers("postgres database", OPEN_OPTIONS)
    second = await engine.discover_mcp_servers("postgres database", OPEN_OPTIONS)

    assert second.source == "cache"
    assert [c.name for c in second.results] == [c.name for c in first.results]
    assert search_calls(engine) == 1
    assert engine.get_discovery_stats()["cache_hits"] == 1


async def test_different_options_miss_cache():
    engine = build_engine(POSTGRES_RESPONSE, POSTGRES_RESPONSE)

    await engine.discover_mcp_servers("postgres database", OPEN_OPTIONS)
    await engine.discover_mcp_servers("postgres database", DiscoveryOptions(min_confidence_score=0.0, max_results=1))

    assert search_calls(engine) == 2


async def test_search_failure_uses_fallback():
    engine = build_engine(server_error(), max_retries=0)
    result = await engine.discover_mcp_servers("filesystem")

    assert result.success
    assert result.source == "fallback"
    assert [c.name for c in result.results] == ["filesystem-mcp"]
    assert result.results[0].confidence_score == 0.95


async def test_empty_parse_uses_fallback():
    engine = build_engine("I am not aware of any such servers, sorry about that, truly nothing.")
    result = await engine.discover_mcp_servers("sqlite")

    assert result.source == "fallback"
    assert [c.name for c in result.results] == ["sqlite-mcp"]


async def test_empty_fallback_returns_explicit_error():
    engine = build_engine(server_error(), max_retries=0)
    result = await engine.discover_mcp_servers("quantum teleportation")

    assert not result.success
    assert result.source == "fallback"
    assert result.results == []
    assert result.total_found == 0
    assert "HTTP 500" in result.error
    assert "fallback" in result.error
    assert engine.get_discovery_stats()["fallback_used"] == 1


async def test_failure_without_fallback_returns_error_result():
    engine = build_engine(server_error(), max_retries=0, fallback_enabled=False)
    result = await engine.discover_mcp_servers("filesystem")

    assert not result.success
    assert result.results == []
    assert result.error


async def test_unexpected_error_never_raises(monkeypatch):
    engine = build_engine(POSTGRES_RESPONSE)

    def broken(text):
        raise RuntimeError("parser quebrado")

    monkeypatch.setattr(engine.parser, "parse_response", broken)
    result = await engine.discover_mcp_servers("postgres")

    assert not result.success
    assert "parser quebrado" in result.error


async def test_rate_limit_delays_second_search():
    limiter = RateLimiter(requests_per_minute=1, window_seconds=0.3)
    engine = build_engine(POSTGRES_RESPONSE, POSTGRES_RESPONSE, rate_limiter=limiter, cache_enabled=False)

    start = time.monotonic()
    await engine.discover_mcp_servers("postgres", OPEN_OPTIONS)
    await engine.discover_mcp_servers("postgres", OPEN_OPTIONS)

    assert time.monotonic() - start >= 0.29
    assert search_calls(engine) == 2


# --- Filtros ---

def test_filter_results_applies_all_options():
    engine = build_engine()
    candidates = [
        make_candidate(name="database-mcp", repository_url="https://github.com/a/database-mcp",
                       npm_package=None, setup_instructions="sql database", confidence_score=0.8),
        make_candidate(name="files-mcp", repository_url="https://gitlab.com/b/files-mcp",
                       npm_package=None, setup_instructions="file system", confidence_score=0.7),
        make_candidate(name="low-mcp", repository_url="https://github.com/c/low-mcp",
                       setup_instructions="database", confidence_score=0.1),
        make_candidate(name="npm-db-mcp", repository_url="https://gitlab.com/d/npm-db-mcp",
                       npm_package="npm-db-mcp", setup_instructions="database", confidence_score=0.9),
    ]

    only_db = engine.filter_results(candidates, DiscoveryOptions(categories=["database"]))
    assert [c.name for c in only_db] == ["npm-db-mcp", "database-mcp"]

    no_db = engine.filter_results(candidates, DiscoveryOptions(exclude_categories=["database"]))
    assert [c.name for c in no_db] == ["files-mcp"]

    no_npm = engine.filter_results(candidates, DiscoveryOptions(include_npm_packages=False))
    assert [c.name for c in no_npm] == ["database-mcp", "files-mcp"]

    no_github = engine.filter_results(candidates, DiscoveryOptions(include_github_repos=False))
    assert [c.name for c in no_github] == ["npm-db-mcp", "files-mcp"]

    top_one = engine.filter_results(candidates, DiscoveryOptions(max_results=1))
    assert [c.name for c in top_one] == ["npm-db-mcp"]


def test_filter_results_dedupes_by_identity():
    engine = build_engine()
    duplicate = [make_candidate(confidence_score=0.4), make_candidate(confidence_score=0.6)]

    result = engine.filter_results(duplicate, DiscoveryOptions())
    assert len(result) == 1
    assert result[0].confidence_score == 0.6


async def test_total_found_counts_before_truncation():
    engine = build_engine(POSTGRES_RESPONSE)
    result = await engine.discover_mcp_servers("postgres", DiscoveryOptions(min_confidence_score=0.0, max_results=1))

    assert len(result.results) == 1
    assert result.total_found == 2


# --- Atalhos ---

async def test_discover_by_category_builds_query_and_filter():
    engine = build_engine(POSTGRES_RESPONSE)
    result = await engine.discover_by_category("postgres", OPEN_OPTIONS)

    kwargs = engine.search_client._client.chat.completions.create.await_args.kwargs
    assert kwargs["messages"][1]["content"] == "MCP server postgres Model Context Protocol tools"
    assert [c.name for c in result.results] == ["postgres-mcp"]


async def test_discover_by_tool_type_and_technology_queries():
    engine = build_engine(POSTGRES_RESPONSE, POSTGRES_RESPONSE)
    create = engine.search_client._client.chat.completions.create

    await engine.discover_by_tool_type("database")
    assert create.await_args.kwargs["messages"][1]["content"] == "MCP server database tools Model Context Protocol"

    await engine.discover_by_technology("python")
    assert create.await_args.kwargs["messages"][1]["content"] == "MCP server python integration Model Context Protocol"


# --- Multi-query ---

async def test_intelligent_discovery_merges_and_continues_past_failures():
    engine = build_engine(POSTGRES_RESPONSE, server_error(), max_retries=0)
    context = QueryContext(technologies=["python"], categories=["database"])

    result = await engine.discover_mcp_servers_intelligent(context, OPEN_OPTIONS)

    assert result.success
    assert result.source == "perplexity"
    assert result.queries_executed == 2
    assert {c.name for c in result.results} == {"postgres-mcp", "filesystem"}
    assert len(result.results) == 2


async def test_intelligent_discovery_falls_back_when_everything_fails():
    engine = build_engine(server_error(), server_error(), max_retries=0)
    context = QueryContext(tool_names=["filesystem"])

    result = await engine.discover_mcp_servers_intelligent(context)

    assert result.source == "fallback"
    assert [c.name for c in result.results] == ["filesystem-mcp"]


# --- Enriquecimento ---

async def test_web_scraping_enrichment_boosts_score():
    readme = "# Postgres MCP\n\n```bash\nnpm install postgres-mcp\n```\n\nSet POSTGRES_API_KEY first.\n"

    def handler(request):
        if request.url.path == "/robots.txt":
            return httpx.Response(404)
        return httpx.Response(200, text=readme)

    scraper = WebScraper(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        retry_delay=0.0,
        batch_delay=0.0,
        rate_limiter=RateLimiter(requests_per_minute=100, name="scraper"),
    )
    options = DiscoveryOptions(min_confidence_score=0.0, enable_web_scraping=True, max_scraping_targets=1)

    plain = await build_engine(POSTGRES_RESPONSE).discover_mcp_servers("postgres", OPEN_OPTIONS)
    enriched = await build_engine(
        POSTGRES_RESPONSE, web_scraper=scraper, web_scraping_enabled=True
    ).discover_mcp_servers("postgres", options)

    assert enriched.enriched == 1
    top_plain = plain.results[0]
    top_enriched = next(c for c in enriched.results if c.name == top_plain.name)
    assert top_enriched.confidence_score > top_plain.confidence_score or top_plain.confidence_score == 1.0


async def test_enrichment_requires_config_flag():
    scraper = WebScraper(client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))))
    engine = build_engine(POSTGRES_RESPONSE, web_scraper=scraper, web_scraping_enabled=False)

    result = await engine.discover_mcp_servers(
        "postgres", DiscoveryOptions(min_confidence_score=0.0, enable_web_scraping=True)
    )
    assert result.enriched == 0


# --- Administração ---

async def test_feedback_and_stats():
    engine = build_engine(POSTGRES_RESPONSE)
    result = await engine.discover_mcp_servers("postgres", OPEN_OPTIONS)

    record = engine.record_feedback(result.results[0], "postgres", actual_score=0.9, success=True)
    assert record.candidate_name == result.results[0].name

    stats = engine.get_discovery_stats()
    assert stats["total_discoveries"] == 1
    assert stats["successful_discoveries"] == 1
    assert stats["search"]["successful_requests"] == 1

    await engine.clear_cache()
    assert engine.cache.get_keys() == []
    await engine.close()


def test_create_discovery_engine_wires_defaults():
    config = DiscoveryConfig.from_sources({"api_key": "k", "rate_limit_per_minute": 7, "cache_enabled": False})
    engine = create_discovery_engine(config)

    assert engine.rate_limiter.requests_per_minute == 7
    assert not engine.cache.enabled
    assert engine.web_scraper is None
    assert engine.search_client.has_api_key


def test_create_discovery_engine_with_scraping():
    config = DiscoveryConfig.from_sources({"web_scraping_enabled": True, "web_scraping": {"rate_limit_per_minute": 4}})
    engine = create_discovery_engine(config)

    assert isinstance(engine.web_scraper, WebScraper)
    assert engine.web_scraper.rate_limit_per_minute == 4


# --- Ranking ponta a ponta ---

DATABASE_RESPONSE = """MCP servers for databases:

1. **PostgreSQL MCP Server** (postgres-mcp)
   - Repository: https://github.com/example/postgres-mcp
   - Package: postgres-mcp
   - Install: npm install postgres-mcp
   - Requires DATABASE_URL with the connection string.

2. **Database Helper** (db-helper-mcp)
   - A database tool mentioned on a forum, no repository available.
"""


async def test_database_query_ranks_complete_candidate_above_sparse_one():
    engine = build_engine(DATABASE_RESPONSE)
    result = await engine.discover_mcp_servers("database tools", OPEN_OPTIONS)

    assert result.success
    assert result.source == "perplexity"
    names = [c.name for c in result.results]
    assert names[0] == "postgres-mcp"
    top = result.results[0]
    assert top.repository_url and top.npm_package
    sparse = next(c for c in result.results if c.name == "db-helper-mcp")
    assert sparse.repository_url == ""
    assert sparse.confidence_score < top.confidence_score
