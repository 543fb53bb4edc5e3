"""
Testes do FallbackManager (registro curado).
"""

from mcp_discovery.schemas.candidate import DiscoveryOptions
from mcp_discovery.services.discovery import FALLBACK_CONFIDENCE, FallbackManager

from conftest import make_candidate


async def test_filesystem_query_returns_official_entry():
    results = await FallbackManager().attempt_fallback_discovery("filesystem")

    assert len(results) == 1
    entry = results[0]
    assert entry.name == "filesystem-mcp"
    assert entry.npm_package == "@modelcontextprotocol/server-filesystem"
    assert entry.repository_url == "https://github.com/modelcontextprotocol/servers/tree/main/src/filesystem"
    assert entry.confidence_score == FALLBACK_CONFIDENCE == 0.95
    assert entry.setup_instructions.startswith("Install via npm: npm install @modelcontextprotocol/server-filesystem")


async def test_all_query_words_must_match():
    manager = FallbackManager()
    assert await manager.attempt_fallback_discovery("postgres connection") != []
    assert await manager.attempt_fallback_discovery("postgres kubernetes") == []


async def test_short_words_are_ignored():
    results = await FallbackManager().attempt_fallback_discovery("a sqlite db")
    assert [r.name for r in results] == ["sqlite-mcp"]


async def test_credentials_are_carried():
    results = await FallbackManager().attempt_fallback_discovery("brave")
    assert results[0].required_credentials == ["BRAVE_API_KEY"]


async def test_results_capped_by_options():
    results = await FallbackManager().attempt_fallback_discovery("mcp", DiscoveryOptions(max_results=3))
    assert len(results) == 3


async def test_category_filters_apply():
    manager = FallbackManager()
    options = DiscoveryOptions(exclude_categories=["git"])
    results = await manager.attempt_fallback_discovery("mcp", options)
    assert all("git" not in r.name for r in results)


async def test_disabled_registry_returns_nothing():
    manager = FallbackManager(enable_predefined_registry=False, enable_alternative_sources=True)
    assert await manager.attempt_fallback_discovery("filesystem") == []


async def test_registry_can_be_changed_at_runtime():
    manager = FallbackManager()
    manager.add_to_registry(make_candidate(name="weather-mcp", repository_url="https://github.com/acme/weather-mcp",
                                           npm_package="weather-mcp", setup_instructions="npm install weather-mcp"))
    assert [r.name for r in await manager.attempt_fallback_discovery("weather")] == ["weather-mcp"]

    assert manager.remove_from_registry("weather-mcp")
    assert not manager.remove_from_registry("weather-mcp")
    assert len(manager.get_registry()) == 10


def test_update_config_toggles_sources():
    manager = FallbackManager()
    manager.update_config(enable_alternative_sources=True, max_fallback_results=5)

    stats = manager.get_stats()
    assert stats["enabled_sources"] == 4
    assert stats["max_fallback_results"] == 5
    assert stats["registry_size"] == 10
