"""
Testes da camada de configuração: JSON em configs/, schema e logging.
"""

import json
import logging

import pytest
from pydantic import ValidationError

from mcp_discovery.core import config_loader
from mcp_discovery.core.logging_utils import setup_logging
from mcp_discovery.schemas.config import DiscoveryConfig


@pytest.fixture(autouse=True)
def fresh_config_cache():
    config_loader.reset_cache()
    yield
    config_loader.reset_cache()


def test_packaged_discovery_config_loads():
    section = config_loader.get_section("discovery")
    assert section["rate_limit_per_minute"] == 20
    assert section["fallback_enabled"] is True


def test_missing_file_returns_default(tmp_path):
    assert config_loader.load_config("nao_existe", config_dir=tmp_path) == {}
    assert config_loader.get_section("nao_existe", {"a": 1}) == {"a": 1}


def test_invalid_json_is_ignored(tmp_path):
    (tmp_path / "broken.json").write_text("{ invalid")
    assert config_loader.load_config("broken", config_dir=tmp_path) == {}


def test_load_config_caches_by_directory(tmp_path):
    path = tmp_path / "custom.json"
    path.write_text(json.dumps({"value": 1}))
    assert config_loader.load_config("custom", config_dir=tmp_path) == {"value": 1}

    path.write_text(json.dumps({"value": 2}))
    assert config_loader.load_config("custom", config_dir=tmp_path) == {"value": 1}
    assert config_loader.load_config("custom", config_dir=tmp_path, use_cache=False) == {"value": 2}


def test_discovery_config_accepts_camel_case():
    config = DiscoveryConfig.model_validate({
        "maxRetries": 5,
        "cacheTtlMinutes": 15,
        "webScraping": {"respectRobotsTxt": False},
    })
    assert config.max_retries == 5
    assert config.cache_ttl_minutes == 15
    assert config.web_scraping.respect_robots_txt is False


def test_discovery_config_rejects_invalid_values():
    with pytest.raises(ValidationError):
        DiscoveryConfig(rate_limit_per_minute=0)
    with pytest.raises(ValidationError):
        DiscoveryConfig(max_retries=-1)


def test_from_sources_merges_overrides_over_files():
    config = DiscoveryConfig.from_sources({"api_key": "k", "web_scraping": {"timeout": 5.0}})

    assert config.api_key == "k"
    assert config.rate_limit_per_minute == 20
    assert config.web_scraping.timeout == 5.0
    assert config.web_scraping.rate_limit_per_minute == 10


def test_setup_logging_quiets_httpx():
    setup_logging("debug")
    assert logging.getLogger("httpx").level == logging.WARNING
