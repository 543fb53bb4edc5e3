"""
Schemas Pydantic de configuração.

Chaves aceitas em snake_case ou camelCase (maxRetries, rateLimitPerMinute, ...).
"""
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel

from mcp_discovery.core.config import settings
from mcp_discovery.core.config_loader import get_section


class WebScrapingConfig(BaseModel):
    """Configuração aninhada do WebScraper."""
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0.0, description="Delay base do backoff em segundos")
    timeout: float = Field(default=30.0, gt=0.0, description="Timeout por requisição em segundos")
    rate_limit_per_minute: int = Field(default=10, ge=1)
    respect_robots_txt: bool = True
    max_content_length: int = Field(default=1024 * 1024, gt=0, description="Limite do corpo em bytes")
    batch_delay: float = Field(default=2.0, ge=0.0, description="Pausa entre lotes em segundos")

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DiscoveryConfig(BaseModel):
    """Configuração do DiscoveryEngine."""
    api_key: str = Field(default="", description="Chave da API de busca")
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0.0, description="Delay base do backoff em segundos")
    rate_limit_per_minute: int = Field(default=20, ge=1)
    cache_enabled: bool = True
    cache_ttl_minutes: float = Field(default=60, gt=0)
    cache_max_entries: int = Field(default=1000, ge=1)
    cache_enable_lru: bool = True
    fallback_enabled: bool = True
    web_scraping_enabled: bool = False
    web_scraping: WebScrapingConfig = Field(default_factory=WebScrapingConfig)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def from_sources(cls, overrides: Optional[Dict[str, Any]] = None) -> "DiscoveryConfig":
        """
        Monta a configuração na ordem: defaults < configs/*.json < overrides.

        A API key vem de PERPLEXITY_API_KEY quando não informada.
        """
        data: Dict[str, Any] = dict(get_section("discovery", {}))
        data["web_scraping"] = dict(get_section("scraping", {}))

        for key, value in (overrides or {}).items():
            if key in ("web_scraping", "webScraping") and isinstance(value, dict):
                data["web_scraping"].update(value)
            else:
                data[key] = value

        if not data.get("api_key") and not data.get("apiKey"):
            data["api_key"] = settings.PERPLEXITY_API_KEY

        return cls.model_validate(data)
