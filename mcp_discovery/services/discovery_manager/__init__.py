"""
Discovery Manager - Controle de infraestrutura da busca.

Este módulo centraliza o controle de acesso à API de busca:
- Cliente da API (Perplexity, compatível com OpenAI) com retry/backoff
- Cache TTL de buscas recentes (LRU/FIFO)
- Rate limiting por janela (deslizante ou fixa)

A lógica de negócio de discovery fica em mcp_discovery/services/discovery/
"""

from .search_client import (
    SearchClient,
    SearchResponse,
)
from .cache_manager import (
    CacheManager,
    CacheEntry,
    generate_cache_key,
)
from .rate_limiter import (
    RateLimiter,
    RateLimiterMetrics,
)

__all__ = [
    # Search
    "SearchClient",
    "SearchResponse",
    # Cache
    "CacheManager",
    "CacheEntry",
    "generate_cache_key",
    # Rate Limiter
    "RateLimiter",
    "RateLimiterMetrics",
]
