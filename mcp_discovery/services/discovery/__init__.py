"""
Discovery - Lógica de negócio da descoberta de servidores MCP.

- DiscoveryEngine: orquestra cache, busca, parse, score e fallback
- QueryConstructor / QueryTemplateRegistry: queries a partir de dicas
- ResponseParser: texto livre -> candidatos
- FallbackManager: registro curado de servidores oficiais

Infraestrutura (cliente, cache, rate limit) fica em
mcp_discovery/services/discovery_manager/
"""

from .discovery_engine import (
    DiscoveryEngine,
    create_discovery_engine,
)
from .query_constructor import (
    QueryConstructor,
    QueryContext,
    ConstructedQuery,
)
from .query_templates import (
    QueryTemplate,
    QueryTemplateRegistry,
)
from .response_parser import ResponseParser
from .fallback_manager import (
    FallbackManager,
    FALLBACK_CONFIDENCE,
)

__all__ = [
    # Engine
    "DiscoveryEngine",
    "create_discovery_engine",
    # Queries
    "QueryConstructor",
    "QueryContext",
    "ConstructedQuery",
    "QueryTemplate",
    "QueryTemplateRegistry",
    # Parser
    "ResponseParser",
    # Fallback
    "FallbackManager",
    "FALLBACK_CONFIDENCE",
]
