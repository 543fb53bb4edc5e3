"""
Constantes globais do MCP Discovery.

Este arquivo centraliza constantes que são usadas em múltiplos módulos.
Constantes específicas de cada módulo devem ficar em seus próprios arquivos.
"""

# Versão do sistema
VERSION = "1.0.0"

# Prefixo das chaves de cache de discovery
CACHE_KEY_PREFIX = "mcp_discovery_"

# User-Agent descritivo para scraping de documentação
DEFAULT_USER_AGENT = "MCP-Discovery/1.0 (Web Scraper)"

# Limites de processamento
MAX_CONTENT_LENGTH = 1024 * 1024  # 1MB
MAX_REDIRECTS = 5
MAX_RESPONSE_TIME_SAMPLES = 100
MAX_SEARCH_HISTORY = 100

# Termos que identificam o protocolo em textos livres
MCP_TERMS = ["mcp", "model context protocol"]

# Namespace oficial dos servidores de referência
OFFICIAL_NPM_SCOPE = "@modelcontextprotocol/"
OFFICIAL_SERVER_PREFIX = "@modelcontextprotocol/server-"
