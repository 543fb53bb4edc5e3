"""
Fallback Manager - Registro curado de servidores MCP oficiais.

Usado quando a busca ao vivo falha ou não retorna candidatos. O registro
é semeado na construção e pode ser alterado em tempo de execução.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from mcp_discovery.core.constants import OFFICIAL_SERVER_PREFIX
from mcp_discovery.schemas.candidate import Candidate, DiscoveryOptions

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.95
_SERVERS_REPO = "https://github.com/modelcontextprotocol/servers/tree/main/src"

# (servidor, linha de configuração, credenciais)
_REGISTRY_SEED = [
    ("filesystem", "Configure in your MCP client with appropriate file system permissions.", []),
    ("git", "Configure with git repository paths and authentication if needed.", []),
    ("sqlite", "Configure with SQLite database file paths.", []),
    ("brave-search", "Configure with Brave Search API key.", ["BRAVE_API_KEY"]),
    ("fetch", "Configure with allowed domains and request limits.", []),
    ("postgres", "Configure with PostgreSQL connection details.", ["POSTGRES_CONNECTION_STRING"]),
    ("puppeteer", "Configure with browser settings and allowed domains.", []),
    ("sequential-thinking", "No additional configuration required.", []),
    ("memory", "Configure with memory storage settings.", []),
    ("github", "Configure with GitHub personal access token.", ["GITHUB_PERSONAL_ACCESS_TOKEN"]),
]


@dataclass
class FallbackSource:
    name: str
    description: str
    priority: int
    enabled: bool


def official_entry(server: str, configuration: str, credentials: List[str]) -> Candidate:
    """Entrada do registro para um servidor de modelcontextprotocol/servers."""
    url = f"{_SERVERS_REPO}/{server}"
    package = f"{OFFICIAL_SERVER_PREFIX}{server}"
    return Candidate(
        name=f"{server}-mcp",
        repository_url=url,
        npm_package=package,
        documentation_url=url,
        setup_instructions=f"Install via npm: npm install {package}\n{configuration}",
        required_credentials=list(credentials),
        confidence_score=FALLBACK_CONFIDENCE,
    )


class FallbackManager:
    """
    Gerenciador de fallback do discovery.

    Fontes:
    - predefined-registry: lista curada (sempre local)
    - github-search / npm-search / community-lists: fontes alternativas
      (ainda não integradas; retornam vazio)
    """

    def __init__(
        self,
        enable_predefined_registry: bool = True,
        enable_alternative_sources: bool = False,
        max_fallback_results: int = 10
    ):
        self.enable_predefined_registry = enable_predefined_registry
        self.enable_alternative_sources = enable_alternative_sources
        self.max_fallback_results = max_fallback_results

        self._registry: List[Candidate] = [official_entry(*seed) for seed in _REGISTRY_SEED]
        self._sources: List[FallbackSource] = []
        self._init_sources()

        self._total_attempts = 0
        self._total_results = 0

        logger.info(f"✅ FallbackManager: registro com {len(self._registry)} servidores")

    def _init_sources(self) -> None:
        self._sources = [
            FallbackSource("predefined-registry", "Lista curada de servidores MCP conhecidos", 1,
                           self.enable_predefined_registry),
            FallbackSource("github-search", "Busca de repositórios MCP no GitHub", 2,
                           self.enable_alternative_sources),
            FallbackSource("npm-search", "Busca de pacotes MCP no npm", 3,
                           self.enable_alternative_sources),
            FallbackSource("community-lists", "Listas da comunidade", 4,
                           self.enable_alternative_sources),
        ]

    async def attempt_fallback_discovery(
        self,
        query: str,
        options: Optional[DiscoveryOptions] = None
    ) -> List[Candidate]:
        """
        Busca no registro curado (e fontes alternativas, se habilitadas).

        Uma entrada casa quando todas as palavras da query com mais de
        2 caracteres aparecem no texto da entrada.
        """
        self._total_attempts += 1
        max_results = options.max_results if options else self.max_fallback_results
        results: List[Candidate] = []

        if self.enable_predefined_registry:
            results.extend(self._search_registry(query, options))

        if len(results) < max_results and self.enable_alternative_sources:
            results.extend(await self._search_alternative_sources(query, options))

        unique: Dict[tuple, Candidate] = {}
        for candidate in results:
            unique.setdefault(candidate.identity, candidate)
        limited = list(unique.values())[:max_results]

        self._total_results += len(limited)
        logger.info(f"🛟 Fallback: {len(limited)} resultados para '{query[:60]}'")
        return limited

    def _search_registry(self, query: str, options: Optional[DiscoveryOptions]) -> List[Candidate]:
        words = [w for w in query.lower().split() if len(w) > 2]
        matches = []
        for entry in self._registry:
            text = " ".join([
                entry.name,
                entry.setup_instructions,
                entry.repository_url,
                entry.npm_package or "",
                entry.documentation_url,
            ]).lower()
            if all(w in text for w in words) and self._matches_categories(entry, options):
                matches.append(entry)
        logger.debug(f"[Fallback] Registro: {len(matches)}/{len(self._registry)} entradas casaram")
        return matches

    @staticmethod
    def _matches_categories(entry: Candidate, options: Optional[DiscoveryOptions]) -> bool:
        if options is None:
            return True
        text = f"{entry.name} {entry.setup_instructions}".lower()
        if options.categories and not any(c.lower() in text for c in options.categories):
            return False
        if options.exclude_categories and any(c.lower() in text for c in options.exclude_categories):
            return False
        return True

    async def _search_alternative_sources(
        self,
        query: str,
        options: Optional[DiscoveryOptions]
    ) -> List[Candidate]:
        # TODO: integrar busca no GitHub e no registro npm
        logger.debug(f"[Fallback] Fontes alternativas sem integração, 0 resultados para '{query[:60]}'")
        return []

    def add_to_registry(self, candidate: Candidate) -> None:
        self._registry.append(candidate)
        logger.debug(f"[Fallback] Adicionado ao registro: {candidate.name}")

    def remove_from_registry(self, name: str) -> bool:
        before = len(self._registry)
        self._registry = [c for c in self._registry if c.name != name]
        removed = len(self._registry) < before
        if removed:
            logger.debug(f"[Fallback] Removido do registro: {name}")
        return removed

    def get_registry(self) -> List[Candidate]:
        return list(self._registry)

    def update_config(
        self,
        enable_predefined_registry: Optional[bool] = None,
        enable_alternative_sources: Optional[bool] = None,
        max_fallback_results: Optional[int] = None
    ) -> None:
        if enable_predefined_registry is not None:
            self.enable_predefined_registry = enable_predefined_registry
        if enable_alternative_sources is not None:
            self.enable_alternative_sources = enable_alternative_sources
        if max_fallback_results is not None:
            self.max_fallback_results = max_fallback_results

        for source in self._sources:
            if source.name == "predefined-registry":
                source.enabled = self.enable_predefined_registry
            else:
                source.enabled = self.enable_alternative_sources

        logger.info(
            f"FallbackManager: Config atualizada - registry={self.enable_predefined_registry}, "
            f"alternative={self.enable_alternative_sources}, max={self.max_fallback_results}"
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "registry_size": len(self._registry),
            "sources": [asdict(s) for s in self._sources],
            "enabled_sources": sum(1 for s in self._sources if s.enabled),
            "max_fallback_results": self.max_fallback_results,
            "total_attempts": self._total_attempts,
            "total_results": self._total_results,
        }
