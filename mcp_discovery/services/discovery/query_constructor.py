"""
Query Constructor - Construção de queries de busca priorizadas.

Classifica nomes de ferramentas em (categoria, tecnologia, confiança),
normaliza aliases de tecnologia e emite queries:
- uma por tecnologia distinta
- uma por categoria distinta (classificação ∪ categorias explícitas)
- uma por ferramenta com confiança > 0.7
- uma multi-ferramenta se houver mais de uma ferramenta
- senão, uma query geral de fallback

Qualquer erro interno vira uma lista de fallback determinística.
"""

import logging
import re
from collections import Counter, deque
from dataclasses import dataclass, field
from re import Pattern
from typing import Any, Deque, Dict, List, Optional, Tuple

from mcp_discovery.core.constants import MAX_SEARCH_HISTORY
from mcp_discovery.core.exceptions import TemplateError
from .query_templates import QueryTemplateRegistry

logger = logging.getLogger(__name__)

GENERAL_FALLBACK_QUERY = "Model Context Protocol MCP servers development tools"


@dataclass(frozen=True)
class TechnologyPattern:
    """Padrão de tecnologia (avaliado em ordem de prioridade)."""
    name: str
    patterns: Tuple[Pattern, ...]
    category: str
    priority: int


def _tech(name: str, words: List[str], category: str, priority: int) -> TechnologyPattern:
    return TechnologyPattern(name, tuple(re.compile(w) for w in words), category, priority)


TECHNOLOGY_PATTERNS: List[TechnologyPattern] = [
    _tech("nodejs", ["node", "npm", "javascript", "typescript", "js", "ts"], "runtime", 90),
    _tech("python", ["python", "pip", "py", "django", "flask", "fastapi"], "runtime", 90),
    _tech("docker", ["docker", "container", "kubernetes", "k8s"], "deployment", 85),
    _tech("database", ["postgres", "mysql", "mongodb", "redis", "sqlite"], "data", 80),
    _tech("aws", ["aws", "amazon", "s3", "ec2", "lambda"], "cloud", 75),
    _tech("github", ["github", "git", "repo", "repository"], "version-control", 80),
]

# Palavra-chave -> categoria (confiança mínima 0.7)
TOOL_CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "filesystem": ["file", "directory", "folder", "path", "read", "write", "copy", "move", "delete"],
    "database": ["db", "database", "sql", "query", "table", "record", "data", "store"],
    "version-control": ["git", "commit", "branch", "merge", "pull", "push", "repo", "repository"],
    "api": ["api", "http", "request", "response", "endpoint", "rest", "graphql", "webhook"],
    "testing": ["test", "spec", "mock", "stub", "assert", "expect", "coverage"],
    "deployment": ["deploy", "build", "release", "publish", "package", "bundle"],
    "monitoring": ["log", "metric", "monitor", "alert", "trace", "debug", "profile"],
}
TOOL_CATEGORY_CONFIDENCE = 0.7

# Checagens especiais aplicadas por último: (categoria, palavras, confiança)
SPECIAL_TOOL_CHECKS: List[Tuple[str, List[str], float]] = [
    ("filesystem", ["file", "dir", "folder", "path", "read", "write", "copy", "move", "delete"], 0.8),
    ("database", ["db", "database", "sql", "query", "table", "record", "data"], 0.8),
    ("version-control", ["git", "commit", "branch", "merge", "pull", "push", "repo"], 0.8),
    ("api", ["api", "http", "request", "response", "endpoint", "rest", "graphql"], 0.7),
]

TECHNOLOGY_ALIASES: Dict[str, str] = {
    "node": "nodejs", "node.js": "nodejs", "javascript": "nodejs", "js": "nodejs",
    "typescript": "nodejs", "ts": "nodejs", "react": "nodejs", "vue": "nodejs",
    "angular": "nodejs", "express": "nodejs",
    "python": "python", "py": "python", "fastapi": "python", "django": "python", "flask": "python",
    "docker": "docker", "container": "docker", "kubernetes": "docker", "k8s": "docker",
    "postgresql": "database", "postgres": "database", "mysql": "database",
    "mongodb": "database", "redis": "database", "sqlite": "database",
    "aws": "aws", "amazon": "aws",
    "gcp": "google", "google": "google",
    "azure": "microsoft",
    "github": "github",
    "gitlab": "git", "git": "git",
}


@dataclass
class QueryContext:
    """Entrada da construção de queries."""
    tool_names: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    technologies: List[str] = field(default_factory=list)
    search_depth: str = "thorough"  # quick | thorough
    user_preferences: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolAnalysis:
    """Classificação de uma ferramenta."""
    tool_name: str
    category: str = "general"
    technology: str = "unknown"
    confidence: float = 0.5
    patterns: List[str] = field(default_factory=list)


@dataclass
class QueryMetadata:
    tool_matches: List[str] = field(default_factory=list)
    technology_matches: List[str] = field(default_factory=list)
    category_matches: List[str] = field(default_factory=list)
    reasoning: str = ""


@dataclass
class ConstructedQuery:
    """Query pronta para a busca."""
    query: str
    template: str
    confidence: float
    expected_results: int
    search_strategy: str  # specific | broad | fallback
    metadata: QueryMetadata = field(default_factory=QueryMetadata)


class QueryConstructor:
    """
    Construtor de queries de discovery.

    Tabelas de classificação são dados (listas/dicts) e podem ser
    substituídas no construtor.
    """

    def __init__(
        self,
        registry: Optional[QueryTemplateRegistry] = None,
        technology_patterns: Optional[List[TechnologyPattern]] = None,
        category_keywords: Optional[Dict[str, List[str]]] = None
    ):
        self.registry = registry or QueryTemplateRegistry()
        self._technology_patterns = technology_patterns if technology_patterns is not None else TECHNOLOGY_PATTERNS
        self._category_keywords = category_keywords if category_keywords is not None else TOOL_CATEGORY_KEYWORDS
        self._template_usage: Counter = Counter()
        self._history: Deque[Dict[str, Any]] = deque(maxlen=MAX_SEARCH_HISTORY)
        logger.info(f"QueryConstructor: {len(self._technology_patterns)} padrões de tecnologia, {len(self.registry)} templates")

    def construct_queries(self, context: QueryContext) -> List[ConstructedQuery]:
        """
        Constrói queries otimizadas para o contexto.

        Nunca lança: em caso de erro retorna generate_fallback_queries(context).
        """
        logger.info(
            f"🔍 Construindo queries: {len(context.tool_names)} ferramentas, "
            f"categorias={context.categories}, tecnologias={context.technologies}"
        )
        try:
            tool_analysis = [self.analyze_tool(name) for name in context.tool_names]
            technologies = self.normalize_technologies(context.technologies)

            queries = self._generate_queries(context, tool_analysis, technologies)
            queries = self._optimize_queries(queries, context.search_depth)
        except (TemplateError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"❌ Falha na construção de queries: {e}")
            queries = self.generate_fallback_queries(context)

        self._update_history(context, queries)
        logger.info(
            f"✅ {len(queries)} queries construídas "
            f"(confiança média {self._average_confidence(queries):.2f})"
        )
        return queries

    def analyze_tool(self, tool_name: str) -> ToolAnalysis:
        """
        Classifica uma ferramenta.

        Ordem: tabela de tecnologias, mapa de categorias, checagens especiais.
        Matches posteriores só aumentam a confiança (max-merge).
        """
        lower_name = tool_name.lower()
        analysis = ToolAnalysis(tool_name=tool_name)

        for tech in self._technology_patterns:
            if any(p.search(lower_name) for p in tech.patterns):
                analysis.technology = tech.name
                analysis.category = tech.category
                analysis.confidence = max(analysis.confidence, tech.priority / 100)
                analysis.patterns.append(tech.name)

        for category, keywords in self._category_keywords.items():
            if any(k in lower_name for k in keywords):
                analysis.category = category
                analysis.confidence = max(analysis.confidence, TOOL_CATEGORY_CONFIDENCE)
                analysis.patterns.append(category)

        for category, keywords, confidence in SPECIAL_TOOL_CHECKS:
            if any(k in lower_name for k in keywords):
                analysis.category = category
                analysis.confidence = max(analysis.confidence, confidence)
                analysis.patterns.append(category)

        return analysis

    @staticmethod
    def normalize_technologies(technologies: List[str]) -> List[str]:
        """Normaliza aliases (node/js/ts -> nodejs, postgres -> database, ...) sem duplicar."""
        normalized: List[str] = []
        for tech in technologies:
            lower = tech.lower().strip()
            mapped = TECHNOLOGY_ALIASES.get(lower, lower)
            if mapped and mapped not in normalized:
                normalized.append(mapped)
        return normalized

    def _generate_queries(
        self,
        context: QueryContext,
        tool_analysis: List[ToolAnalysis],
        technologies: List[str]
    ) -> List[ConstructedQuery]:
        queries: List[ConstructedQuery] = []

        for tech in technologies:
            queries.append(self._technology_query(tech))

        categories: List[str] = []
        for category in [t.category for t in tool_analysis] + list(context.categories):
            if category not in categories:
                categories.append(category)
        for category in categories:
            queries.append(self._category_query(category))

        for tool in tool_analysis:
            if tool.confidence > 0.7:
                queries.append(self._tool_query(tool))

        if len(tool_analysis) > 1:
            queries.append(self._multi_tool_query(tool_analysis, technologies))

        if not queries:
            queries.append(ConstructedQuery(
                query=GENERAL_FALLBACK_QUERY,
                template="general-fallback",
                confidence=0.3,
                expected_results=10,
                search_strategy="fallback",
                metadata=QueryMetadata(
                    category_matches=["general"],
                    reasoning="Nenhum padrão detectado, busca geral"
                )
            ))

        return queries

    def _technology_query(self, technology: str) -> ConstructedQuery:
        template = self.registry.get_template(f"{technology}-mcp")
        if template is None:
            return ConstructedQuery(
                query=f"MCP server {technology} Model Context Protocol",
                template="generic-technology",
                confidence=0.6,
                expected_results=5,
                search_strategy="specific",
                metadata=QueryMetadata(
                    technology_matches=[technology],
                    reasoning=f"Busca genérica por tecnologia {technology}"
                )
            )

        query = self.registry.generate_query(template.name, {v: technology for v in template.variables})
        return ConstructedQuery(
            query=query,
            template=template.name,
            confidence=0.8,
            expected_results=8,
            search_strategy="specific",
            metadata=QueryMetadata(
                technology_matches=[technology],
                category_matches=[template.category],
                reasoning=f"Template {template.name} para {technology}"
            )
        )

    def _category_query(self, category: str) -> ConstructedQuery:
        template = self.registry.get_template(f"{category}-mcp")
        if template is None:
            return ConstructedQuery(
                query=f"MCP server {category} tools Model Context Protocol",
                template="generic-category",
                confidence=0.6,
                expected_results=6,
                search_strategy="broad",
                metadata=QueryMetadata(
                    category_matches=[category],
                    reasoning=f"Busca genérica por categoria {category}"
                )
            )

        query = self.registry.generate_query(template.name, {v: category for v in template.variables})
        return ConstructedQuery(
            query=query,
            template=template.name,
            confidence=0.7,
            expected_results=7,
            search_strategy="broad",
            metadata=QueryMetadata(
                category_matches=[category],
                reasoning=f"Template {template.name} para {category}"
            )
        )

    @staticmethod
    def _tool_query(tool: ToolAnalysis) -> ConstructedQuery:
        return ConstructedQuery(
            query=f"MCP server {tool.tool_name} {tool.technology} Model Context Protocol",
            template="tool-specific",
            confidence=tool.confidence,
            expected_results=4,
            search_strategy="specific",
            metadata=QueryMetadata(
                tool_matches=[tool.tool_name],
                technology_matches=[tool.technology],
                category_matches=[tool.category],
                reasoning=f"Busca direta por {tool.tool_name} ({tool.technology})"
            )
        )

    @staticmethod
    def _multi_tool_query(tool_analysis: List[ToolAnalysis], technologies: List[str]) -> ConstructedQuery:
        names = [t.tool_name for t in tool_analysis][:3]
        categories: List[str] = []
        for tool in tool_analysis:
            if tool.category not in categories:
                categories.append(tool.category)
        return ConstructedQuery(
            query=f"MCP server multiple tools {' '.join(names)} Model Context Protocol",
            template="multi-tool",
            confidence=0.5,
            expected_results=3,
            search_strategy="broad",
            metadata=QueryMetadata(
                tool_matches=names,
                technology_matches=list(technologies),
                category_matches=categories,
                reasoning=f"Busca multi-ferramenta para {len(names)} ferramentas"
            )
        )

    @staticmethod
    def _optimize_queries(queries: List[ConstructedQuery], search_depth: str) -> List[ConstructedQuery]:
        """quick: top 3 por confiança; thorough: todas. Sort estável (empates mantêm a ordem)."""
        ordered = sorted(queries, key=lambda q: q.confidence, reverse=True)
        if search_depth == "quick":
            return ordered[:3]
        return ordered

    @staticmethod
    def generate_fallback_queries(context: QueryContext) -> List[ConstructedQuery]:
        """Lista determinística de 1-2 queries usada quando a construção falha."""
        queries = [ConstructedQuery(
            query=GENERAL_FALLBACK_QUERY,
            template="fallback-general",
            confidence=0.3,
            expected_results=10,
            search_strategy="fallback",
            metadata=QueryMetadata(category_matches=["general"], reasoning="Fallback geral")
        )]

        if context.technologies:
            primary = context.technologies[0]
            queries.append(ConstructedQuery(
                query=f"MCP server {primary} Model Context Protocol",
                template="fallback-technology",
                confidence=0.4,
                expected_results=8,
                search_strategy="fallback",
                metadata=QueryMetadata(
                    technology_matches=[primary],
                    reasoning=f"Fallback por tecnologia {primary}"
                )
            ))

        return queries

    def _update_history(self, context: QueryContext, queries: List[ConstructedQuery]) -> None:
        for query in queries:
            self._template_usage[query.template] += 1
        self._history.append({
            "tool_names": list(context.tool_names),
            "technologies": list(context.technologies),
            "categories": list(context.categories),
            "queries": [q.query for q in queries],
        })

    @staticmethod
    def _average_confidence(queries: List[ConstructedQuery]) -> float:
        if not queries:
            return 0.0
        return sum(q.confidence for q in queries) / len(queries)

    def get_stats(self) -> Dict[str, Any]:
        """Estatísticas de construção (templates mais usados, histórico)."""
        return {
            "total_queries_constructed": sum(self._template_usage.values()),
            "constructions": len(self._history),
            "most_used_templates": [
                {"template": name, "count": count}
                for name, count in self._template_usage.most_common(5)
            ],
            "technology_patterns": len(self._technology_patterns),
        }

    def get_history(self) -> List[Dict[str, Any]]:
        return list(self._history)
