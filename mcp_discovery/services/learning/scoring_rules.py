"""
Tabelas de heurísticas do ConfidenceScorer.

Padrões por faixa (high/medium/low, excellent/good/fair) e indicadores
textuais. Os valores por faixa ficam em *_TIER_SCORES.
"""

import re

URL_RELIABILITY_PATTERNS = {
    "high": [
        re.compile(r"github\.com/modelcontextprotocol"),
        re.compile(r"github\.com/anthropics"),
        re.compile(r"github\.com/openai"),
        re.compile(r"npmjs\.com/package/@modelcontextprotocol"),
        re.compile(r"docs\.anthropic\.com"),
        re.compile(r"platform\.openai\.com"),
    ],
    "medium": [
        re.compile(r"github\.com/[^/]+/[^/]+"),
        re.compile(r"gitlab\.com/[^/]+/[^/]+"),
        re.compile(r"npmjs\.com/package/[^/]+"),
        re.compile(r"docs\.[^/]+\.com"),
        re.compile(r"readme\.md", re.IGNORECASE),
    ],
    "low": [
        re.compile(r"bitbucket\.org"),
        re.compile(r"sourceforge\.net"),
        re.compile(r"code\.google\.com"),
        re.compile(r"personal\.github\.io"),
    ],
}
URL_TIER_SCORES = {"high": 1.0, "medium": 0.7, "low": 0.3}
URL_UNKNOWN_SCORE = 0.5

PACKAGE_VALIDATION_PATTERNS = {
    "excellent": [
        re.compile(r"^@modelcontextprotocol/server-[a-z0-9\-]+$"),
        re.compile(r"^mcp-[a-z0-9\-]+$"),
        re.compile(r"^@[a-z0-9\-]+/mcp-[a-z0-9\-]+$"),
    ],
    "good": [
        re.compile(r"^[a-z0-9\-]+-mcp$"),
        re.compile(r"^mcp[a-z0-9\-]+$"),
        re.compile(r"^@[a-z0-9\-]+/[a-z0-9\-]+$"),
    ],
    "fair": [
        re.compile(r"^[a-z0-9\-]+$"),
    ],
}
PACKAGE_TIER_SCORES = {"excellent": 1.0, "good": 0.7, "fair": 0.4}
PACKAGE_UNKNOWN_SCORE = 0.1

SETUP_QUALITY_INDICATORS = {
    "excellent": [
        "npm install", "pip install", "yarn add", "pnpm add", "docker pull", "go get",
        "configuration", "environment variables", "setup guide", "installation guide",
    ],
    "good": ["install", "setup", "configure", "initialize", "start", "run", "usage", "example"],
    "fair": ["clone", "download", "get", "use"],
}

CREDENTIAL_QUALITY_INDICATORS = {
    "excellent": [
        "api key", "access token", "bearer token", "client secret",
        "environment variable", "configuration file", "credentials", "authentication",
    ],
    "good": ["key", "token", "secret", "password", "username", "email", "url", "endpoint"],
    "fair": ["auth", "login", "user", "pass"],
}

INDICATOR_TIER_SCORES = {"excellent": 0.3, "good": 0.2, "fair": 0.1}

# Termos MCP usados na relevância da query
RELEVANCE_TERMS = ["mcp", "model context protocol", "server", "tool"]

CATEGORY_TERMS = [
    "filesystem", "file", "files",
    "database", "db", "sql",
    "git", "version control",
    "api", "http", "rest",
    "web", "scraping", "crawling",
    "docker", "container",
    "aws", "cloud",
    "slack", "discord", "chat",
    "github", "gitlab", "bitbucket",
]

# Pesos internos de cada grupo
CONTENT_PRESENCE_WEIGHT = 0.2
URL_GROUP_WEIGHTS = (0.6, 0.4)            # repositório, documentação
COMPLETENESS_GROUP_WEIGHTS = (0.6, 0.4)   # setup, credenciais
CREDIBILITY_GROUP_WEIGHTS = (0.7, 0.3)    # credibilidade, consistência
TECHNICAL_GROUP_WEIGHTS = (0.6, 0.4)      # nome do pacote, estrutura do repo
RELEVANCE_GROUP_WEIGHTS = (0.7, 0.3)      # query, categoria

DEFAULT_WEIGHTS = {
    "content_quality": 0.25,
    "url_reliability": 0.20,
    "content_completeness": 0.20,
    "source_credibility": 0.15,
    "technical_validity": 0.10,
    "context_relevance": 0.10,
}

# Modo estendido: 6 grupos + 8 dimensões externas, normalizados na soma
DEFAULT_EXTENDED_WEIGHTS = {
    "content_quality": 0.10,
    "url_reliability": 0.08,
    "content_completeness": 0.08,
    "source_credibility": 0.06,
    "technical_validity": 0.05,
    "context_relevance": 0.05,
    "repository_health": 0.12,
    "npm_package_health": 0.06,
    "documentation_quality": 0.10,
    "community_adoption": 0.12,
    "maintenance_status": 0.10,
    "technical_quality": 0.08,
    "security_score": 0.08,
    "performance_score": 0.05,
}

DEFAULT_THRESHOLDS = {
    "minimum_score": 0.3,
    "high_confidence_score": 0.7,
    "excellent_score": 0.9,
}


def tier_score(text, patterns, scores, default):
    """Score da primeira faixa cujo padrão casa com o texto."""
    for tier, tier_patterns in patterns.items():
        if any(p.search(text) for p in tier_patterns):
            return scores[tier]
    return default


def indicator_score(text, indicators):
    """Soma dos pesos de cada indicador presente (sem clamp)."""
    return sum(
        INDICATOR_TIER_SCORES[tier]
        for tier, words in indicators.items()
        for word in words
        if word in text
    )
