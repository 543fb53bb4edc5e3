"""
Regras de extração do ResponseParser.

Cada regra é um par (pattern, extractor) avaliado em ordem de prioridade:
o primeiro extractor que devolve um valor não vazio vence. Para trocar
ou estender a extração basta montar outro ParserRules.
"""

import re
from dataclasses import dataclass, field
from re import Match, Pattern
from typing import Callable, List, Optional, Tuple

Extractor = Callable[[Match], Optional[str]]
Rule = Tuple[Pattern, Extractor]

_URL_TRAILING = ".,;:'\"`>]*_"

# Palavras que nunca são nome de servidor
NAME_STOPWORDS = {
    "mcp", "server", "servers", "tool", "tools", "the", "for", "a", "an", "and",
    "with", "of", "this", "that", "to", "is", "it", "model", "protocol",
}

VALID_PACKAGE = re.compile(r"^(@[\w-]+/)?[\w][\w.-]*$")


def clean_url(url: str) -> str:
    """Remove pontuação de fim de frase/markdown colada na URL."""
    return url.rstrip(_URL_TRAILING)


def is_valid_package(name: str) -> bool:
    return bool(name) and bool(VALID_PACKAGE.match(name)) and not name.startswith("-")


def _group(index: int = 0) -> Extractor:
    return lambda m: m.group(index)


def _url(m: Match) -> Optional[str]:
    return clean_url(m.group(0)) or None


def _name(index: int) -> Extractor:
    def extract(m: Match) -> Optional[str]:
        value = m.group(index).strip("-_").lower()
        if not value or value in NAME_STOPWORDS or len(value) < 2:
            return None
        return value
    return extract


def _package(index: int) -> Extractor:
    def extract(m: Match) -> Optional[str]:
        value = m.group(index).rstrip(_URL_TRAILING)
        return value if is_valid_package(value) else None
    return extract


def _npm_url_package(m: Match) -> Optional[str]:
    scope, name = m.group(1), m.group(2)
    value = f"{scope}/{name}" if scope else name
    return value.rstrip(_URL_TRAILING) or None


def _doc_url(m: Match) -> Optional[str]:
    url = clean_url(m.group(0))
    lower = url.lower()
    if any(k in lower for k in ("readme", "docs", "documentation", "guide")):
        return url
    return None


@dataclass
class ParserRules:
    """Conjunto ordenado de regras de extração."""
    section_delimiters: List[Pattern] = field(default_factory=list)
    name_rules: List[Rule] = field(default_factory=list)
    repository_rules: List[Rule] = field(default_factory=list)
    package_rules: List[Rule] = field(default_factory=list)
    documentation_rules: List[Rule] = field(default_factory=list)
    install_patterns: List[Pattern] = field(default_factory=list)
    setup_keywords: List[str] = field(default_factory=list)
    credential_rules: List[Rule] = field(default_factory=list)
    min_section_length: int = 50


def default_rules() -> ParserRules:
    """Regras padrão para respostas em texto livre sobre servidores MCP."""
    flags = re.IGNORECASE

    return ParserRules(
        # Limites de seção em prioridade: o primeiro delimitador com 2+
        # ocorrências no nível superior define as seções.
        section_delimiters=[
            re.compile(r"^#{1,4}\s+", re.MULTILINE),          # headers markdown
            re.compile(r"^\d+[.)]\s+", re.MULTILINE),         # lista numerada
            re.compile(r"^[-*•]\s+", re.MULTILINE),           # bullets
            re.compile(r"^[A-Z][^\n.:]{0,60}:\s*$", re.MULTILINE),  # linha rotulada "Nome:"
        ],
        name_rules=[
            (re.compile(r"@modelcontextprotocol/server-([\w-]+)", flags), _name(1)),
            (re.compile(r"\b([\w-]+-mcp)\b", flags), _name(1)),
            (re.compile(r"\b(mcp-[\w-]+)", flags), _name(1)),
            (re.compile(r"\b([\w-]+)[_\s-]mcp[_\s-]server", flags), _name(1)),
            (re.compile(r"\bmcp[_-]server[_-]([\w-]+)", flags), _name(1)),
            # Fallbacks: "server X" / "X server"
            (re.compile(r"\b(?:server|tool)[\s_-]+([\w-]+)", flags), _name(1)),
            (re.compile(r"\b([\w-]+)[\s_-]+(?:server|tool)\b", flags), _name(1)),
        ],
        repository_rules=[
            (re.compile(r"https?://github\.com/[^\s)\]>\"']+", flags), _url),
            (re.compile(r"https?://gitlab\.com/[^\s)\]>\"']+", flags), _url),
            (re.compile(r"https?://(?:www\.)?(?:bitbucket\.org|sourceforge\.net)/[^\s)\]>\"']+", flags), _url),
        ],
        package_rules=[
            (re.compile(r"https?://(?:www\.)?npmjs\.com/package/(@[\w-]+)?/?([\w.-]+)", flags), _npm_url_package),
            (re.compile(r"\b(?:npm\s+(?:install|i)|npx|yarn\s+add|pnpm\s+add)\s+(?:-\S+\s+)*(@?[\w./-]+)", flags), _package(1)),
            # Forma genérica: escopo npm ou nome com afixo mcp
            (re.compile(r"(?<![\w/.@])(@[a-z0-9][\w-]*/[a-z0-9][\w.-]*|[a-z0-9][\w-]*-mcp|mcp-[\w-]+)(?![\w/])", flags), _package(1)),
        ],
        documentation_rules=[
            (re.compile(r"https?://[^\s)\]>\"']*(?:docs?|readme|documentation)[^\s)\]>\"']*", flags), _url),
            (re.compile(r"https?://[^\s)\]>\"']+", flags), _doc_url),
        ],
        install_patterns=[
            re.compile(r"npm\s+install\s+[^\s\n]+", flags),
            re.compile(r"pip\s+install\s+[^\s\n]+", flags),
            re.compile(r"yarn\s+add\s+[^\s\n]+", flags),
            re.compile(r"pnpm\s+add\s+[^\s\n]+", flags),
            re.compile(r"docker\s+pull\s+[^\s\n]+", flags),
            re.compile(r"go\s+get\s+[^\s\n]+", flags),
        ],
        setup_keywords=["install", "setup", "configure", "initialize", "start"],
        credential_rules=[
            (re.compile(r"api[_\s]?key|apikey", flags), lambda m: "api_key"),
            (re.compile(r"(?:access[_\s]?|bearer[_\s]?)?token", flags), lambda m: "token"),
            (re.compile(r"(?:client[_\s]?)?secret", flags), lambda m: "secret"),
            (re.compile(r"password|passwd|pwd", flags), lambda m: "password"),
            (re.compile(r"username|user[_\s]name|login", flags), lambda m: "username"),
            (re.compile(r"e[_\s-]?mail", flags), lambda m: "email"),
            (re.compile(r"\b(?:base[_\s]?)?url\b|endpoint", flags), lambda m: "url"),
            (re.compile(r"(?i:env|environment)[\s_-]*(?i:var|variable)s?[\s_-]*[:\-]?\s*([A-Z_][A-Z0-9_]*)"), _group(1)),
            # Tokens ALL-CAPS com forma de variável de ambiente
            (re.compile(r"\b([A-Z][A-Z0-9]*_(?:[A-Z0-9]+_)*(?:KEY|TOKEN|SECRET|PASSWORD|URL|STRING|ID))\b"), _group(1)),
        ],
    )
