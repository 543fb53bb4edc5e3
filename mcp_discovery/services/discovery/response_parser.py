"""
Response Parser - Extração de candidatos a partir de texto livre.

Divide a resposta da busca em seções e, por seção, extrai nome,
repositório, pacote npm, documentação, texto de setup e credenciais.
Seções sem nome são descartadas silenciosamente.
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

from mcp_discovery.core.constants import MCP_TERMS
from mcp_discovery.core.exceptions import ParseAmbiguity
from mcp_discovery.schemas.candidate import Candidate
from .parser_rules import ParserRules, Rule, default_rules

logger = logging.getLogger(__name__)

# Pesos da confiança local
LOCAL_CONFIDENCE_WEIGHTS = {
    "mcp_mention": 0.3,
    "repository": 0.2,
    "package": 0.2,
    "documentation": 0.1,
    "setup": 0.15,
    "credentials": 0.05,
    "indicator_bonus": 0.1,
}


def _first(rules: List[Rule], text: str) -> Optional[str]:
    for pattern, extractor in rules:
        for match in pattern.finditer(text):
            value = extractor(match)
            if value:
                return value
    return None


class ResponseParser:
    """
    Parser de respostas da API de busca.

    Features:
    - Regras de extração configuráveis (ParserRules)
    - Confiança local por indicadores
    - Filtros: score mínimo, repositório/pacote obrigatórios, modo estrito
    - Deduplicação por (name, repository_url) e ordenação estável
    """

    def __init__(
        self,
        min_confidence_score: float = 0.3,
        require_repository_url: bool = False,
        require_npm_package: bool = False,
        strict_mode: bool = False,
        rules: Optional[ParserRules] = None
    ):
        self.min_confidence_score = min_confidence_score
        self.require_repository_url = require_repository_url
        self.require_npm_package = require_npm_package
        self.strict_mode = strict_mode
        self.rules = rules or default_rules()

    def parse_response(self, text: str) -> List[Candidate]:
        """
        Extrai candidatos do texto.

        Returns:
            Candidatos válidos, sem duplicatas, por confiança decrescente
        """
        sections = self.split_into_sections(text or "")
        candidates: List[Candidate] = []

        for section in sections:
            try:
                candidate = self.parse_section(section)
            except ParseAmbiguity as e:
                logger.debug(f"[Parser] Seção descartada: {e}")
                continue
            if self._is_valid(candidate):
                candidates.append(candidate)

        unique = self._remove_duplicates(candidates)
        unique.sort(key=lambda c: c.confidence_score, reverse=True)

        logger.info(f"📦 Parser: {len(sections)} seções, {len(unique)} candidatos válidos")
        return unique

    def split_into_sections(self, text: str) -> List[str]:
        """
        Divide o texto em seções.

        O primeiro delimitador (em prioridade) com 2+ ocorrências define
        os limites; o texto do delimitador fica no início da seção.
        Seções menores que min_section_length são descartadas.
        """
        sections = [text]
        for delimiter in self.rules.section_delimiters:
            starts = [m.start() for m in delimiter.finditer(text)]
            if len(starts) >= 2:
                bounds = [0] + starts + [len(text)]
                sections = [text[a:b] for a, b in zip(bounds, bounds[1:])]
                break

        min_length = self.rules.min_section_length
        return [s.strip() for s in sections if len(s.strip()) > min_length]

    def parse_section(self, section: str) -> Candidate:
        """
        Extrai um candidato de uma seção.

        Raises:
            ParseAmbiguity: seção sem nome extraível
        """
        name = self.extract_name(section)
        if not name:
            raise ParseAmbiguity(f"sem nome: {section[:60]!r}")

        repository_url = _first(self.rules.repository_rules, section) or ""
        npm_package = _first(self.rules.package_rules, section)
        documentation_url = _first(self.rules.documentation_rules, section)
        setup_instructions = self.extract_setup_instructions(section)
        credentials = self.extract_credentials(section)

        indicators = {
            "repository": bool(repository_url),
            "package": bool(npm_package),
            "documentation": bool(documentation_url),
            "setup": bool(setup_instructions),
            "credentials": bool(credentials),
        }
        confidence = self.calculate_confidence(section, indicators)

        return Candidate(
            name=name,
            repository_url=repository_url,
            npm_package=npm_package,
            documentation_url=documentation_url or repository_url,
            setup_instructions=setup_instructions,
            required_credentials=credentials,
            confidence_score=confidence
        )

    def extract_name(self, text: str) -> Optional[str]:
        return _first(self.rules.name_rules, text)

    def extract_setup_instructions(self, text: str) -> str:
        """Comandos de instalação + linhas com palavras de setup (sem repetir)."""
        lines: List[str] = []
        seen: Set[str] = set()

        def add(line: str) -> None:
            line = line.strip()
            if line and line not in seen:
                seen.add(line)
                lines.append(line)

        for pattern in self.rules.install_patterns:
            for match in pattern.finditer(text):
                add(match.group(0))

        for line in text.splitlines():
            lower = line.lower()
            if any(k in lower for k in self.rules.setup_keywords):
                add(line)

        return "\n".join(lines)

    def extract_credentials(self, text: str) -> List[str]:
        """Tokens de credencial na ordem de descoberta, sem duplicatas."""
        credentials: List[str] = []
        for pattern, extractor in self.rules.credential_rules:
            for match in pattern.finditer(text):
                value = extractor(match)
                if value and value not in credentials:
                    credentials.append(value)
        return credentials

    @staticmethod
    def calculate_confidence(text: str, indicators: Dict[str, bool]) -> float:
        w = LOCAL_CONFIDENCE_WEIGHTS
        lower = text.lower()
        score = 0.0

        if any(term in lower for term in MCP_TERMS):
            score += w["mcp_mention"]
        for indicator in ("repository", "package", "documentation", "setup", "credentials"):
            if indicators.get(indicator):
                score += w[indicator]
        if sum(1 for v in indicators.values() if v) >= 3:
            score += w["indicator_bonus"]

        return max(0.0, min(1.0, round(score, 6)))

    def _is_valid(self, candidate: Candidate) -> bool:
        if candidate.confidence_score < self.min_confidence_score:
            return False
        if self.require_repository_url and not candidate.repository_url:
            return False
        if self.require_npm_package and not candidate.npm_package:
            return False
        if self.strict_mode:
            return bool(candidate.repository_url and candidate.setup_instructions)
        return True

    def validate_candidate(self, candidate: Candidate) -> List[str]:
        """Lista de problemas que impediriam o candidato de passar nos filtros."""
        problems = []
        if candidate.confidence_score < self.min_confidence_score:
            problems.append(f"confiança {candidate.confidence_score:.2f} < {self.min_confidence_score}")
        if (self.require_repository_url or self.strict_mode) and not candidate.repository_url:
            problems.append("sem repository_url")
        if self.require_npm_package and not candidate.npm_package:
            problems.append("sem npm_package")
        if self.strict_mode and not candidate.setup_instructions:
            problems.append("sem setup_instructions")
        return problems

    @staticmethod
    def _remove_duplicates(candidates: List[Candidate]) -> List[Candidate]:
        seen: Set[Tuple[str, str]] = set()
        unique = []
        for candidate in candidates:
            if candidate.identity not in seen:
                seen.add(candidate.identity)
                unique.append(candidate)
        return unique
