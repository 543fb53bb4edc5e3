"""
Modelos de dados para o módulo de scraping.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class TargetType(Enum):
    """Tipo de página alvo."""
    GITHUB_README = "github_readme"
    NPM_DOCS = "npm_docs"
    DOCUMENTATION = "documentation"
    GENERAL = "general"


class TargetPriority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 0, "medium": 1, "low": 2}[self.value]


@dataclass
class ScrapingTarget:
    """URL a ser raspada para enriquecer um candidato."""
    url: str
    type: TargetType = TargetType.GENERAL
    priority: TargetPriority = TargetPriority.MEDIUM
    expected_content: List[str] = field(default_factory=list)


@dataclass
class ExtractedData:
    """Dados estruturados extraídos de uma página."""
    installation_commands: List[str] = field(default_factory=list)
    configuration_examples: List[str] = field(default_factory=list)
    setup_instructions: List[str] = field(default_factory=list)
    required_credentials: List[str] = field(default_factory=list)
    code_examples: List[str] = field(default_factory=list)
    troubleshooting: List[str] = field(default_factory=list)


@dataclass
class ScrapedContent:
    """Resultado do scrape de uma URL."""
    url: str
    title: str = ""
    content: str = ""
    content_type: str = "general"  # readme | documentation | npm | github | general
    extracted: ExtractedData = field(default_factory=ExtractedData)
    metadata: Dict[str, Any] = field(default_factory=dict)
    success: bool = False
    error: Optional[str] = None
    status_code: int = 0
    response_time_ms: float = 0.0

    @classmethod
    def failure(cls, url: str, error: str, status_code: int = 0) -> "ScrapedContent":
        return cls(url=url, success=False, error=error, status_code=status_code)


@dataclass
class ParsedSetupInstructions:
    """Instruções de setup estruturadas a partir de conteúdo raspado."""
    installation: Dict[str, Any] = field(default_factory=lambda: {
        "commands": [], "requirements": [], "package_manager": None, "version": None,
    })
    configuration: Dict[str, Any] = field(default_factory=lambda: {
        "template": None, "required_fields": [], "optional_fields": [], "examples": [], "schema": None,
    })
    credentials: List[Dict[str, Any]] = field(default_factory=list)
    examples: List[Dict[str, str]] = field(default_factory=list)
    verification: Dict[str, List[str]] = field(default_factory=lambda: {
        "steps": [], "test_commands": [], "expected_outputs": [],
    })
    troubleshooting: Dict[str, List[Any]] = field(default_factory=lambda: {
        "common_issues": [], "faq": [],
    })
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def confidence(self) -> float:
        return self.metadata.get("confidence", 0.0)
