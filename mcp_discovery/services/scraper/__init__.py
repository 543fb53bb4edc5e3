"""
Scraper - Enriquecimento de candidatos via documentação.

Busca README/npm/docs respeitando robots.txt e rate limit, extrai
comandos de instalação, configuração e credenciais, e estrutura
as instruções de setup com um score próprio.
"""

from .models import (
    TargetType,
    TargetPriority,
    ScrapingTarget,
    ExtractedData,
    ScrapedContent,
    ParsedSetupInstructions,
)
from .web_scraper import WebScraper
from .setup_instruction_parser import SetupInstructionParser

__all__ = [
    "TargetType",
    "TargetPriority",
    "ScrapingTarget",
    "ExtractedData",
    "ScrapedContent",
    "ParsedSetupInstructions",
    "WebScraper",
    "SetupInstructionParser",
]
