"""
Exceções do pipeline de discovery.

Nenhuma destas exceções deve ser fatal para o processo hospedeiro:
os managers capturam na borda, logam e devolvem objetos de falha estruturados.
"""

from typing import Optional


class DiscoveryError(Exception):
    """Base de todas as exceções do MCP Discovery."""


class TransientNetworkError(DiscoveryError):
    """Falha de rede transitória (retentada com backoff antes de ser reportada)."""


class PermanentRequestError(DiscoveryError):
    """Erro 4xx de autenticação/formato. Nunca é retentado."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RequestTimeoutError(DiscoveryError):
    """Timeout em busca ou scraping. Falha terminal, sem retry."""


class RateBudgetExceeded(DiscoveryError):
    """Orçamento de requisições esgotado. Resolvido aguardando a próxima janela."""

    def __init__(self, message: str, wait_seconds: float = 0.0):
        super().__init__(message)
        self.wait_seconds = wait_seconds


class ParseAmbiguity(DiscoveryError):
    """Seção sem nome ou com confiança baixa. A seção é descartada silenciosamente."""


class ScoringFailure(DiscoveryError):
    """Falha ao pontuar um candidato. O candidato recebe o score mínimo."""


class EngineFailure(DiscoveryError):
    """Caminho principal falhou e o fallback está desabilitado."""


class TemplateError(DiscoveryError):
    """Template de query desconhecido ou variáveis ausentes."""


class ScrapingError(DiscoveryError):
    """Falha ao buscar uma página de documentação."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
