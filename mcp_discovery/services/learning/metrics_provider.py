"""
Provedores de métricas externas para o ConfidenceScorer.

As dimensões estendidas (saúde do repositório, pacote npm, documentação,
comunidade, manutenção, segurança, performance) vêm de um MetricsProvider
plugável. Os valores já chegam normalizados em [0, 1].
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields, replace
from typing import Dict, Optional

from mcp_discovery.schemas.candidate import Candidate

logger = logging.getLogger(__name__)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class ExternalMetrics:
    """Sub-scores externos de um candidato, todos em [0, 1]."""
    repository_health: float = 0.5
    npm_package_health: float = 0.5
    documentation_quality: float = 0.5
    community_adoption: float = 0.5
    maintenance_status: float = 0.5
    security_score: float = 0.5
    performance_score: float = 0.5

    def __post_init__(self):
        for f in fields(self):
            object.__setattr__(self, f.name, _clamp(getattr(self, f.name)))

    def to_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


class MetricsProvider(ABC):
    """Interface de métricas externas (GitHub, npm, docs...)."""

    @abstractmethod
    async def get_metrics(self, candidate: Candidate) -> ExternalMetrics:
        ...


class NullMetricsProvider(MetricsProvider):
    """Sem fonte externa: todas as dimensões neutras (0.5)."""

    async def get_metrics(self, candidate: Candidate) -> ExternalMetrics:
        return ExternalMetrics()


class StaticMetricsProvider(MetricsProvider):
    """
    Devolve valores fixos.

    Args:
        metrics: Métricas padrão para qualquer candidato
        per_candidate: Métricas específicas por nome de candidato
    """

    def __init__(
        self,
        metrics: Optional[ExternalMetrics] = None,
        per_candidate: Optional[Dict[str, ExternalMetrics]] = None
    ):
        self.metrics = metrics or ExternalMetrics()
        self.per_candidate = dict(per_candidate or {})

    async def get_metrics(self, candidate: Candidate) -> ExternalMetrics:
        return self.per_candidate.get(candidate.name, self.metrics)

    def set_metrics(self, name: str, **values: float) -> None:
        base = self.per_candidate.get(name, self.metrics)
        self.per_candidate[name] = replace(base, **values)
        logger.debug(f"[Metrics] Métricas fixas atualizadas para {name}")
