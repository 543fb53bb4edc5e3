"""
Learning - Pontuação de confiança e aprendizado adaptativo.

- ConfidenceScorer: score multi-fator [0, 1] com config imutável
- AdaptiveLearningSystem: ajustes de peso a partir de feedback
- MetricsProvider: dimensões estendidas plugáveis (sem aleatoriedade)
"""

from .confidence_scorer import (
    ConfidenceScorer,
    ConfidenceFactors,
    ScorerConfig,
)
from .adaptive_learning import (
    AdaptiveLearningSystem,
    FeedbackRecord,
    WeightAdjustment,
)
from .metrics_provider import (
    ExternalMetrics,
    MetricsProvider,
    NullMetricsProvider,
    StaticMetricsProvider,
)

__all__ = [
    # Scorer
    "ConfidenceScorer",
    "ConfidenceFactors",
    "ScorerConfig",
    # Aprendizado
    "AdaptiveLearningSystem",
    "FeedbackRecord",
    "WeightAdjustment",
    # Métricas
    "ExternalMetrics",
    "MetricsProvider",
    "NullMetricsProvider",
    "StaticMetricsProvider",
]
