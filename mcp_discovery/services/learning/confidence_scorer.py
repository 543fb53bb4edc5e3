"""
Confidence Scorer - Pontuação multi-fator de candidatos MCP.

Cada candidato recebe sub-scores em [0, 1] agrupados em seis grupos
(conteúdo, URLs, completude, credibilidade, técnico, relevância). Os
grupos são combinados pelos pesos do ScorerConfig e o resultado é
clampado em [0, 1]. Com métricas externas habilitadas, oito dimensões
extras entram na soma com pesos normalizados.

O ScorerConfig é imutável: atualizar pesos produz uma nova config.
"""

import asyncio
import logging
from dataclasses import dataclass, asdict, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from mcp_discovery.core.constants import OFFICIAL_NPM_SCOPE, OFFICIAL_SERVER_PREFIX
from mcp_discovery.core.exceptions import ScoringFailure
from mcp_discovery.schemas.candidate import Candidate
from .adaptive_learning import AdaptiveLearningSystem, FeedbackRecord
from .metrics_provider import ExternalMetrics, MetricsProvider, NullMetricsProvider
from . import scoring_rules as rules

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScorerConfig:
    """Configuração imutável do scorer."""
    weights: Mapping[str, float] = field(default_factory=lambda: dict(rules.DEFAULT_WEIGHTS))
    thresholds: Mapping[str, float] = field(default_factory=lambda: dict(rules.DEFAULT_THRESHOLDS))
    enable_external_metrics: bool = False
    extended_weights: Mapping[str, float] = field(default_factory=lambda: dict(rules.DEFAULT_EXTENDED_WEIGHTS))

    def __post_init__(self):
        for name in ("weights", "thresholds", "extended_weights"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    @property
    def normalized_extended_weights(self) -> Dict[str, float]:
        total = sum(self.extended_weights.values())
        if total <= 0:
            return {k: 0.0 for k in self.extended_weights}
        return {k: v / total for k, v in self.extended_weights.items()}

    def with_weights(self, new_weights: Mapping[str, float]) -> "ScorerConfig":
        """
        Nova config com pesos atualizados.

        Cada chave atualiza `weights` e/ou `extended_weights`,
        conforme onde existir.

        Raises:
            ValueError: chave desconhecida ou peso negativo
        """
        weights = dict(self.weights)
        extended = dict(self.extended_weights)
        for key, value in new_weights.items():
            if value < 0:
                raise ValueError(f"Peso negativo para '{key}': {value}")
            if key not in weights and key not in extended:
                raise ValueError(f"Peso desconhecido: '{key}'")
            if key in weights:
                weights[key] = float(value)
            if key in extended:
                extended[key] = float(value)
        return ScorerConfig(
            weights=weights,
            thresholds=self.thresholds,
            enable_external_metrics=self.enable_external_metrics,
            extended_weights=extended,
        )

    def with_extended_weights(self, new_weights: Mapping[str, float]) -> "ScorerConfig":
        """
        Nova config alterando apenas `extended_weights`.

        `weights` (modo base, soma 1) fica intacto mesmo para chaves
        presentes nos dois mapas.

        Raises:
            ValueError: chave fora de `extended_weights` ou peso negativo
        """
        extended = dict(self.extended_weights)
        for key, value in new_weights.items():
            if value < 0:
                raise ValueError(f"Peso negativo para '{key}': {value}")
            if key not in extended:
                raise ValueError(f"Peso estendido desconhecido: '{key}'")
            extended[key] = float(value)
        return ScorerConfig(
            weights=self.weights,
            thresholds=self.thresholds,
            enable_external_metrics=self.enable_external_metrics,
            extended_weights=extended,
        )


@dataclass
class ConfidenceFactors:
    """Sub-scores de um candidato."""
    # Presença de conteúdo
    has_repository_url: bool = False
    has_npm_package: bool = False
    has_documentation_url: bool = False
    has_setup_instructions: bool = False
    has_credentials: bool = False
    # URLs
    repository_url_reliability: float = 0.0
    documentation_url_reliability: float = 0.0
    # Completude
    setup_instructions_quality: float = 0.0
    credentials_clarity: float = 0.0
    # Credibilidade
    source_credibility: float = 0.0
    consistency_score: float = 0.0
    # Técnico
    package_name_validity: float = 0.0
    repository_structure: float = 0.0
    # Relevância
    query_relevance: float = 0.0
    category_match: float = 0.0
    # Estendidos (MetricsProvider)
    external: Optional[Dict[str, float]] = None

    @property
    def url_reliability(self) -> float:
        return self.repository_url_reliability

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfidenceScorer:
    """
    Scorer de confiança.

    Args:
        config: ScorerConfig (padrão: pesos .25/.20/.20/.15/.10/.10)
        metrics_provider: Fonte das dimensões estendidas
        learning: Sistema de aprendizado para feedback e ajustes
    """

    def __init__(
        self,
        config: Optional[ScorerConfig] = None,
        metrics_provider: Optional[MetricsProvider] = None,
        learning: Optional[AdaptiveLearningSystem] = None
    ):
        self.config = config or ScorerConfig()
        self.metrics_provider = metrics_provider or NullMetricsProvider()
        self.learning = learning or AdaptiveLearningSystem()

    async def score_candidates(
        self,
        candidates: List[Candidate],
        query: Optional[str] = None
    ) -> List[Candidate]:
        """Novos candidatos re-pontuados, por score decrescente."""
        if not candidates:
            return []

        scored = await asyncio.gather(*(self._score_one(c, query or "") for c in candidates))
        scored.sort(key=lambda c: c.confidence_score, reverse=True)

        high = self.config.thresholds["high_confidence_score"]
        average = sum(c.confidence_score for c in scored) / len(scored)
        logger.info(
            f"📊 Scoring: {len(scored)} candidatos, "
            f"{sum(1 for c in scored if c.confidence_score >= high)} alta confiança, média {average:.2f}"
        )
        return scored

    async def _score_one(self, candidate: Candidate, query: str) -> Candidate:
        try:
            factors = await self.calculate_confidence_factors(candidate, query)
            return candidate.with_score(self.calculate_overall_score(factors))
        except ScoringFailure as e:
            logger.debug(f"[Scorer] Falha ao pontuar {candidate.name}: {e}")
            return candidate.with_score(self.config.thresholds["minimum_score"])

    async def calculate_confidence_factors(
        self,
        candidate: Candidate,
        query: Optional[str] = None
    ) -> ConfidenceFactors:
        """
        Raises:
            ScoringFailure: erro inesperado ao calcular algum fator
        """
        query = query or ""
        try:
            factors = ConfidenceFactors(
                has_repository_url=bool(candidate.repository_url),
                has_npm_package=bool(candidate.npm_package),
                has_documentation_url=bool(candidate.documentation_url),
                has_setup_instructions=bool(candidate.setup_instructions),
                has_credentials=bool(candidate.required_credentials),
                repository_url_reliability=self.score_url_reliability(candidate.repository_url),
                documentation_url_reliability=self.score_url_reliability(candidate.documentation_url),
                setup_instructions_quality=self.score_setup_quality(candidate.setup_instructions),
                credentials_clarity=self.score_credentials_clarity(candidate.required_credentials),
                source_credibility=self.score_source_credibility(candidate),
                consistency_score=self.score_consistency(candidate),
                package_name_validity=self.score_package_name(candidate.npm_package),
                repository_structure=self.score_repository_structure(candidate.repository_url),
                query_relevance=self.score_query_relevance(candidate, query),
                category_match=self.score_category_match(candidate, query),
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise ScoringFailure(f"{candidate.name}: {e}") from e

        if self.config.enable_external_metrics:
            try:
                metrics = await self.metrics_provider.get_metrics(candidate)
            except Exception as e:
                raise ScoringFailure(
                    f"{candidate.name}: métricas externas indisponíveis ({type(e).__name__}: {e})"
                ) from e
            factors.external = self._extended_dimensions(factors, metrics)

        return factors

    @staticmethod
    def _extended_dimensions(factors: ConfidenceFactors, metrics: ExternalMetrics) -> Dict[str, float]:
        dimensions = metrics.to_dict()
        dimensions["technical_quality"] = (
            factors.package_name_validity * 0.5 + metrics.npm_package_health * 0.5
        )
        return dimensions

    def calculate_group_scores(self, factors: ConfidenceFactors) -> Dict[str, float]:
        """Score de cada um dos seis grupos."""
        presence = sum(
            rules.CONTENT_PRESENCE_WEIGHT
            for flag in (
                factors.has_repository_url,
                factors.has_npm_package,
                factors.has_documentation_url,
                factors.has_setup_instructions,
                factors.has_credentials,
            )
            if flag
        )

        def pair(weights, a, b):
            return a * weights[0] + b * weights[1]

        return {
            "content_quality": presence,
            "url_reliability": pair(rules.URL_GROUP_WEIGHTS,
                                    factors.repository_url_reliability, factors.documentation_url_reliability),
            "content_completeness": pair(rules.COMPLETENESS_GROUP_WEIGHTS,
                                         factors.setup_instructions_quality, factors.credentials_clarity),
            "source_credibility": pair(rules.CREDIBILITY_GROUP_WEIGHTS,
                                       factors.source_credibility, factors.consistency_score),
            "technical_validity": pair(rules.TECHNICAL_GROUP_WEIGHTS,
                                       factors.package_name_validity, factors.repository_structure),
            "context_relevance": pair(rules.RELEVANCE_GROUP_WEIGHTS,
                                      factors.query_relevance, factors.category_match),
        }

    def calculate_overall_score(self, factors: ConfidenceFactors) -> float:
        groups = self.calculate_group_scores(factors)

        if self.config.enable_external_metrics and factors.external is not None:
            values = {**groups, **factors.external}
            total = sum(
                values.get(name, 0.0) * weight
                for name, weight in self.config.normalized_extended_weights.items()
            )
        else:
            total = sum(groups[name] * weight for name, weight in self.config.weights.items())

        return max(0.0, min(1.0, total))

    def get_confidence_level(self, score: float) -> str:
        t = self.config.thresholds
        if score >= t["excellent_score"]:
            return "excellent"
        if score >= t["high_confidence_score"]:
            return "high"
        if score >= t["minimum_score"]:
            return "medium"
        return "low"

    # --- Heurísticas individuais ---

    @staticmethod
    def score_url_reliability(url: Optional[str]) -> float:
        if not url:
            return 0.0
        return rules.tier_score(
            url.lower(), rules.URL_RELIABILITY_PATTERNS, rules.URL_TIER_SCORES, rules.URL_UNKNOWN_SCORE
        )

    @staticmethod
    def score_setup_quality(instructions: str) -> float:
        if not instructions:
            return 0.0
        score = rules.indicator_score(instructions.lower(), rules.SETUP_QUALITY_INDICATORS)
        if len(instructions) > 100:
            score += 0.1
        if "\n" in instructions:
            score += 0.1
        return min(score, 1.0)

    @staticmethod
    def score_credentials_clarity(credentials: List[str]) -> float:
        if not credentials:
            return 0.0
        text = " ".join(credentials).lower()
        score = rules.indicator_score(text, rules.CREDENTIAL_QUALITY_INDICATORS)
        if len(credentials) > 1:
            score += 0.1
        return min(score, 1.0)

    def score_source_credibility(self, candidate: Candidate) -> float:
        score = 0.5
        if candidate.repository_url:
            score += self.score_url_reliability(candidate.repository_url) * 0.3
        if candidate.documentation_url:
            score += self.score_url_reliability(candidate.documentation_url) * 0.2
        if candidate.npm_package and candidate.npm_package.startswith(OFFICIAL_NPM_SCOPE):
            score += 0.3
        return min(score, 1.0)

    @staticmethod
    def score_consistency(candidate: Candidate) -> float:
        score = 0.0
        repo = candidate.repository_url.lower()
        setup = candidate.setup_instructions.lower()
        package = (candidate.npm_package or "").lower()

        if package and repo and package.replace(OFFICIAL_SERVER_PREFIX, "") in repo:
            score += 0.3
        if package and setup and package in setup:
            score += 0.3
        doc = candidate.documentation_url
        if doc and candidate.repository_url and (
            candidate.repository_url in doc or doc in candidate.repository_url
        ):
            score += 0.2
        if candidate.required_credentials and setup and any(
            cred.lower() in setup for cred in candidate.required_credentials
        ):
            score += 0.2
        return min(score, 1.0)

    @staticmethod
    def score_package_name(package: Optional[str]) -> float:
        if not package:
            return 0.0
        return rules.tier_score(
            package, rules.PACKAGE_VALIDATION_PATTERNS, rules.PACKAGE_TIER_SCORES, rules.PACKAGE_UNKNOWN_SCORE
        )

    @staticmethod
    def score_repository_structure(url: Optional[str]) -> float:
        if not url:
            return 0.0
        score = 0.5
        if "github.com" in url:
            score += 0.2
        if "modelcontextprotocol" in url:
            score += 0.3
        return min(score, 1.0)

    @staticmethod
    def score_query_relevance(candidate: Candidate, query: str) -> float:
        query_lower = query.lower()
        text = f"{candidate.name} {candidate.setup_instructions}".lower()
        score = sum(0.1 for word in query_lower.split() if len(word) > 2 and word in text)
        score += sum(0.2 for term in rules.RELEVANCE_TERMS if term in query_lower and term in text)
        return min(score, 1.0)

    @staticmethod
    def score_category_match(candidate: Candidate, query: str) -> float:
        query_lower = query.lower()
        text = f"{candidate.name} {candidate.setup_instructions}".lower()
        score = sum(0.2 for term in rules.CATEGORY_TERMS if term in query_lower and term in text)
        return min(score, 1.0)

    # --- Explicações ---

    async def generate_confidence_explanation(
        self,
        candidate: Candidate,
        query: Optional[str] = None
    ) -> Dict[str, Any]:
        """Score, nível, fatores, pontos fortes/fracos, recomendações e riscos."""
        factors = await self.calculate_confidence_factors(candidate, query)
        score = self.calculate_overall_score(factors)
        level = self.get_confidence_level(score)

        strengths: List[str] = []
        weaknesses: List[str] = []
        recommendations: List[str] = []
        risk_factors: List[str] = []

        if factors.repository_url_reliability >= 0.7:
            strengths.append("Repositório em fonte confiável")
        elif not factors.has_repository_url:
            weaknesses.append("Sem URL de repositório")
            recommendations.append("Verificar o código-fonte antes de instalar")
        elif factors.repository_url_reliability <= 0.3:
            risk_factors.append("Repositório em fonte de baixa confiabilidade")

        if factors.package_name_validity >= 1.0:
            strengths.append("Pacote npm com nome oficial/padrão MCP")
        elif not factors.has_npm_package:
            weaknesses.append("Sem pacote npm identificado")
        elif factors.package_name_validity <= rules.PACKAGE_UNKNOWN_SCORE:
            risk_factors.append("Nome de pacote fora dos padrões conhecidos")

        if factors.setup_instructions_quality >= 0.5:
            strengths.append("Instruções de setup detalhadas")
        elif not factors.has_setup_instructions:
            weaknesses.append("Sem instruções de setup")
            recommendations.append("Consultar a documentação para instalação")
        else:
            weaknesses.append("Instruções de setup incompletas")

        if factors.has_credentials and factors.credentials_clarity < 0.3:
            weaknesses.append("Credenciais pouco claras")
            recommendations.append("Confirmar quais credenciais são necessárias")

        if factors.consistency_score >= 0.5:
            strengths.append("Campos consistentes entre si")
        elif factors.has_npm_package and factors.has_repository_url and factors.consistency_score == 0:
            risk_factors.append("Pacote e repositório não parecem relacionados")

        if factors.source_credibility >= 0.9:
            strengths.append("Fonte oficial")

        if factors.external:
            for name, value in factors.external.items():
                if value < 0.3:
                    risk_factors.append(f"Métrica externa baixa: {name} ({value:.2f})")

        if level == "low":
            recommendations.append("Usar apenas após revisão manual")

        explanation = (
            f"Confiança {level} ({score:.2f}) para '{candidate.name}': "
            f"{len(strengths)} pontos fortes, {len(weaknesses)} pontos fracos"
        )

        return {
            "overall_score": score,
            "confidence_level": level,
            "factors": factors.to_dict(),
            "group_scores": self.calculate_group_scores(factors),
            "explanation": explanation,
            "strengths": strengths,
            "weaknesses": weaknesses,
            "recommendations": recommendations,
            "risk_factors": risk_factors,
        }

    async def get_enhanced_confidence_explanation(
        self,
        candidate: Candidate,
        query: Optional[str] = None
    ) -> Dict[str, Any]:
        """Explicação + insights do aprendizado adaptativo."""
        explanation = await self.generate_confidence_explanation(candidate, query)
        prediction = self.learning.predict_success(candidate.name, query or "", explanation["overall_score"])

        suggestions = []
        for factor, value in prediction["factors"].items():
            if value < 0.5:
                suggestions.append(f"Casos similares tiveram {factor} baixo ({value:.2f})")
        if prediction["similar_cases"] == 0:
            suggestions.append("Sem histórico similar; registrar feedback após o uso")

        explanation["learning_insights"] = {
            "predicted_success": prediction["success_probability"],
            "confidence": prediction["confidence"],
            "similar_cases": prediction["similar_cases"],
            "improvement_suggestions": suggestions,
        }
        return explanation

    def get_scoring_stats(self, candidates: List[Candidate]) -> Dict[str, Any]:
        distribution = {"0.0-0.2": 0, "0.2-0.4": 0, "0.4-0.6": 0, "0.6-0.8": 0, "0.8-1.0": 0}
        levels = {"low": 0, "medium": 0, "high": 0, "excellent": 0}
        total = len(candidates)
        if total == 0:
            return {
                "total_results": 0,
                "average_score": 0.0,
                "min_score": 0.0,
                "max_score": 0.0,
                "score_distribution": distribution,
                "confidence_levels": levels,
                "high_confidence_percent": 0.0,
                "excellent_percent": 0.0,
            }

        scores = [c.confidence_score for c in candidates]
        buckets = list(distribution)
        for score in scores:
            distribution[buckets[min(int(score / 0.2), 4)]] += 1
            levels[self.get_confidence_level(score)] += 1

        t = self.config.thresholds
        return {
            "total_results": total,
            "average_score": sum(scores) / total,
            "min_score": min(scores),
            "max_score": max(scores),
            "score_distribution": distribution,
            "confidence_levels": levels,
            "high_confidence_percent": 100.0 * sum(1 for s in scores if s >= t["high_confidence_score"]) / total,
            "excellent_percent": 100.0 * sum(1 for s in scores if s >= t["excellent_score"]) / total,
        }

    # --- Pesos e aprendizado ---

    def update_weights(self, new_weights: Mapping[str, float]) -> ScorerConfig:
        """Troca a config por `config.with_weights(new_weights)`."""
        self.config = self.config.with_weights(new_weights)
        logger.info(f"🔄 Pesos do scorer atualizados: {dict(new_weights)}")
        return self.config

    def record_feedback(
        self,
        candidate: Candidate,
        query: str,
        actual_score: float,
        success: bool,
        usage_duration: float = 0.0,
        tags: Optional[List[str]] = None,
        feedback: str = ""
    ) -> FeedbackRecord:
        record = FeedbackRecord(
            candidate_id=candidate.npm_package or candidate.repository_url or candidate.name,
            query=query,
            predicted_score=candidate.confidence_score,
            actual_score=actual_score,
            success=success,
            usage_duration=usage_duration,
            tags=list(tags or []),
            candidate_name=candidate.name,
            feedback=feedback,
        )
        self.learning.add_feedback(record)
        return record

    def apply_learning_adjustments(self) -> Dict[str, float]:
        """
        Aplica os ajustes aceitos pelo aprendizado.

        Returns:
            Pesos alterados (vazio se nada mudou)
        """
        current = dict(self.config.extended_weights)
        adjustments = self.learning.generate_weight_adjustments(current)
        updated = self.learning.apply_weight_adjustments(adjustments, current)
        changed = {k: v for k, v in updated.items() if current.get(k) != v}
        if changed:
            self.config = self.config.with_extended_weights(changed)
        return changed
