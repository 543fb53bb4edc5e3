"""
Adaptive Learning - Ajusta pesos do scorer a partir de feedback.

Não é um modelo treinado: é um laço heurístico de viés/peso sobre o log
de feedback (append-only). Registros marcados com tags de fator
("repository_health" ou "repository_health:alto") alimentam o viés
médio por fator; ajustes só são aplicados com confiança > 0.7.
"""

import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .scoring_rules import DEFAULT_EXTENDED_WEIGHTS

logger = logging.getLogger(__name__)


@dataclass
class FeedbackRecord:
    """Feedback de uso de um candidato."""
    candidate_id: str
    query: str
    predicted_score: float
    actual_score: float
    success: bool
    usage_duration: float = 0.0  # minutos
    tags: List[str] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    candidate_name: str = ""
    feedback: str = ""

    @property
    def residual(self) -> float:
        return self.actual_score - self.predicted_score

    def has_factor(self, factor: str) -> bool:
        return any(tag == factor or tag.startswith(f"{factor}:") for tag in self.tags)


@dataclass
class WeightAdjustment:
    """Ajuste de peso proposto para um fator."""
    factor: str
    current_weight: float
    suggested_weight: float
    confidence: float
    reason: str


def _similarity(a: str, b: str) -> float:
    """Jaccard por palavras."""
    words_a = set(a.lower().split())
    words_b = set(b.lower().split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


class AdaptiveLearningSystem:
    """
    Sistema de aprendizado adaptativo do scorer.

    Thresholds:
        BIAS_THRESHOLD: viés mínimo (absoluto) para propor ajuste
        APPLY_CONFIDENCE: confiança mínima para aplicar
        SIMILARITY_THRESHOLD: Jaccard mínimo para casos similares
    """

    BIAS_THRESHOLD = 0.1
    APPLY_CONFIDENCE = 0.7
    SIMILARITY_THRESHOLD = 0.3
    MIN_WEIGHT = 0.01
    MAX_WEIGHT = 0.3

    def __init__(
        self,
        learning_rate: float = 0.01,
        min_samples: int = 10,
        enable_learning: bool = True,
        storage_path: Optional[str] = None
    ):
        self.learning_rate = learning_rate
        self.min_samples = min_samples
        self.enable_learning = enable_learning
        self.storage_path = Path(storage_path) if storage_path else None
        self._records: List[FeedbackRecord] = []
        self._last_updated: Optional[str] = None
        self._adjustments_applied = 0

        if self.storage_path:
            self._load()

    @property
    def records(self) -> List[FeedbackRecord]:
        return list(self._records)

    def add_feedback(self, record: FeedbackRecord) -> None:
        if not self.enable_learning:
            return
        self._records.append(record)
        self._last_updated = datetime.now(timezone.utc).isoformat()
        if self.storage_path:
            self._save()
        logger.info(
            f"📝 Feedback registrado: {record.candidate_name or record.candidate_id} "
            f"(previsto={record.predicted_score:.2f}, real={record.actual_score:.2f}, sucesso={record.success})"
        )

    def get_learning_metrics(self) -> Dict[str, Any]:
        """Acurácia, viés, variância e taxa de melhoria do log atual."""
        total = len(self._records)
        if total == 0:
            return {
                "total_samples": 0,
                "accuracy": 0.0,
                "bias": 0.0,
                "variance": 0.0,
                "improvement_rate": 0.0,
                "last_updated": self._last_updated,
                "weight_adjustments": self._adjustments_applied,
            }

        accuracy = self._success_rate(self._records)
        bias = sum(r.residual for r in self._records) / total
        variance = sum((r.residual - bias) ** 2 for r in self._records) / total

        half = total // 2
        older = self._records[:half]
        recent = self._records[total - half:] if half else []
        older_accuracy = self._success_rate(older)
        recent_accuracy = self._success_rate(recent)
        improvement = (recent_accuracy - older_accuracy) / older_accuracy if older_accuracy > 0 else 0.0

        return {
            "total_samples": total,
            "accuracy": accuracy,
            "bias": bias,
            "variance": variance,
            "improvement_rate": improvement,
            "last_updated": self._last_updated,
            "weight_adjustments": self._adjustments_applied,
        }

    def generate_weight_adjustments(
        self,
        current_weights: Optional[Dict[str, float]] = None
    ) -> List[WeightAdjustment]:
        """
        Propõe ajustes por fator.

        Exige min_samples registros; só fatores com |viés| > 0.1.
        novo = clamp(atual + viés * learning_rate, 0.01, 0.3)
        """
        if len(self._records) < self.min_samples:
            return []

        weights = current_weights if current_weights is not None else DEFAULT_EXTENDED_WEIGHTS
        adjustments = []

        for factor, current in weights.items():
            tagged = [r for r in self._records if r.has_factor(factor)]
            if not tagged:
                continue
            bias = sum(r.residual for r in tagged) / len(tagged)
            if abs(bias) <= self.BIAS_THRESHOLD:
                continue

            suggested = max(self.MIN_WEIGHT, min(self.MAX_WEIGHT, current + bias * self.learning_rate))
            direction = "subestimado" if bias > 0 else "superestimado"
            adjustments.append(WeightAdjustment(
                factor=factor,
                current_weight=current,
                suggested_weight=suggested,
                confidence=self._factor_confidence(len(tagged)),
                reason=f"Fator {factor} {direction} (viés médio {bias:+.2f} em {len(tagged)} amostras)"
            ))

        return adjustments

    def apply_weight_adjustments(
        self,
        adjustments: List[WeightAdjustment],
        current_weights: Dict[str, float]
    ) -> Dict[str, float]:
        """Novo dicionário de pesos; aplica só ajustes com confiança > 0.7."""
        new_weights = dict(current_weights)
        if not self.enable_learning:
            return new_weights

        for adjustment in adjustments:
            if adjustment.confidence <= self.APPLY_CONFIDENCE:
                continue
            new_weights[adjustment.factor] = adjustment.suggested_weight
            self._adjustments_applied += 1
            logger.info(
                f"🔄 Peso ajustado: {adjustment.factor} "
                f"{adjustment.current_weight:.3f} -> {adjustment.suggested_weight:.3f} ({adjustment.reason})"
            )
        return new_weights

    def predict_success(
        self,
        candidate_name: str,
        query: str,
        predicted_score: float
    ) -> Dict[str, Any]:
        """
        Probabilidade de sucesso a partir de casos similares.

        Sem histórico suficiente devolve o próprio score previsto com
        confiança 0.5.
        """
        similar = []
        if len(self._records) >= self.min_samples:
            similar = [
                r for r in self._records
                if _similarity(r.candidate_name, candidate_name) > self.SIMILARITY_THRESHOLD
                or _similarity(r.query, query) > self.SIMILARITY_THRESHOLD
            ]

        if not similar:
            return {
                "success_probability": predicted_score,
                "confidence": 0.5,
                "similar_cases": 0,
                "factors": {},
            }

        return {
            "success_probability": self._success_rate(similar),
            "confidence": min(len(similar) / 10, 1.0),
            "similar_cases": len(similar),
            "factors": self.analyze_success_factors(similar),
        }

    def analyze_success_factors(
        self,
        records: Optional[List[FeedbackRecord]] = None
    ) -> Dict[str, float]:
        """Score real médio por fator nos registros bem-sucedidos."""
        successes = [r for r in (self._records if records is None else records) if r.success]
        factors: Dict[str, float] = {}
        for factor in DEFAULT_EXTENDED_WEIGHTS:
            tagged = [r for r in successes if r.has_factor(factor)]
            if tagged:
                factors[factor] = sum(r.actual_score for r in tagged) / len(tagged)
        return factors

    def get_recent_accuracy(self, days: int = 7) -> float:
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        recent = [r for r in self._records if self._parse_timestamp(r.timestamp) >= cutoff]
        return self._success_rate(recent)

    def clear(self) -> None:
        self._records.clear()
        self._last_updated = None
        self._adjustments_applied = 0
        if self.storage_path:
            self._save()
        logger.info("AdaptiveLearning: Feedback resetado")

    @staticmethod
    def _success_rate(records: List[FeedbackRecord]) -> float:
        if not records:
            return 0.0
        return sum(1 for r in records if r.success) / len(records)

    @staticmethod
    def _factor_confidence(samples: int) -> float:
        if samples < 5:
            return 0.3
        return min(samples / 20, 1.0)

    @staticmethod
    def _parse_timestamp(value: str) -> datetime:
        """Timestamps sem fuso (histórico antigo) são tratados como UTC."""
        try:
            parsed = datetime.fromisoformat(value)
        except (TypeError, ValueError):
            parsed = datetime.min
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def _load(self) -> None:
        if not self.storage_path.exists():
            logger.info(f"AdaptiveLearning: Sem histórico em {self.storage_path}, iniciando vazio")
            return
        try:
            with open(self.storage_path, "r") as f:
                data = json.load(f)
            self._records = [FeedbackRecord(**item) for item in data.get("records", [])]
            self._last_updated = data.get("last_updated")
            logger.info(f"AdaptiveLearning: {len(self._records)} registros carregados")
        except (OSError, json.JSONDecodeError, TypeError) as e:
            logger.warning(f"AdaptiveLearning: Erro ao carregar histórico: {e}")

    def _save(self) -> None:
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.storage_path, "w") as f:
                json.dump({
                    "records": [asdict(r) for r in self._records],
                    "last_updated": self._last_updated,
                }, f, indent=2)
        except OSError as e:
            logger.warning(f"AdaptiveLearning: Erro ao salvar histórico: {e}")
