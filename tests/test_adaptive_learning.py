"""
Testes do AdaptiveLearningSystem e da integração com o scorer.
"""

from datetime import datetime, timedelta, timezone

import pytest

from mcp_discovery.services.learning import (
    AdaptiveLearningSystem,
    ConfidenceScorer,
    FeedbackRecord,
    WeightAdjustment,
)

from conftest import make_candidate


def record(predicted=0.3, actual=0.9, success=True, tags=("repository_health",), **kwargs):
    return FeedbackRecord(
        candidate_id=kwargs.pop("candidate_id", "@modelcontextprotocol/server-git"),
        query=kwargs.pop("query", "git tools"),
        predicted_score=predicted,
        actual_score=actual,
        success=success,
        tags=list(tags),
        **kwargs
    )


def test_metrics_without_feedback():
    metrics = AdaptiveLearningSystem().get_learning_metrics()
    assert metrics["total_samples"] == 0
    assert metrics["accuracy"] == 0.0


def test_metrics_accuracy_and_bias():
    learning = AdaptiveLearningSystem()
    learning.add_feedback(record(predicted=0.5, actual=0.7, success=True))
    learning.add_feedback(record(predicted=0.5, actual=0.3, success=False))

    metrics = learning.get_learning_metrics()
    assert metrics["total_samples"] == 2
    assert metrics["accuracy"] == 0.5
    assert metrics["bias"] == pytest.approx(0.0)
    assert metrics["variance"] == pytest.approx(0.04)


def test_no_adjustments_below_min_samples():
    learning = AdaptiveLearningSystem(min_samples=10)
    for _ in range(9):
        learning.add_feedback(record())
    assert learning.generate_weight_adjustments() == []


def test_adjustment_follows_bias_sign():
    learning = AdaptiveLearningSystem(min_samples=10, learning_rate=0.01)
    for _ in range(16):
        learning.add_feedback(record(predicted=0.3, actual=0.9, tags=["repository_health:alto"]))

    adjustments = learning.generate_weight_adjustments({"repository_health": 0.12, "security_score": 0.08})

    assert len(adjustments) == 1
    adjustment = adjustments[0]
    assert adjustment.factor == "repository_health"
    assert adjustment.suggested_weight == pytest.approx(0.126)
    assert adjustment.confidence == pytest.approx(0.8)


def test_small_bias_is_ignored():
    learning = AdaptiveLearningSystem(min_samples=2)
    for _ in range(5):
        learning.add_feedback(record(predicted=0.5, actual=0.55))
    assert learning.generate_weight_adjustments({"repository_health": 0.12}) == []


def test_suggested_weight_is_clamped():
    learning = AdaptiveLearningSystem(min_samples=2, learning_rate=1.0)
    for _ in range(5):
        learning.add_feedback(record(predicted=0.0, actual=1.0))
    adjustment = learning.generate_weight_adjustments({"repository_health": 0.29})[0]
    assert adjustment.suggested_weight == AdaptiveLearningSystem.MAX_WEIGHT


def test_apply_only_confident_adjustments():
    learning = AdaptiveLearningSystem()
    current = {"a": 0.1, "b": 0.1}
    adjustments = [
        WeightAdjustment("a", 0.1, 0.2, confidence=0.9, reason="forte"),
        WeightAdjustment("b", 0.1, 0.2, confidence=0.7, reason="fraco"),
    ]

    updated = learning.apply_weight_adjustments(adjustments, current)

    assert updated == {"a": 0.2, "b": 0.1}
    assert current == {"a": 0.1, "b": 0.1}
    assert learning.get_learning_metrics()["weight_adjustments"] == 1


def test_predict_success_uses_similar_cases():
    learning = AdaptiveLearningSystem(min_samples=4)
    for success in (True, True, True, False):
        learning.add_feedback(record(success=success, candidate_name="git-mcp", query="git version control"))
    learning.add_feedback(record(success=False, candidate_name="weather", query="forecast api"))

    prediction = learning.predict_success("git-mcp", "git version control", 0.2)

    assert prediction["similar_cases"] == 4
    assert prediction["success_probability"] == pytest.approx(0.75)


def test_predict_success_without_history_returns_prior():
    prediction = AdaptiveLearningSystem().predict_success("x", "y", 0.42)
    assert prediction == {"success_probability": 0.42, "confidence": 0.5, "similar_cases": 0, "factors": {}}


def test_analyze_success_factors_averages_actual_scores():
    learning = AdaptiveLearningSystem()
    learning.add_feedback(record(actual=0.8, tags=["community_adoption"]))
    learning.add_feedback(record(actual=0.6, tags=["community_adoption"]))
    learning.add_feedback(record(actual=0.1, success=False, tags=["community_adoption"]))

    assert learning.analyze_success_factors() == {"community_adoption": pytest.approx(0.7)}


def test_recent_accuracy_ignores_old_records():
    learning = AdaptiveLearningSystem()
    old = (datetime.now(timezone.utc) - timedelta(days=30)).isoformat()
    learning.add_feedback(record(success=False, timestamp=old))
    learning.add_feedback(record(success=True))

    assert learning.get_recent_accuracy(days=7) == 1.0


def test_disabled_learning_ignores_feedback():
    learning = AdaptiveLearningSystem(enable_learning=False)
    learning.add_feedback(record())
    assert learning.records == []


def test_feedback_persists_to_json(tmp_path):
    path = tmp_path / "learning" / "feedback.json"
    learning = AdaptiveLearningSystem(storage_path=str(path))
    learning.add_feedback(record(candidate_name="git-mcp"))

    reloaded = AdaptiveLearningSystem(storage_path=str(path))
    assert len(reloaded.records) == 1
    assert reloaded.records[0].candidate_name == "git-mcp"

    reloaded.clear()
    assert AdaptiveLearningSystem(storage_path=str(path)).records == []


def test_scorer_feedback_loop_adjusts_extended_weights():
    learning = AdaptiveLearningSystem(min_samples=10)
    scorer = ConfidenceScorer(learning=learning)
    candidate = make_candidate(confidence_score=0.3)

    for _ in range(16):
        scorer.record_feedback(candidate, "filesystem", actual_score=0.9, success=True, tags=["repository_health"])

    changed = scorer.apply_learning_adjustments()

    assert changed == {"repository_health": pytest.approx(0.126)}
    assert scorer.config.extended_weights["repository_health"] == pytest.approx(0.126)
    assert learning.records[0].candidate_id == "@modelcontextprotocol/server-filesystem"


def test_recent_accuracy_treats_naive_timestamps_as_utc():
    learning = AdaptiveLearningSystem()
    legacy_old = (datetime.now(timezone.utc) - timedelta(days=30)).replace(tzinfo=None).isoformat()
    legacy_new = datetime.now(timezone.utc).replace(tzinfo=None).isoformat()
    learning.add_feedback(record(success=False, timestamp=legacy_old))
    learning.add_feedback(record(success=True, timestamp=legacy_new))
    learning.add_feedback(record(success=True, timestamp="não é data"))

    assert learning.get_recent_accuracy(days=7) == 1.0


def test_feedback_timestamp_is_timezone_aware():
    assert datetime.fromisoformat(record().timestamp).tzinfo is not None


def test_learning_on_shared_key_keeps_base_weights():
    scorer = ConfidenceScorer(learning=AdaptiveLearningSystem(min_samples=10))
    base_before = dict(scorer.config.weights)
    candidate = make_candidate(confidence_score=0.3)

    for _ in range(20):
        scorer.record_feedback(candidate, "filesystem", actual_score=0.9, success=True, tags=["content_quality"])

    changed = scorer.apply_learning_adjustments()

    assert set(changed) == {"content_quality"}
    assert scorer.config.extended_weights["content_quality"] == pytest.approx(changed["content_quality"])
    assert scorer.config.extended_weights["content_quality"] != pytest.approx(0.10)
    assert dict(scorer.config.weights) == base_before
    assert sum(scorer.config.weights.values()) == pytest.approx(1.0)


def test_with_extended_weights_rejects_base_only_keys():
    config = ConfidenceScorer().config
    with pytest.raises(ValueError):
        config.with_extended_weights({"unknown_factor": 0.2})
    with pytest.raises(ValueError):
        config.with_extended_weights({"security_score": -0.1})
