"""
Score Calculator Tests
======================

Tests for factor scores, the overall risk score and metric validation.

Version: 0.1.0
"""

import pytest

from services.risk_scoring.errors import InvalidMetricsError
from services.risk_scoring.services.calculator import (
    ScoreCalculator,
    ScoreWeights,
    recommendations,
)
from shared.models.risk import RiskLevel, RiskMetrics


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def calculator() -> ScoreCalculator:
    """Calculator with default weights."""
    return ScoreCalculator()


@pytest.fixture
def mixed_metrics() -> RiskMetrics:
    """A scope with partial progress on tasks and risks."""
    return RiskMetrics(
        total_tasks=3,
        completed_tasks=2,
        tasks_on_time=1,
        overdue_tasks=1,
        max_overdue_days=3,
        high_risks=1,
        mitigated_risks=1,
    )


# =============================================================================
# Factor Tests
# =============================================================================


class TestFactors:
    """Tests for the individual factor scores."""

    def test_mixed_scope(self, calculator: ScoreCalculator, mixed_metrics: RiskMetrics) -> None:
        """Factors and overall score for a typical scope."""
        result = calculator.calculate(mixed_metrics)

        assert result.factors.task_completion == pytest.approx(66.667, abs=0.01)
        assert result.factors.risk_mitigation == pytest.approx(50.0)
        assert result.factors.timely_completion == pytest.approx(33.333, abs=0.01)
        assert result.factors.overall_health == pytest.approx(53.333, abs=0.01)
        assert result.exposure == pytest.approx(50.0)
        assert result.overall_risk_score == pytest.approx(47.667, abs=0.01)
        assert result.risk_level == RiskLevel.MEDIUM

    def test_empty_scope(self, calculator: ScoreCalculator) -> None:
        """No tasks and no risks: no division error, taskCompletion is 0."""
        result = calculator.calculate(RiskMetrics())

        assert result.factors.task_completion == 0.0
        assert result.factors.risk_mitigation == 0.0
        assert result.factors.timely_completion == 100.0
        assert result.exposure == 0.0
        assert 0.0 <= result.overall_risk_score <= 100.0

    def test_perfect_scope(self, calculator: ScoreCalculator) -> None:
        """Everything done on time and every risk mitigated scores 0."""
        result = calculator.calculate(
            RiskMetrics(total_tasks=5, completed_tasks=5, tasks_on_time=5, mitigated_risks=4)
        )

        assert result.factors.overall_health == pytest.approx(100.0)
        assert result.overall_risk_score == pytest.approx(0.0)
        assert result.risk_level == RiskLevel.LOW

    def test_worst_scope(self, calculator: ScoreCalculator) -> None:
        """Nothing done, everything overdue and high risk scores 100."""
        result = calculator.calculate(
            RiskMetrics(total_tasks=4, overdue_tasks=4, max_overdue_days=30, high_risks=3)
        )

        assert result.overall_risk_score == pytest.approx(100.0)
        assert result.risk_level == RiskLevel.CRITICAL

    def test_overdue_tasks_reduce_timeliness(self, calculator: ScoreCalculator) -> None:
        """Open overdue tasks count against timely completion."""
        on_time = calculator.calculate(RiskMetrics(total_tasks=2, completed_tasks=1, tasks_on_time=1))
        overdue = calculator.calculate(
            RiskMetrics(total_tasks=2, completed_tasks=1, tasks_on_time=1, overdue_tasks=1)
        )

        assert on_time.factors.timely_completion == 100.0
        assert overdue.factors.timely_completion == pytest.approx(50.0)
        assert overdue.overall_risk_score > on_time.overall_risk_score


# =============================================================================
# Property Tests
# =============================================================================


class TestProperties:
    """Monotonicity and boundedness over a grid of metrics."""

    @pytest.mark.parametrize("medium", [0, 2])
    @pytest.mark.parametrize("low", [0, 3])
    @pytest.mark.parametrize("mitigated", [0, 1, 5])
    @pytest.mark.parametrize("completed", [0, 2, 4])
    def test_score_never_decreases_with_high_risks(
        self,
        calculator: ScoreCalculator,
        medium: int,
        low: int,
        mitigated: int,
        completed: int,
    ) -> None:
        """Adding a high risk while holding all else constant never lowers the score."""
        previous = None
        for high in range(0, 8):
            metrics = RiskMetrics(
                total_tasks=4,
                completed_tasks=completed,
                tasks_on_time=completed // 2,
                high_risks=high,
                medium_risks=medium,
                low_risks=low,
                mitigated_risks=mitigated,
            )
            score = calculator.calculate(metrics).overall_risk_score
            if previous is not None:
                assert score >= previous - 1e-9
            previous = score

    @pytest.mark.parametrize("total,completed,on_time,overdue", [
        (0, 0, 0, 0),
        (1, 1, 0, 0),
        (10, 3, 3, 7),
        (100, 50, 10, 50),
    ])
    @pytest.mark.parametrize("high,medium,low,mitigated", [
        (0, 0, 0, 0),
        (50, 0, 0, 0),
        (0, 0, 1, 99),
        (7, 3, 2, 1),
    ])
    def test_all_scores_bounded(
        self,
        calculator: ScoreCalculator,
        total: int,
        completed: int,
        on_time: int,
        overdue: int,
        high: int,
        medium: int,
        low: int,
        mitigated: int,
    ) -> None:
        """Every factor and the overall score stay within [0, 100]."""
        result = calculator.calculate(
            RiskMetrics(
                total_tasks=total,
                completed_tasks=completed,
                tasks_on_time=on_time,
                overdue_tasks=overdue,
                high_risks=high,
                medium_risks=medium,
                low_risks=low,
                mitigated_risks=mitigated,
            )
        )

        for value in (
            result.factors.task_completion,
            result.factors.risk_mitigation,
            result.factors.timely_completion,
            result.factors.overall_health,
            result.exposure,
            result.overall_risk_score,
        ):
            assert 0.0 <= value <= 100.0


# =============================================================================
# Validation Tests
# =============================================================================


class TestValidation:
    """Tests for metric invariant checks."""

    def test_negative_counts_rejected(self, calculator: ScoreCalculator) -> None:
        with pytest.raises(InvalidMetricsError) as exc_info:
            calculator.calculate(RiskMetrics(high_risks=-1))

        assert exc_info.value.status_code == 422
        assert exc_info.value.details["fields"] == ["high_risks"]

    def test_completed_exceeds_total(self, calculator: ScoreCalculator) -> None:
        with pytest.raises(InvalidMetricsError):
            calculator.calculate(RiskMetrics(total_tasks=1, completed_tasks=2))

    def test_on_time_exceeds_completed(self, calculator: ScoreCalculator) -> None:
        with pytest.raises(InvalidMetricsError):
            calculator.calculate(RiskMetrics(total_tasks=3, completed_tasks=1, tasks_on_time=2))

    def test_overdue_and_completed_exceed_total(self, calculator: ScoreCalculator) -> None:
        with pytest.raises(InvalidMetricsError):
            calculator.calculate(RiskMetrics(total_tasks=2, completed_tasks=2, overdue_tasks=1))


# =============================================================================
# Weights and Levels
# =============================================================================


class TestWeights:
    """Tests for weight configuration."""

    def test_default_weights_sum_to_one(self) -> None:
        weights = ScoreWeights()
        total = weights.task_completion + weights.risk_mitigation + weights.timely_completion
        assert total == pytest.approx(1.0)

    def test_invalid_weights_rejected(self) -> None:
        with pytest.raises(ValueError):
            ScoreWeights(task_completion=0.5, risk_mitigation=0.5, timely_completion=0.5)

    def test_exposure_weight_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            ScoreWeights(exposure=1.5)

    def test_zero_exposure_weight_uses_health_only(self, mixed_metrics: RiskMetrics) -> None:
        result = ScoreCalculator(ScoreWeights(exposure=0.0)).calculate(mixed_metrics)
        assert result.overall_risk_score == pytest.approx(100.0 - result.factors.overall_health)

    def test_from_settings(self) -> None:
        weights = ScoreWeights.from_settings()
        assert weights.task_completion == pytest.approx(0.4)
        assert weights.exposure == pytest.approx(0.3)

    @pytest.mark.parametrize("score,level", [
        (0.0, RiskLevel.LOW),
        (24.9, RiskLevel.LOW),
        (25.0, RiskLevel.MEDIUM),
        (50.0, RiskLevel.HIGH),
        (74.9, RiskLevel.HIGH),
        (75.0, RiskLevel.CRITICAL),
        (100.0, RiskLevel.CRITICAL),
    ])
    def test_risk_level_bands(self, score: float, level: RiskLevel) -> None:
        assert ScoreCalculator.risk_level(score) == level


class TestRecommendations:
    """Tests for recommended actions."""

    def test_recommendations_for_overdue_and_high_risks(
        self,
        calculator: ScoreCalculator,
        mixed_metrics: RiskMetrics,
    ) -> None:
        actions = recommendations(mixed_metrics, calculator.calculate(mixed_metrics))

        assert any("high-impact" in a for a in actions)
        assert any("overdue" in a for a in actions)

    def test_recommendations_default(self, calculator: ScoreCalculator) -> None:
        metrics = RiskMetrics(total_tasks=2, completed_tasks=2, tasks_on_time=2, mitigated_risks=1)
        actions = recommendations(metrics, calculator.calculate(metrics))

        assert actions == ["Maintain current controls and schedule regular risk reviews"]
