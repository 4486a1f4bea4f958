"""
Risk Score Calculator
=====================

Pure transformation of aggregated metrics into factor scores and an
overall risk score (0-100, lower is better).

Factor Scores:
- taskCompletion: completed / total tasks
- riskMitigation: mitigated / all known risks
- timelyCompletion: on-time completions / (completed + overdue open tasks)
- overallHealth: weighted blend of the three above

Overall Risk Score:
    (1 - e) * (100 - overallHealth) + e * exposure

where exposure is the severity-weighted share of open risks among all risks
(high=3, medium=2, low=1). Adding a high risk lowers riskMitigation and
raises exposure, so the overall score never decreases when highRisks grows.

Version: 0.1.0
"""

from dataclasses import dataclass, field

from services.risk_scoring.errors import InvalidMetricsError
from shared.config import RiskScoringSettings, settings
from shared.logging import get_logger
from shared.models.risk import CalculationFactors, RiskLevel, RiskMetrics


logger = get_logger(__name__)


# =============================================================================
# Weights
# =============================================================================


@dataclass
class ScoreWeights:
    """Weights for score calculation."""

    # Overall health blend, must sum to 1
    task_completion: float = 0.4
    risk_mitigation: float = 0.4
    timely_completion: float = 0.2

    # Share of the overall score driven by open-risk severity
    exposure: float = 0.3

    # Severity multipliers for exposure
    severity: dict[str, float] = field(
        default_factory=lambda: {
            "high": 3.0,
            "medium": 2.0,
            "low": 1.0,
        }
    )

    def __post_init__(self) -> None:
        total = self.task_completion + self.risk_mitigation + self.timely_completion
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Factor weights must sum to 1.0, got {total}")
        if not 0.0 <= self.exposure <= 1.0:
            raise ValueError(f"Exposure weight must be within [0, 1], got {self.exposure}")
        if any(w < 0 for w in self.severity.values()):
            raise ValueError("Severity multipliers must be non-negative")

    @classmethod
    def from_settings(cls, config: RiskScoringSettings | None = None) -> "ScoreWeights":
        """Build weights from the service configuration."""
        config = config or settings.risk_scoring
        return cls(
            task_completion=config.weight_task_completion,
            risk_mitigation=config.weight_risk_mitigation,
            timely_completion=config.weight_timely_completion,
            exposure=config.exposure_weight,
        )


@dataclass(frozen=True)
class ScoreCalculation:
    """Result of a calculation, at full precision."""

    overall_risk_score: float
    factors: CalculationFactors
    exposure: float
    risk_level: RiskLevel


def _percent(numerator: float, denominator: float) -> float:
    """Percentage clamped to [0, 100]; denominator is floored at 1."""
    value = numerator / max(denominator, 1) * 100.0
    return min(100.0, max(0.0, value))


# =============================================================================
# Calculator
# =============================================================================


class ScoreCalculator:
    """
    Converts raw metrics into factor scores and an overall risk score.

    Stateless apart from its weights; safe to share between requests.
    """

    def __init__(self, weights: ScoreWeights | None = None) -> None:
        self.weights = weights or ScoreWeights()

    def calculate(self, metrics: RiskMetrics) -> ScoreCalculation:
        """
        Calculate factor scores and the overall risk score.

        Raises:
            InvalidMetricsError: counts are negative or inconsistent
        """
        self.validate(metrics)

        task_completion = self._task_completion(metrics)
        risk_mitigation = self._risk_mitigation(metrics)
        timely_completion = self._timely_completion(metrics)

        overall_health = (
            self.weights.task_completion * task_completion
            + self.weights.risk_mitigation * risk_mitigation
            + self.weights.timely_completion * timely_completion
        )
        overall_health = min(100.0, max(0.0, overall_health))

        exposure = self._exposure(metrics)
        overall = (1.0 - self.weights.exposure) * (100.0 - overall_health)
        overall += self.weights.exposure * exposure
        overall = min(100.0, max(0.0, overall))

        return ScoreCalculation(
            overall_risk_score=overall,
            factors=CalculationFactors(
                task_completion=task_completion,
                risk_mitigation=risk_mitigation,
                timely_completion=timely_completion,
                overall_health=overall_health,
            ),
            exposure=exposure,
            risk_level=self.risk_level(overall),
        )

    @staticmethod
    def validate(metrics: RiskMetrics) -> None:
        """Reject metrics that violate count invariants."""
        counts = metrics.model_dump()
        negative = sorted(name for name, value in counts.items() if value < 0)
        if negative:
            raise InvalidMetricsError(
                f"Negative counts in metrics: {', '.join(negative)}",
                fields=negative,
            )

        if metrics.completed_tasks > metrics.total_tasks:
            raise InvalidMetricsError(
                "completedTasks exceeds totalTasks",
                completed_tasks=metrics.completed_tasks,
                total_tasks=metrics.total_tasks,
            )

        if metrics.tasks_on_time > metrics.completed_tasks:
            raise InvalidMetricsError(
                "tasksOnTime exceeds completedTasks",
                tasks_on_time=metrics.tasks_on_time,
                completed_tasks=metrics.completed_tasks,
            )

        if metrics.completed_tasks + metrics.overdue_tasks > metrics.total_tasks:
            raise InvalidMetricsError(
                "completed and overdue tasks exceed totalTasks",
                completed_tasks=metrics.completed_tasks,
                overdue_tasks=metrics.overdue_tasks,
                total_tasks=metrics.total_tasks,
            )

    def _task_completion(self, metrics: RiskMetrics) -> float:
        # Empty scope scores 0 rather than failing
        return _percent(metrics.completed_tasks, metrics.total_tasks)

    def _risk_mitigation(self, metrics: RiskMetrics) -> float:
        return _percent(metrics.mitigated_risks, metrics.total_risks)

    def _timely_completion(self, metrics: RiskMetrics) -> float:
        # Overdue open tasks count against timeliness alongside late completions
        judged = metrics.completed_tasks + metrics.overdue_tasks
        if judged == 0:
            return 100.0
        return _percent(metrics.tasks_on_time, judged)

    def _exposure(self, metrics: RiskMetrics) -> float:
        severity = self.weights.severity
        top = max(severity.values())
        if top == 0:
            return 0.0
        weighted = (
            severity["high"] * metrics.high_risks
            + severity["medium"] * metrics.medium_risks
            + severity["low"] * metrics.low_risks
        )
        return _percent(weighted, top * metrics.total_risks)

    @staticmethod
    def risk_level(score: float) -> RiskLevel:
        """Label an overall risk score."""
        if score >= 75:
            return RiskLevel.CRITICAL
        elif score >= 50:
            return RiskLevel.HIGH
        elif score >= 25:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW


def recommendations(metrics: RiskMetrics, calculation: ScoreCalculation) -> list[str]:
    """Deterministic next actions for a calculation."""
    actions: list[str] = []

    if metrics.total_tasks and calculation.factors.task_completion < 30:
        actions.append("Low task completion rate requires immediate attention")
    if metrics.high_risks:
        actions.append(f"Mitigate {metrics.high_risks} open high-impact risk(s)")
    if metrics.overdue_tasks:
        actions.append(
            f"Resolve {metrics.overdue_tasks} overdue task(s); "
            f"oldest is {metrics.max_overdue_days} day(s) late"
        )
    if metrics.total_risks == 0:
        actions.append("Record a risk assessment to establish a mitigation baseline")
    if not actions:
        actions.append("Maintain current controls and schedule regular risk reviews")

    return actions
