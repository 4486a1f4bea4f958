"""
Risk Score Models
=================

Pydantic models for risk score snapshots, trends and the events exchanged
with the task subsystem.

Scores are kept at full precision in memory, storage and events. When a
model is serialized for the web client (the default) every score is rounded
to one decimal place; pass ``context={"precision": "full"}`` to
``model_dump`` to keep full precision.

Version: 0.1.0
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import ConfigDict, Field, SerializationInfo, field_serializer, field_validator

from shared.models.common import CamelModel


FULL_PRECISION = {"precision": "full"}


def display_score(value: float | None, info: SerializationInfo) -> float | None:
    """Round a score to one decimal unless full precision was requested."""
    if value is None:
        return None
    context = info.context or {}
    if context.get("precision") == "full":
        return value
    return round(value, 1)


# =============================================================================
# Enums
# =============================================================================


class TriggeredBy(str, Enum):
    """Cause of a score calculation."""

    TASK_COMPLETION = "task_completion"
    MANUAL_REFRESH = "manual_refresh"
    AI_CALCULATION = "ai_calculation"
    SCHEDULED = "scheduled"


CLIENT_TRIGGERS = (TriggeredBy.MANUAL_REFRESH, TriggeredBy.AI_CALCULATION)


class TrendDirection(str, Enum):
    """Direction of change between the two most recent snapshots."""

    IMPROVING = "improving"  # risk score went down
    DECLINING = "declining"  # risk score went up
    STABLE = "stable"
    UNKNOWN = "unknown"  # fewer than two snapshots


class RiskLevel(str, Enum):
    """Coarse label for an overall risk score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationType(str, Enum):
    """Kinds of risk notifications."""

    RISK_THRESHOLD = "risk_threshold"
    SCORE_IMPROVEMENT = "score_improvement"
    TREND_ALERT = "trend_alert"


class NotificationSeverity(str, Enum):
    """Notification severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# =============================================================================
# Metrics and scores
# =============================================================================


class RiskMetrics(CamelModel):
    """
    Raw counts for a scope, as produced by the metrics aggregator.

    Counts are not range-checked here; the score calculator rejects
    inconsistent metrics with InvalidMetricsError.
    """

    total_tasks: int = 0
    completed_tasks: int = 0
    tasks_on_time: int = 0
    high_risks: int = 0
    medium_risks: int = 0
    low_risks: int = 0
    mitigated_risks: int = 0
    overdue_tasks: int = 0
    max_overdue_days: int = 0

    @property
    def open_risks(self) -> int:
        return self.high_risks + self.medium_risks + self.low_risks

    @property
    def total_risks(self) -> int:
        return self.open_risks + self.mitigated_risks


class CalculationFactors(CamelModel):
    """The four 0-100 factor scores behind an overall risk score."""

    task_completion: float
    risk_mitigation: float
    timely_completion: float
    overall_health: float

    @field_serializer(
        "task_completion",
        "risk_mitigation",
        "timely_completion",
        "overall_health",
    )
    def _round(self, value: float, info: SerializationInfo) -> float | None:
        return display_score(value, info)


class RiskScoreSnapshot(CamelModel):
    """One immutable, timestamped risk score calculation."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    framework_id: str | None = None

    overall_risk_score: float = Field(..., ge=0.0, le=100.0)

    high_risks: int = Field(..., ge=0)
    medium_risks: int = Field(..., ge=0)
    low_risks: int = Field(..., ge=0)
    mitigated_risks: int = Field(..., ge=0)
    total_tasks: int = Field(..., ge=0)
    completed_tasks: int = Field(..., ge=0)

    calculation_factors: CalculationFactors
    triggered_by: TriggeredBy
    context: list[str] = Field(default_factory=list)
    created_at: datetime

    @field_serializer("overall_risk_score")
    def _round(self, value: float, info: SerializationInfo) -> float | None:
        return display_score(value, info)

    @property
    def sort_key(self) -> tuple[datetime, str]:
        """Recency ordering: created_at, then id as tie-break."""
        return (self.created_at, self.id)


# =============================================================================
# Trend
# =============================================================================


class ScoreDelta(CamelModel):
    """Change between two consecutive snapshots of a scope."""

    before: float
    after: float
    change: float
    trigger: TriggeredBy

    @field_serializer("before", "after", "change")
    def _round(self, value: float, info: SerializationInfo) -> float | None:
        return display_score(value, info)


class ScoreTrend(CamelModel):
    """Trend classification for a scope, derived at read time."""

    user_id: str
    framework_id: str | None = None
    direction: TrendDirection
    threshold: float
    delta: ScoreDelta | None = None
    latest: RiskScoreSnapshot | None = None


# =============================================================================
# Events and notifications
# =============================================================================


class TaskCompletedEvent(CamelModel):
    """Emitted by the task subsystem when a task is marked complete."""

    user_id: str = Field(..., min_length=1)
    framework_id: str | None = None
    task_id: str | None = None
    task_title: str | None = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RiskNotification(CamelModel):
    """A user-facing notification derived from a new snapshot."""

    id: str
    user_id: str
    framework_id: str | None = None
    type: NotificationType
    severity: NotificationSeverity
    title: str
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ScoreChangedEvent(CamelModel):
    """Published after every successful calculation."""

    event: Literal["score_changed"] = "score_changed"
    snapshot: RiskScoreSnapshot
    direction: TrendDirection
    delta: ScoreDelta | None = None


# =============================================================================
# API requests
# =============================================================================


class CalculateScoreRequest(CamelModel):
    """Body of POST /api/risks/calculate-score."""

    framework_id: str | None = None
    triggered_by: TriggeredBy = TriggeredBy.MANUAL_REFRESH

    @field_validator("triggered_by")
    @classmethod
    def client_trigger_only(cls, v: TriggeredBy) -> TriggeredBy:
        """Task completion and scheduled runs are internal triggers."""
        if v not in CLIENT_TRIGGERS:
            raise ValueError(f"triggeredBy must be one of {[t.value for t in CLIENT_TRIGGERS]}")
        return v


class CalculatedScoreResponse(RiskScoreSnapshot):
    """The new snapshot plus derived labels, returned by calculate-score."""

    risk_level: RiskLevel
    direction: TrendDirection
    delta: ScoreDelta | None = None
    recommendations: list[str] = Field(default_factory=list)
