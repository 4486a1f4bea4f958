"""
Risk Scoring Service
====================

Orchestrates a score calculation:

    aggregate -> calculate -> snapshot -> append -> cache write-through
              -> trend -> notifications -> publish

and serves the read side (latest, history, trend).

Version: 0.1.0
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from services.risk_scoring.errors import InvalidMetricsError, RiskScoringError
from services.risk_scoring.services.aggregator import MetricsAggregator
from services.risk_scoring.services.cache import LatestScoreCache
from services.risk_scoring.services.calculator import (
    ScoreCalculation,
    ScoreCalculator,
    recommendations,
)
from services.risk_scoring.services.history import HistoryStore
from services.risk_scoring.services.notifications import EventPublisher, NotificationRules
from services.risk_scoring.services.trend import TrendEngine
from shared.config import RiskScoringSettings, settings
from shared.logging import get_logger
from shared.models.risk import (
    CalculatedScoreResponse,
    RiskMetrics,
    RiskNotification,
    RiskScoreSnapshot,
    ScoreChangedEvent,
    ScoreDelta,
    ScoreTrend,
    TrendDirection,
    TriggeredBy,
)


logger = get_logger(__name__)


@dataclass
class CalculationOutcome:
    """Everything produced by one successful calculation."""

    snapshot: RiskScoreSnapshot
    metrics: RiskMetrics
    calculation: ScoreCalculation
    direction: TrendDirection = TrendDirection.UNKNOWN
    delta: ScoreDelta | None = None
    notifications: list[RiskNotification] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_response(self) -> CalculatedScoreResponse:
        return CalculatedScoreResponse(
            **{name: getattr(self.snapshot, name) for name in RiskScoreSnapshot.model_fields},
            risk_level=self.calculation.risk_level,
            direction=self.direction,
            delta=self.delta,
            recommendations=self.recommendations,
        )


class RiskScoringService:
    """
    Risk scoring pipeline.

    Holds no per-request state; every collaborator is injected so tests can
    swap in in-memory backends.
    """

    def __init__(
        self,
        aggregator: MetricsAggregator,
        store: HistoryStore,
        publisher: EventPublisher,
        calculator: ScoreCalculator | None = None,
        rules: NotificationRules | None = None,
        cache: LatestScoreCache | None = None,
        config: RiskScoringSettings | None = None,
    ) -> None:
        self.config = config or settings.risk_scoring
        self.aggregator = aggregator
        self.store = store
        self.publisher = publisher
        self.calculator = calculator or ScoreCalculator()
        self.rules = rules or NotificationRules.from_settings(self.config)
        self.cache = cache or LatestScoreCache(ttl_seconds=0)
        self.trends = TrendEngine(store, threshold=self.config.trend_noise_threshold)

    # =========================================================================
    # Write side
    # =========================================================================

    async def calculate_score(
        self,
        user_id: str,
        framework_id: str | None = None,
        triggered_by: TriggeredBy = TriggeredBy.MANUAL_REFRESH,
        context: list[str] | None = None,
    ) -> CalculationOutcome:
        """
        Calculate and record a new risk score for a scope.

        Args:
            user_id: Scope owner
            framework_id: Optional framework narrowing
            triggered_by: Cause of the calculation
            context: Free-text reasons stored with the snapshot

        Returns:
            CalculationOutcome with the recorded snapshot

        Raises:
            ScopeNotFoundError: unknown scope
            DataUnavailableError: task/risk store unreachable
            InvalidMetricsError: aggregated counts are inconsistent
            PersistenceError: snapshot was not recorded; nothing published
        """
        metrics = await self.aggregator.aggregate(user_id, framework_id)

        try:
            calculation = self.calculator.calculate(metrics)
        except InvalidMetricsError as e:
            logger.error(
                "invalid_metrics",
                user_id=user_id,
                framework_id=framework_id,
                error=e.message,
                **e.details,
            )
            raise

        snapshot = RiskScoreSnapshot(
            id=str(uuid.uuid4()),
            user_id=user_id,
            framework_id=framework_id,
            overall_risk_score=calculation.overall_risk_score,
            high_risks=metrics.high_risks,
            medium_risks=metrics.medium_risks,
            low_risks=metrics.low_risks,
            mitigated_risks=metrics.mitigated_risks,
            total_tasks=metrics.total_tasks,
            completed_tasks=metrics.completed_tasks,
            calculation_factors=calculation.factors,
            triggered_by=triggered_by,
            context=list(context or []),
            created_at=datetime.now(UTC),
        )

        await self.store.append(snapshot)
        await self.cache.set(snapshot)

        logger.info(
            "risk_score_calculated",
            snapshot_id=snapshot.id,
            user_id=user_id,
            framework_id=framework_id,
            risk_score=round(snapshot.overall_risk_score, 1),
            risk_level=calculation.risk_level.value,
            triggered_by=triggered_by.value,
        )

        outcome = CalculationOutcome(
            snapshot=snapshot,
            metrics=metrics,
            calculation=calculation,
            recommendations=recommendations(metrics, calculation),
        )

        try:
            trend = await self.trends.trend(user_id, framework_id)
        except RiskScoringError as e:
            # The snapshot is durable; a failed trend read only loses the delta
            logger.warning("trend_unavailable", snapshot_id=snapshot.id, error=e.message)
        else:
            if trend.latest is not None and trend.latest.id == snapshot.id:
                outcome.direction = trend.direction
                outcome.delta = trend.delta

        outcome.notifications = self.rules.evaluate(snapshot, outcome.direction, outcome.delta)
        await self._publish(outcome)

        return outcome

    async def _publish(self, outcome: CalculationOutcome) -> None:
        """Publish the score change and notifications; failures are logged only."""
        event = ScoreChangedEvent(
            snapshot=outcome.snapshot,
            direction=outcome.direction,
            delta=outcome.delta,
        )

        try:
            await self.publisher.publish_score_changed(event)
            for notification in outcome.notifications:
                await self.publisher.publish_notification(notification)
        except Exception as e:
            logger.error(
                "score_publish_failed",
                snapshot_id=outcome.snapshot.id,
                user_id=outcome.snapshot.user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        if outcome.notifications:
            logger.info(
                "risk_notifications_published",
                snapshot_id=outcome.snapshot.id,
                types=[n.type.value for n in outcome.notifications],
            )

    # =========================================================================
    # Read side
    # =========================================================================

    async def latest_score(
        self,
        user_id: str,
        framework_id: str | None = None,
    ) -> RiskScoreSnapshot | None:
        """Most recent snapshot for a scope, or None. No side effects."""
        cached = await self.cache.get(user_id, framework_id)
        if cached is not None:
            return cached

        snapshot = await self.store.latest(user_id, framework_id)
        if snapshot is not None:
            await self.cache.set(snapshot)
        return snapshot

    async def score_history(
        self,
        user_id: str,
        framework_id: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[RiskScoreSnapshot], int]:
        """
        Page of history for a scope, newest first.

        Returns:
            (snapshots, total snapshots in scope)
        """
        if limit is None:
            limit = self.config.history_default_limit
        limit = max(1, min(limit, self.config.history_max_limit))
        offset = max(0, offset)

        items = await self.store.history(user_id, framework_id, limit=limit, offset=offset)
        total = await self.store.count(user_id, framework_id)
        return items, total

    async def score_trend(
        self,
        user_id: str,
        framework_id: str | None = None,
        threshold: float | None = None,
    ) -> ScoreTrend:
        return await self.trends.trend(user_id, framework_id, threshold=threshold)
