"""
Trend Engine
============

Classifies the direction of a scope's risk score from its two most recent
snapshots. Lower risk scores are better, so a falling score is IMPROVING.

Version: 0.1.0
"""

from collections.abc import Sequence

from services.risk_scoring.services.history import HistoryStore
from shared.logging import get_logger
from shared.models.risk import (
    RiskScoreSnapshot,
    ScoreDelta,
    ScoreTrend,
    TrendDirection,
)


logger = get_logger(__name__)


DEFAULT_THRESHOLD = 0.1


def compute_trend(
    snapshots: Sequence[RiskScoreSnapshot],
    threshold: float = DEFAULT_THRESHOLD,
) -> tuple[TrendDirection, ScoreDelta | None]:
    """
    Classify the change between the two newest snapshots.

    Args:
        snapshots: Snapshots for one scope, newest first
        threshold: Changes smaller than this (absolute) are STABLE

    Returns:
        Direction and the delta between the two snapshots (None if fewer
        than two snapshots exist)
    """
    if threshold < 0:
        raise ValueError("threshold must be non-negative")

    if len(snapshots) < 2:
        return TrendDirection.UNKNOWN, None

    latest, previous = snapshots[0], snapshots[1]
    change = latest.overall_risk_score - previous.overall_risk_score
    delta = ScoreDelta(
        before=previous.overall_risk_score,
        after=latest.overall_risk_score,
        change=change,
        trigger=latest.triggered_by,
    )

    if abs(change) < threshold:
        return TrendDirection.STABLE, delta
    if change < 0:
        return TrendDirection.IMPROVING, delta
    return TrendDirection.DECLINING, delta


class TrendEngine:
    """Derives trends from the history store at read time."""

    def __init__(self, store: HistoryStore, threshold: float = DEFAULT_THRESHOLD) -> None:
        self.store = store
        self.threshold = threshold

    async def trend(
        self,
        user_id: str,
        framework_id: str | None = None,
        threshold: float | None = None,
    ) -> ScoreTrend:
        """Trend for a scope; UNKNOWN until two snapshots exist."""
        threshold = self.threshold if threshold is None else threshold
        snapshots = await self.store.history(user_id, framework_id, limit=2)
        direction, delta = compute_trend(snapshots, threshold)

        logger.debug(
            "trend_computed",
            user_id=user_id,
            framework_id=framework_id,
            direction=direction.value,
            change=delta.change if delta else None,
        )

        return ScoreTrend(
            user_id=user_id,
            framework_id=framework_id,
            direction=direction,
            threshold=threshold,
            delta=delta,
            latest=snapshots[0] if snapshots else None,
        )
