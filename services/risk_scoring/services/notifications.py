"""
Risk Notifications
==================

Derives user notifications from a new snapshot and publishes them, together
with the score_changed event, to the configured event sink.

Rules:
- risk_threshold: score >= high threshold (75), critical at >= 85
- score_improvement: a task completion moved the trend to IMPROVING
- trend_alert: score rose by at least the alert delta (5 points)

Version: 0.1.0
"""

import uuid
from abc import ABC, abstractmethod
from typing import Any

from shared.config import RiskScoringSettings, settings
from shared.database.kafka import KafkaClient
from shared.logging import get_logger
from shared.models.risk import (
    FULL_PRECISION,
    NotificationSeverity,
    NotificationType,
    RiskNotification,
    RiskScoreSnapshot,
    ScoreChangedEvent,
    ScoreDelta,
    TrendDirection,
    TriggeredBy,
)


logger = get_logger(__name__)


# =============================================================================
# Rules
# =============================================================================


class NotificationRules:
    """Turns a snapshot and its trend into notifications."""

    def __init__(
        self,
        high_threshold: float = 75.0,
        critical_threshold: float = 85.0,
        decline_delta: float = 5.0,
    ) -> None:
        if critical_threshold < high_threshold:
            raise ValueError("critical_threshold must be >= high_threshold")
        self.high_threshold = high_threshold
        self.critical_threshold = critical_threshold
        self.decline_delta = decline_delta

    @classmethod
    def from_settings(cls, config: RiskScoringSettings | None = None) -> "NotificationRules":
        config = config or settings.risk_scoring
        return cls(
            high_threshold=config.alert_high_threshold,
            critical_threshold=config.alert_critical_threshold,
            decline_delta=config.trend_alert_delta,
        )

    def evaluate(
        self,
        snapshot: RiskScoreSnapshot,
        direction: TrendDirection,
        delta: ScoreDelta | None,
    ) -> list[RiskNotification]:
        """Notifications for a freshly recorded snapshot."""
        notifications: list[RiskNotification] = []
        score = snapshot.overall_risk_score

        if score >= self.high_threshold:
            critical = score >= self.critical_threshold
            notifications.append(
                self._build(
                    snapshot,
                    NotificationType.RISK_THRESHOLD,
                    NotificationSeverity.CRITICAL if critical else NotificationSeverity.HIGH,
                    title="Critical Risk Score Alert" if critical else "High Risk Score Alert",
                    message=(
                        f"Your risk score has reached {score:.1f}. "
                        "Immediate attention is required to address compliance gaps."
                    ),
                    metadata={
                        "riskScore": round(score, 1),
                        "threshold": self.critical_threshold if critical else self.high_threshold,
                    },
                )
            )

        if (
            delta is not None
            and direction == TrendDirection.IMPROVING
            and snapshot.triggered_by == TriggeredBy.TASK_COMPLETION
        ):
            notifications.append(
                self._build(
                    snapshot,
                    NotificationType.SCORE_IMPROVEMENT,
                    NotificationSeverity.LOW,
                    title="Risk Profile Improved",
                    message=(
                        f"Completing tasks lowered your risk score from "
                        f"{delta.before:.1f} to {delta.after:.1f}."
                    ),
                    metadata={"change": round(delta.change, 1)},
                )
            )

        if (
            delta is not None
            and direction == TrendDirection.DECLINING
            and delta.change >= self.decline_delta
        ):
            notifications.append(
                self._build(
                    snapshot,
                    NotificationType.TREND_ALERT,
                    NotificationSeverity.MEDIUM,
                    title="Risk Score Increasing",
                    message=(
                        f"Your risk score rose by {delta.change:.1f} points "
                        f"to {delta.after:.1f}."
                    ),
                    metadata={"change": round(delta.change, 1)},
                )
            )

        return notifications

    @staticmethod
    def _build(
        snapshot: RiskScoreSnapshot,
        type_: NotificationType,
        severity: NotificationSeverity,
        title: str,
        message: str,
        metadata: dict[str, Any],
    ) -> RiskNotification:
        return RiskNotification(
            id=str(uuid.uuid4()),
            user_id=snapshot.user_id,
            framework_id=snapshot.framework_id,
            type=type_,
            severity=severity,
            title=title,
            message=message,
            metadata={"snapshotId": snapshot.id, **metadata},
            created_at=snapshot.created_at,
        )


# =============================================================================
# Publishers
# =============================================================================


class EventPublisher(ABC):
    """Sink for score_changed events and notifications."""

    @abstractmethod
    async def publish_score_changed(self, event: ScoreChangedEvent) -> None:
        """Publish a score change."""

    @abstractmethod
    async def publish_notification(self, notification: RiskNotification) -> None:
        """Publish a user notification."""

    async def health_check(self) -> dict[str, Any]:
        return {"status": "healthy"}


class InMemoryEventPublisher(EventPublisher):
    """Records published events; used in development and tests."""

    def __init__(self) -> None:
        self.score_changes: list[ScoreChangedEvent] = []
        self.notifications: list[RiskNotification] = []
        self.fail = False

    async def publish_score_changed(self, event: ScoreChangedEvent) -> None:
        if self.fail:
            raise ConnectionError("event sink unavailable")
        self.score_changes.append(event)

    async def publish_notification(self, notification: RiskNotification) -> None:
        if self.fail:
            raise ConnectionError("event sink unavailable")
        self.notifications.append(notification)

    async def health_check(self) -> dict[str, Any]:
        return {"status": "healthy", "backend": "memory"}


class KafkaEventPublisher(EventPublisher):
    """Publishes JSON messages keyed by user id."""

    def __init__(
        self,
        score_changed_topic: str | None = None,
        notifications_topic: str | None = None,
    ) -> None:
        self.score_changed_topic = score_changed_topic or settings.risk_scoring.score_changed_topic
        self.notifications_topic = notifications_topic or settings.risk_scoring.notifications_topic

    async def publish_score_changed(self, event: ScoreChangedEvent) -> None:
        await KafkaClient.publish(
            self.score_changed_topic,
            event.model_dump(mode="json", by_alias=True, context=FULL_PRECISION),
            key=event.snapshot.user_id,
        )

    async def publish_notification(self, notification: RiskNotification) -> None:
        await KafkaClient.publish(
            self.notifications_topic,
            notification.model_dump(mode="json", by_alias=True),
            key=notification.user_id,
        )

    async def health_check(self) -> dict[str, Any]:
        return {"backend": "kafka", **(await KafkaClient.health_check())}
