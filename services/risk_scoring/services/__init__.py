"""
Risk Scoring Services
=====================

Business logic for the risk scoring pipeline.

Services:
- MetricsAggregator: Task/risk counts for a scope
- ScoreCalculator: Factor scores and overall risk score
- HistoryStore: Append-only snapshot history
- TrendEngine: Trend direction and delta
- NotificationRules / EventPublisher: Derived notifications
- RiskScoringService: Calculation orchestration
- RecomputeQueue / AgingScheduler: Background recalculation

Version: 0.1.0
"""

from services.risk_scoring.services.aggregator import (
    ComplianceDataSource,
    InMemoryComplianceDataSource,
    MetricsAggregator,
    PostgresComplianceDataSource,
    RiskRecord,
    TaskRecord,
)
from services.risk_scoring.services.cache import LatestScoreCache
from services.risk_scoring.services.calculator import (
    ScoreCalculation,
    ScoreCalculator,
    ScoreWeights,
    recommendations,
)
from services.risk_scoring.services.history import (
    HistoryStore,
    InMemoryHistoryStore,
    PostgresHistoryStore,
)
from services.risk_scoring.services.notifications import (
    EventPublisher,
    InMemoryEventPublisher,
    KafkaEventPublisher,
    NotificationRules,
)
from services.risk_scoring.services.recompute import RecomputeQueue, RecomputeRequest
from services.risk_scoring.services.scheduler import AgingScheduler
from services.risk_scoring.services.scoring import CalculationOutcome, RiskScoringService
from services.risk_scoring.services.trend import TrendEngine, compute_trend


__all__ = [
    # Aggregation
    "ComplianceDataSource",
    "InMemoryComplianceDataSource",
    "PostgresComplianceDataSource",
    "MetricsAggregator",
    "TaskRecord",
    "RiskRecord",
    # Calculation
    "ScoreCalculator",
    "ScoreCalculation",
    "ScoreWeights",
    "recommendations",
    # History and trend
    "HistoryStore",
    "InMemoryHistoryStore",
    "PostgresHistoryStore",
    "LatestScoreCache",
    "TrendEngine",
    "compute_trend",
    # Notifications
    "NotificationRules",
    "EventPublisher",
    "InMemoryEventPublisher",
    "KafkaEventPublisher",
    # Orchestration
    "RiskScoringService",
    "CalculationOutcome",
    "RecomputeQueue",
    "RecomputeRequest",
    "AgingScheduler",
]
