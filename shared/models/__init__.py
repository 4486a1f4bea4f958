"""
Shared Models
=============

Pydantic models shared across the service.

Models:
- Risk score models (RiskScoreSnapshot, CalculationFactors, ScoreTrend)
- Event models (TaskCompletedEvent, ScoreChangedEvent, RiskNotification)
- Common response models (PaginatedResponse, ErrorResponse, HealthResponse)
"""

from shared.models.common import (
    CamelModel,
    ErrorResponse,
    HealthResponse,
    PaginatedResponse,
)
from shared.models.risk import (
    FULL_PRECISION,
    CalculatedScoreResponse,
    CalculateScoreRequest,
    CalculationFactors,
    NotificationSeverity,
    NotificationType,
    RiskLevel,
    RiskMetrics,
    RiskNotification,
    RiskScoreSnapshot,
    ScoreChangedEvent,
    ScoreDelta,
    ScoreTrend,
    TaskCompletedEvent,
    TrendDirection,
    TriggeredBy,
)

__all__ = [
    # Risk
    "FULL_PRECISION",
    "CalculatedScoreResponse",
    "CalculateScoreRequest",
    "CalculationFactors",
    "NotificationSeverity",
    "NotificationType",
    "RiskLevel",
    "RiskMetrics",
    "RiskNotification",
    "RiskScoreSnapshot",
    "ScoreChangedEvent",
    "ScoreDelta",
    "ScoreTrend",
    "TaskCompletedEvent",
    "TrendDirection",
    "TriggeredBy",
    # Common
    "CamelModel",
    "PaginatedResponse",
    "ErrorResponse",
    "HealthResponse",
]
