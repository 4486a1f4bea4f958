"""
Risk Score History Database Model
=================================

SQLAlchemy ORM model for the append-only risk score history.

Version: 0.1.0
"""

from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Double,
    Enum as SQLEnum,
    Index,
    Integer,
    String,
)

from shared.database.postgres import Base
from shared.models.risk import (
    FULL_PRECISION,
    CalculationFactors,
    RiskScoreSnapshot,
    TriggeredBy,
)


class RiskScoreHistoryModel(Base):
    """
    SQLAlchemy model for risk score snapshots.

    Rows are inserted once and never updated. Scores are stored as double
    precision; rounding happens only when serializing for clients.
    """

    __tablename__ = "risk_score_history"
    __table_args__ = (
        Index(
            "ix_risk_score_history_scope_recent",
            "user_id",
            "framework_id",
            "created_at",
            "id",
        ),
        CheckConstraint(
            "overall_risk_score >= 0 AND overall_risk_score <= 100",
            name="overall_risk_score_range",
        ),
        CheckConstraint(
            "completed_tasks <= total_tasks",
            name="completed_within_total",
        ),
    )

    id = Column(String(36), primary_key=True)

    # Scope
    user_id = Column(String(255), nullable=False)
    framework_id = Column(String(255))  # NULL = all frameworks

    # The score
    overall_risk_score = Column(Double, nullable=False)

    # Counts at calculation time
    high_risks = Column(Integer, nullable=False, default=0)
    medium_risks = Column(Integer, nullable=False, default=0)
    low_risks = Column(Integer, nullable=False, default=0)
    mitigated_risks = Column(Integer, nullable=False, default=0)
    total_tasks = Column(Integer, nullable=False, default=0)
    completed_tasks = Column(Integer, nullable=False, default=0)

    # {"taskCompletion": .., "riskMitigation": .., "timelyCompletion": .., "overallHealth": ..}
    calculation_factors = Column(JSON, nullable=False)

    triggered_by = Column(
        SQLEnum(
            TriggeredBy,
            name="risk_score_trigger",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    context = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<RiskScoreHistory {self.id}: {self.user_id}/{self.framework_id or '*'}"
            f"={self.overall_risk_score}>"
        )

    @classmethod
    def from_snapshot(cls, snapshot: RiskScoreSnapshot) -> "RiskScoreHistoryModel":
        """Build a row from a snapshot, keeping full precision."""
        factors: dict[str, Any] = snapshot.calculation_factors.model_dump(
            by_alias=True,
            context=FULL_PRECISION,
        )
        return cls(
            id=snapshot.id,
            user_id=snapshot.user_id,
            framework_id=snapshot.framework_id,
            overall_risk_score=snapshot.overall_risk_score,
            high_risks=snapshot.high_risks,
            medium_risks=snapshot.medium_risks,
            low_risks=snapshot.low_risks,
            mitigated_risks=snapshot.mitigated_risks,
            total_tasks=snapshot.total_tasks,
            completed_tasks=snapshot.completed_tasks,
            calculation_factors=factors,
            triggered_by=snapshot.triggered_by,
            context=list(snapshot.context),
            created_at=snapshot.created_at,
        )

    def to_snapshot(self) -> RiskScoreSnapshot:
        """Convert to the domain snapshot."""
        return RiskScoreSnapshot(
            id=self.id,
            user_id=self.user_id,
            framework_id=self.framework_id,
            overall_risk_score=float(self.overall_risk_score),
            high_risks=self.high_risks,
            medium_risks=self.medium_risks,
            low_risks=self.low_risks,
            mitigated_risks=self.mitigated_risks,
            total_tasks=self.total_tasks,
            completed_tasks=self.completed_tasks,
            calculation_factors=CalculationFactors.model_validate(self.calculation_factors),
            triggered_by=self.triggered_by,
            context=list(self.context or []),
            created_at=self.created_at,
        )
