"""
Risk Scoring Database Models
============================

SQLAlchemy ORM models owned by the risk scoring service.

Tables:
- risk_score_history: Append-only risk score snapshots

Task, risk and framework tables belong to other subsystems and are only
queried, never mapped here.

Version: 0.1.0
"""

from services.risk_scoring.models.history import RiskScoreHistoryModel

__all__ = [
    "RiskScoreHistoryModel",
]
