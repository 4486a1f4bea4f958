"""
Risk Scoring Service
====================

Quantifies a user's compliance risk posture as a 0-100 score (lower is
better) and keeps an append-only history of snapshots.

Features:
- Metrics aggregation from tasks and risks
- Weighted factor scoring with severity exposure
- Append-only score history with pagination
- Trend direction and score deltas
- Threshold, improvement and decline notifications
- Background recalculation on task completion and daily aging checks

Port: 8006
"""

__version__ = "0.1.0"
