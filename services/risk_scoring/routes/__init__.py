"""
Risk Scoring Routes
===================

API route handlers for the Risk Scoring Service.
"""

from services.risk_scoring.routes import events, scores


__all__ = ["events", "scores"]
