"""
Risk Scoring Errors
===================

Domain exceptions raised by the scoring pipeline. Each carries the HTTP
status and machine-readable code used by the API error handlers.

Version: 0.1.0
"""

from typing import Any


class RiskScoringError(Exception):
    """Base class for risk scoring failures."""

    status_code: int = 500
    error_code: str = "risk_scoring_error"
    retryable: bool = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ScopeNotFoundError(RiskScoringError):
    """The referenced framework (or user scope) does not exist."""

    status_code = 404
    error_code = "scope_not_found"


class InvalidMetricsError(RiskScoringError):
    """Aggregated counts violate their invariants (upstream data bug)."""

    status_code = 422
    error_code = "invalid_metrics"


class DataUnavailableError(RiskScoringError):
    """The task/risk store could not be reached."""

    status_code = 503
    error_code = "data_unavailable"
    retryable = True


class PersistenceError(RiskScoringError):
    """A snapshot could not be durably recorded."""

    status_code = 503
    error_code = "persistence_failed"
    retryable = True
