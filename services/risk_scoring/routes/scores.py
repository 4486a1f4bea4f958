"""
Risk Score Routes
=================

API endpoints for calculating and reading risk scores. The scope owner is
always the authenticated user.

Version: 0.1.0
"""

from fastapi import APIRouter, Depends, Query, Response

from services.risk_scoring.dependencies import get_aging_scheduler, get_scoring_service
from services.risk_scoring.services.scheduler import AgingScheduler
from services.risk_scoring.services.scoring import RiskScoringService
from shared.auth import User, get_current_user, require_admin
from shared.logging import get_logger
from shared.models.common import PaginatedResponse
from shared.models.risk import (
    CalculatedScoreResponse,
    CalculateScoreRequest,
    RiskScoreSnapshot,
    ScoreTrend,
)


logger = get_logger(__name__)

router = APIRouter()


@router.post("/calculate-score", response_model=CalculatedScoreResponse)
async def calculate_score(
    request: CalculateScoreRequest | None = None,
    user: User = Depends(get_current_user),
    service: RiskScoringService = Depends(get_scoring_service),
) -> CalculatedScoreResponse:
    """
    Calculate and record a new risk score.

    Aggregates the user's tasks and risks (optionally for one framework),
    appends a snapshot to the history and returns it with its trend.
    """
    request = request or CalculateScoreRequest()

    outcome = await service.calculate_score(
        user.id,
        request.framework_id,
        triggered_by=request.triggered_by,
    )
    return outcome.to_response()


@router.get("/latest-score", response_model=RiskScoreSnapshot | None)
async def latest_score(
    framework_id: str | None = Query(default=None, alias="frameworkId"),
    user: User = Depends(get_current_user),
    service: RiskScoringService = Depends(get_scoring_service),
) -> RiskScoreSnapshot | None:
    """Get the most recent snapshot, or null if none exists."""
    return await service.latest_score(user.id, framework_id)


@router.get("/score-history", response_model=PaginatedResponse[RiskScoreSnapshot])
async def score_history(
    response: Response,
    framework_id: str | None = Query(default=None, alias="frameworkId"),
    limit: int | None = Query(default=None, ge=1, description="Page size (capped)"),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(get_current_user),
    service: RiskScoringService = Depends(get_scoring_service),
) -> PaginatedResponse[RiskScoreSnapshot]:
    """
    List snapshots for a scope, newest first.

    The total is also sent as X-Total-Count for clients that only read items.
    """
    items, total = await service.score_history(user.id, framework_id, limit=limit, offset=offset)
    response.headers["X-Total-Count"] = str(total)
    effective_limit = limit or service.config.history_default_limit

    return PaginatedResponse(
        items=items,
        total=total,
        limit=min(effective_limit, service.config.history_max_limit),
        offset=offset,
    )


@router.get("/score-trend", response_model=ScoreTrend)
async def score_trend(
    framework_id: str | None = Query(default=None, alias="frameworkId"),
    threshold: float | None = Query(default=None, ge=0.0, description="Noise threshold"),
    user: User = Depends(get_current_user),
    service: RiskScoringService = Depends(get_scoring_service),
) -> ScoreTrend:
    """Get the trend direction and delta between the last two snapshots."""
    return await service.score_trend(user.id, framework_id, threshold=threshold)


@router.post("/aging-check")
async def run_aging_check(
    user: User = Depends(require_admin),
    scheduler: AgingScheduler = Depends(get_aging_scheduler),
) -> dict[str, int]:
    """Run the overdue-task aging check now."""
    submitted = await scheduler.run_once()
    logger.info("aging_check_requested", user_id=user.id, submitted=submitted)
    return {"submitted": submitted}
