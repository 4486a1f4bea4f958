"""
Aging Scheduler
===============

Periodic risk reassessment for users with overdue tasks. Each run submits a
scheduled recalculation of the user's all-frameworks scope.

Version: 0.1.0
"""

import asyncio
import contextlib
from datetime import UTC, datetime

from services.risk_scoring.errors import RiskScoringError
from services.risk_scoring.services.aggregator import ComplianceDataSource, OverdueSummary
from services.risk_scoring.services.recompute import RecomputeQueue, RecomputeRequest
from shared.logging import get_logger
from shared.models.risk import TriggeredBy


logger = get_logger(__name__)


def aging_context(summary: OverdueSummary) -> tuple[str, ...]:
    return (
        f"{summary.overdue_tasks} tasks are overdue",
        f"Maximum overdue period: {summary.max_overdue_days} days",
        "Daily aging risk assessment",
    )


class AgingScheduler:
    """Submits aging recalculations on a fixed interval."""

    def __init__(
        self,
        source: ComplianceDataSource,
        queue: RecomputeQueue,
        interval_seconds: float = 86400,
    ) -> None:
        self.source = source
        self.queue = queue
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    async def run_once(self, now: datetime | None = None) -> int:
        """
        Submit recalculations for every user with overdue tasks.

        Returns:
            Number of requests queued (coalesced requests are not counted)
        """
        now = now or datetime.now(UTC)
        summaries = await self.source.users_with_overdue_tasks(now)

        submitted = 0
        for summary in summaries:
            queued = self.queue.submit(
                RecomputeRequest(
                    user_id=summary.user_id,
                    framework_id=None,
                    triggered_by=TriggeredBy.SCHEDULED,
                    context=aging_context(summary),
                )
            )
            submitted += int(queued)

        logger.info("aging_check_completed", users=len(summaries), submitted=submitted)
        return submitted

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._loop(), name="risk-aging-scheduler")
            logger.info("aging_scheduler_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            logger.info("aging_scheduler_stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except RiskScoringError as e:
                logger.error("aging_check_failed", error_code=e.error_code, error=e.message)
