"""
Aging Scheduler Tests
=====================

Tests for the daily overdue-task risk reassessment.

Version: 0.1.0
"""

import asyncio
import pytest
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

from services.risk_scoring.services.aggregator import InMemoryComplianceDataSource, TaskRecord
from services.risk_scoring.services.history import InMemoryHistoryStore
from services.risk_scoring.services.recompute import RecomputeQueue
from services.risk_scoring.services.scheduler import AgingScheduler
from services.risk_scoring.services.scoring import RiskScoringService
from shared.models.risk import TriggeredBy
from tests.conftest import USER_ID


class TestAgingScheduler:
    """Tests for AgingScheduler."""

    @pytest.mark.asyncio
    async def test_run_once_records_scheduled_snapshot(
        self,
        data_source: InMemoryComplianceDataSource,
        scoring_service: RiskScoringService,
        history_store: InMemoryHistoryStore,
    ) -> None:
        queue = RecomputeQueue(scoring_service, max_attempts=1, backoff_max_seconds=0)
        scheduler = AgingScheduler(data_source, queue)

        submitted = await scheduler.run_once()
        await queue.join()
        await queue.stop()

        assert submitted == 1
        latest = await history_store.latest(USER_ID)
        assert latest.triggered_by == TriggeredBy.SCHEDULED
        assert latest.context == [
            "1 tasks are overdue",
            "Maximum overdue period: 3 days",
            "Daily aging risk assessment",
        ]

    @pytest.mark.asyncio
    async def test_users_without_overdue_tasks_skipped(self) -> None:
        now = datetime.now(UTC)
        source = InMemoryComplianceDataSource(tasks=[
            TaskRecord("t1", "on-track", status="pending", due_date=now + timedelta(days=1)),
            TaskRecord("t2", "late", status="pending", due_date=now - timedelta(days=1)),
            TaskRecord("t3", "done", status="completed", due_date=now - timedelta(days=9)),
        ])
        queue = MagicMock()
        queue.submit.return_value = True

        submitted = await AgingScheduler(source, queue).run_once(now=now)

        assert submitted == 1
        request = queue.submit.call_args.args[0]
        assert request.user_id == "late"
        assert request.framework_id is None

    @pytest.mark.asyncio
    async def test_start_and_stop(self, data_source: InMemoryComplianceDataSource) -> None:
        queue = MagicMock()
        queue.submit.return_value = True
        scheduler = AgingScheduler(data_source, queue, interval_seconds=0.01)

        scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert not scheduler.running
        assert queue.submit.call_count >= 1
