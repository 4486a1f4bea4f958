"""
Metrics Aggregator
==================

Collects the raw counts needed for scoring a scope (user, optional
framework) from the task and risk stores.

Categorisation rules:
- a task is completed when its status is "completed"
- a completed task is on time when it has no due date, no completion
  timestamp, or was completed at or before its due date
- an open task is overdue when its due date has passed
- a risk with status "mitigated" or "closed" counts as mitigated; every
  other risk is counted once under its impact, unknown impacts as medium

Version: 0.1.0
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.risk_scoring.errors import DataUnavailableError, ScopeNotFoundError
from shared.database.postgres import postgres_session
from shared.logging import get_logger
from shared.models.risk import RiskMetrics


logger = get_logger(__name__)


COMPLETED_STATUS = "completed"
MITIGATED_STATUSES = frozenset({"mitigated", "closed"})
SEVERITIES = ("high", "medium", "low")


# =============================================================================
# Records and counts
# =============================================================================


@dataclass
class TaskRecord:
    """A remediation task as seen by the scoring service."""

    id: str
    user_id: str
    framework_id: str | None = None
    status: str = "pending"
    due_date: datetime | None = None
    completed_at: datetime | None = None


@dataclass
class RiskRecord:
    """A risk register entry as seen by the scoring service."""

    id: str
    user_id: str
    framework_id: str | None = None
    impact: str = "medium"
    status: str = "open"


@dataclass
class TaskCounts:
    """Task counts for a scope."""

    total: int = 0
    completed: int = 0
    on_time: int = 0
    overdue: int = 0
    max_overdue_days: int = 0


@dataclass
class RiskCounts:
    """Risk counts for a scope, mutually exclusive."""

    high: int = 0
    medium: int = 0
    low: int = 0
    mitigated: int = 0


@dataclass
class OverdueSummary:
    """Users whose open tasks have passed their due date."""

    user_id: str
    overdue_tasks: int
    max_overdue_days: int
    framework_ids: list[str] = field(default_factory=list)


def severity_bucket(impact: str | None) -> str:
    """Map a risk impact onto high/medium/low."""
    impact = (impact or "").lower()
    return impact if impact in SEVERITIES else "medium"


def is_on_time(task: TaskRecord) -> bool:
    """Completed task finished at or before its due date."""
    if task.due_date is None or task.completed_at is None:
        return True
    return task.completed_at <= task.due_date


def overdue_days(task: TaskRecord, now: datetime) -> int | None:
    """Whole days an open task is past due, or None if not overdue."""
    if task.status == COMPLETED_STATUS or task.due_date is None:
        return None
    if task.due_date >= now:
        return None
    return (now - task.due_date).days


# =============================================================================
# Data sources
# =============================================================================


class ComplianceDataSource(ABC):
    """Read-only access to the task, risk and framework stores."""

    @abstractmethod
    async def framework_exists(self, framework_id: str) -> bool:
        """Check whether a framework id is known."""

    @abstractmethod
    async def task_counts(
        self,
        user_id: str,
        framework_id: str | None,
        now: datetime,
    ) -> TaskCounts:
        """Count tasks by completion and due-date status."""

    @abstractmethod
    async def risk_counts(
        self,
        user_id: str,
        framework_id: str | None,
    ) -> RiskCounts:
        """Count risks by severity and mitigation status."""

    @abstractmethod
    async def users_with_overdue_tasks(self, now: datetime) -> list[OverdueSummary]:
        """List users having at least one overdue open task."""

    async def health_check(self) -> dict[str, Any]:
        """Report data source health."""
        return {"status": "healthy"}


class InMemoryComplianceDataSource(ComplianceDataSource):
    """
    In-memory task and risk store.

    Used in development and tests. Set ``available = False`` to simulate an
    unreachable upstream store.
    """

    def __init__(
        self,
        frameworks: list[str] | None = None,
        tasks: list[TaskRecord] | None = None,
        risks: list[RiskRecord] | None = None,
    ) -> None:
        self.frameworks: set[str] = set(frameworks or [])
        self.tasks: list[TaskRecord] = list(tasks or [])
        self.risks: list[RiskRecord] = list(risks or [])
        self.available = True

    def add_framework(self, framework_id: str) -> None:
        self.frameworks.add(framework_id)

    def add_task(self, task: TaskRecord) -> None:
        self.tasks.append(task)

    def add_risk(self, risk: RiskRecord) -> None:
        self.risks.append(risk)

    def _check_available(self) -> None:
        if not self.available:
            raise DataUnavailableError("Compliance data store is unavailable")

    def _in_scope(self, record: TaskRecord | RiskRecord, user_id: str, framework_id: str | None) -> bool:
        if record.user_id != user_id:
            return False
        return framework_id is None or record.framework_id == framework_id

    async def framework_exists(self, framework_id: str) -> bool:
        self._check_available()
        return framework_id in self.frameworks

    async def task_counts(
        self,
        user_id: str,
        framework_id: str | None,
        now: datetime,
    ) -> TaskCounts:
        self._check_available()
        counts = TaskCounts()

        for task in self.tasks:
            if not self._in_scope(task, user_id, framework_id):
                continue

            counts.total += 1
            if task.status == COMPLETED_STATUS:
                counts.completed += 1
                if is_on_time(task):
                    counts.on_time += 1
                continue

            days = overdue_days(task, now)
            if days is not None:
                counts.overdue += 1
                counts.max_overdue_days = max(counts.max_overdue_days, days)

        return counts

    async def risk_counts(
        self,
        user_id: str,
        framework_id: str | None,
    ) -> RiskCounts:
        self._check_available()
        counts = RiskCounts()

        for risk in self.risks:
            if not self._in_scope(risk, user_id, framework_id):
                continue

            if risk.status.lower() in MITIGATED_STATUSES:
                counts.mitigated += 1
            else:
                bucket = severity_bucket(risk.impact)
                setattr(counts, bucket, getattr(counts, bucket) + 1)

        return counts

    async def users_with_overdue_tasks(self, now: datetime) -> list[OverdueSummary]:
        self._check_available()
        summaries: dict[str, OverdueSummary] = {}

        for task in self.tasks:
            days = overdue_days(task, now)
            if days is None:
                continue

            summary = summaries.setdefault(task.user_id, OverdueSummary(task.user_id, 0, 0))
            summary.overdue_tasks += 1
            summary.max_overdue_days = max(summary.max_overdue_days, days)
            if task.framework_id and task.framework_id not in summary.framework_ids:
                summary.framework_ids.append(task.framework_id)

        return sorted(summaries.values(), key=lambda s: s.user_id)

    async def health_check(self) -> dict[str, Any]:
        return {
            "status": "healthy" if self.available else "unhealthy",
            "backend": "memory",
            "tasks": len(self.tasks),
            "risks": len(self.risks),
        }


SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class PostgresComplianceDataSource(ComplianceDataSource):
    """
    Reads the core.frameworks, core.tasks and core.risks tables.

    Any driver or connection failure is raised as DataUnavailableError.
    """

    def __init__(self, session_scope: SessionScope = postgres_session) -> None:
        self._session_scope = session_scope

    async def _execute(self, query: Any, params: dict[str, Any]) -> Any:
        try:
            async with self._session_scope() as session:
                return await session.execute(query, params)
        except (SQLAlchemyError, OSError) as e:
            logger.error("compliance_store_query_failed", error=str(e), error_type=type(e).__name__)
            raise DataUnavailableError("Compliance data store is unavailable", error=str(e)) from e

    @staticmethod
    def _scope_clause(framework_id: str | None, params: dict[str, Any]) -> str:
        if framework_id is None:
            return ""
        params["framework_id"] = framework_id
        return "AND framework_id = :framework_id"

    async def framework_exists(self, framework_id: str) -> bool:
        query = text("SELECT 1 FROM core.frameworks WHERE id = :framework_id")
        result = await self._execute(query, {"framework_id": framework_id})
        return result.fetchone() is not None

    async def task_counts(
        self,
        user_id: str,
        framework_id: str | None,
        now: datetime,
    ) -> TaskCounts:
        params: dict[str, Any] = {"user_id": user_id, "now": now}
        scope = self._scope_clause(framework_id, params)

        query = text(f"""
            SELECT
                COUNT(*) AS total,
                COUNT(*) FILTER (WHERE status = 'completed') AS completed,
                COUNT(*) FILTER (
                    WHERE status = 'completed'
                      AND (due_date IS NULL OR completed_at IS NULL OR completed_at <= due_date)
                ) AS on_time,
                COUNT(*) FILTER (
                    WHERE status <> 'completed' AND due_date < :now
                ) AS overdue,
                COALESCE(
                    MAX(FLOOR(EXTRACT(EPOCH FROM (:now - due_date)) / 86400)) FILTER (
                        WHERE status <> 'completed' AND due_date < :now
                    ),
                    0
                ) AS max_overdue_days
            FROM core.tasks
            WHERE user_id = :user_id
              {scope}
        """)

        row = (await self._execute(query, params)).fetchone()
        if row is None:
            return TaskCounts()

        return TaskCounts(
            total=int(row.total),
            completed=int(row.completed),
            on_time=int(row.on_time),
            overdue=int(row.overdue),
            max_overdue_days=int(row.max_overdue_days),
        )

    async def risk_counts(
        self,
        user_id: str,
        framework_id: str | None,
    ) -> RiskCounts:
        params: dict[str, Any] = {"user_id": user_id}
        scope = self._scope_clause(framework_id, params)

        query = text(f"""
            SELECT
                COUNT(*) FILTER (WHERE LOWER(status) IN ('mitigated', 'closed')) AS mitigated,
                COUNT(*) FILTER (
                    WHERE LOWER(status) NOT IN ('mitigated', 'closed') AND LOWER(impact) = 'high'
                ) AS high,
                COUNT(*) FILTER (
                    WHERE LOWER(status) NOT IN ('mitigated', 'closed')
                      AND (impact IS NULL OR LOWER(impact) NOT IN ('high', 'low'))
                ) AS medium,
                COUNT(*) FILTER (
                    WHERE LOWER(status) NOT IN ('mitigated', 'closed') AND LOWER(impact) = 'low'
                ) AS low
            FROM core.risks
            WHERE user_id = :user_id
              {scope}
        """)

        row = (await self._execute(query, params)).fetchone()
        if row is None:
            return RiskCounts()

        return RiskCounts(
            high=int(row.high),
            medium=int(row.medium),
            low=int(row.low),
            mitigated=int(row.mitigated),
        )

    async def users_with_overdue_tasks(self, now: datetime) -> list[OverdueSummary]:
        query = text("""
            SELECT
                user_id,
                COUNT(*) AS overdue_tasks,
                MAX(FLOOR(EXTRACT(EPOCH FROM (:now - due_date)) / 86400)) AS max_overdue_days,
                ARRAY_REMOVE(ARRAY_AGG(DISTINCT framework_id), NULL) AS framework_ids
            FROM core.tasks
            WHERE status <> 'completed'
              AND due_date < :now
            GROUP BY user_id
            ORDER BY user_id
        """)

        result = await self._execute(query, {"now": now})

        return [
            OverdueSummary(
                user_id=row.user_id,
                overdue_tasks=int(row.overdue_tasks),
                max_overdue_days=int(row.max_overdue_days or 0),
                framework_ids=list(row.framework_ids or []),
            )
            for row in result.fetchall()
        ]

    async def health_check(self) -> dict[str, Any]:
        try:
            await self._execute(text("SELECT 1"), {})
        except DataUnavailableError as e:
            return {"status": "unhealthy", "backend": "postgres", "error": e.message}
        return {"status": "healthy", "backend": "postgres"}


# =============================================================================
# Aggregator
# =============================================================================


class MetricsAggregator:
    """
    Produces RiskMetrics for a scope.

    Read-only. Upstream failures propagate as DataUnavailableError.
    """

    def __init__(self, source: ComplianceDataSource) -> None:
        self.source = source

    async def aggregate(
        self,
        user_id: str,
        framework_id: str | None = None,
        now: datetime | None = None,
    ) -> RiskMetrics:
        """
        Aggregate task and risk counts for a scope.

        Args:
            user_id: Owner of the scope (required)
            framework_id: Optional framework narrowing
            now: Reference time for overdue checks (default: current UTC time)

        Raises:
            ScopeNotFoundError: empty user id or unknown framework
            DataUnavailableError: task/risk store unreachable
        """
        if not user_id or not user_id.strip():
            raise ScopeNotFoundError("A user id is required to aggregate metrics")

        if framework_id is not None and not await self.source.framework_exists(framework_id):
            raise ScopeNotFoundError(
                f"Framework not found: {framework_id}",
                framework_id=framework_id,
            )

        now = now or datetime.now(UTC)
        tasks, risks = await asyncio.gather(
            self.source.task_counts(user_id, framework_id, now),
            self.source.risk_counts(user_id, framework_id),
        )

        metrics = RiskMetrics(
            total_tasks=tasks.total,
            completed_tasks=tasks.completed,
            tasks_on_time=tasks.on_time,
            overdue_tasks=tasks.overdue,
            max_overdue_days=tasks.max_overdue_days,
            high_risks=risks.high,
            medium_risks=risks.medium,
            low_risks=risks.low,
            mitigated_risks=risks.mitigated,
        )

        logger.debug(
            "metrics_aggregated",
            user_id=user_id,
            framework_id=framework_id,
            total_tasks=metrics.total_tasks,
            completed_tasks=metrics.completed_tasks,
            open_risks=metrics.open_risks,
            mitigated_risks=metrics.mitigated_risks,
        )

        return metrics
