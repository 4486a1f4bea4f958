"""
Score History Store
===================

Append-only record of risk score snapshots per scope.

Scopes match exactly: framework_id=None is the all-frameworks scope and is
never mixed with per-framework history. Reads are ordered newest first by
created_at with the snapshot id as tie-break.

Backends:
- InMemoryHistoryStore: development and tests
- PostgresHistoryStore: core.risk_score_history

Version: 0.1.0
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from services.risk_scoring.errors import DataUnavailableError, PersistenceError
from services.risk_scoring.models.history import RiskScoreHistoryModel
from services.risk_scoring.services.aggregator import SessionScope
from shared.database.postgres import postgres_session
from shared.logging import get_logger
from shared.models.risk import RiskScoreSnapshot


logger = get_logger(__name__)


ScopeKey = tuple[str, str | None]


class HistoryStore(ABC):
    """Append-only snapshot storage."""

    @abstractmethod
    async def append(self, snapshot: RiskScoreSnapshot) -> RiskScoreSnapshot:
        """
        Durably record a snapshot.

        Raises:
            PersistenceError: the snapshot was not recorded
        """

    @abstractmethod
    async def latest(self, user_id: str, framework_id: str | None = None) -> RiskScoreSnapshot | None:
        """Most recent snapshot for a scope, or None."""

    @abstractmethod
    async def history(
        self,
        user_id: str,
        framework_id: str | None = None,
        limit: int = 30,
        offset: int = 0,
    ) -> list[RiskScoreSnapshot]:
        """Snapshots for a scope, newest first."""

    @abstractmethod
    async def count(self, user_id: str, framework_id: str | None = None) -> int:
        """Number of snapshots recorded for a scope."""

    async def health_check(self) -> dict[str, Any]:
        return {"status": "healthy"}


class InMemoryHistoryStore(HistoryStore):
    """
    History kept in process memory.

    Each scope holds its snapshots sorted newest first. A lock serializes
    appends so concurrent writers never lose a snapshot.
    """

    def __init__(self) -> None:
        self._scopes: dict[ScopeKey, list[RiskScoreSnapshot]] = {}
        self._ids: set[str] = set()
        self._lock = asyncio.Lock()
        self.available = True

    def _check_available(self) -> None:
        if not self.available:
            raise PersistenceError("History store is unavailable")

    async def append(self, snapshot: RiskScoreSnapshot) -> RiskScoreSnapshot:
        self._check_available()

        async with self._lock:
            if snapshot.id in self._ids:
                raise PersistenceError(
                    f"Snapshot already recorded: {snapshot.id}",
                    snapshot_id=snapshot.id,
                )

            entries = self._scopes.setdefault((snapshot.user_id, snapshot.framework_id), [])
            entries.append(snapshot)
            entries.sort(key=lambda s: s.sort_key, reverse=True)
            self._ids.add(snapshot.id)

        return snapshot

    async def latest(self, user_id: str, framework_id: str | None = None) -> RiskScoreSnapshot | None:
        if not self.available:
            raise DataUnavailableError("History store is unavailable")
        entries = self._scopes.get((user_id, framework_id))
        return entries[0] if entries else None

    async def history(
        self,
        user_id: str,
        framework_id: str | None = None,
        limit: int = 30,
        offset: int = 0,
    ) -> list[RiskScoreSnapshot]:
        if not self.available:
            raise DataUnavailableError("History store is unavailable")
        entries = self._scopes.get((user_id, framework_id), [])
        return list(entries[offset : offset + limit])

    async def count(self, user_id: str, framework_id: str | None = None) -> int:
        if not self.available:
            raise DataUnavailableError("History store is unavailable")
        return len(self._scopes.get((user_id, framework_id), []))

    async def health_check(self) -> dict[str, Any]:
        return {
            "status": "healthy" if self.available else "unhealthy",
            "backend": "memory",
            "snapshots": len(self._ids),
        }


class PostgresHistoryStore(HistoryStore):
    """History persisted to core.risk_score_history."""

    def __init__(self, session_scope: SessionScope = postgres_session) -> None:
        self._session_scope = session_scope

    @staticmethod
    def _scope_filter(user_id: str, framework_id: str | None) -> list[Any]:
        conditions = [RiskScoreHistoryModel.user_id == user_id]
        if framework_id is None:
            conditions.append(RiskScoreHistoryModel.framework_id.is_(None))
        else:
            conditions.append(RiskScoreHistoryModel.framework_id == framework_id)
        return conditions

    async def append(self, snapshot: RiskScoreSnapshot) -> RiskScoreSnapshot:
        try:
            async with self._session_scope() as session:
                session.add(RiskScoreHistoryModel.from_snapshot(snapshot))
                await session.flush()
        except IntegrityError as e:
            logger.error("snapshot_rejected", snapshot_id=snapshot.id, error=str(e.orig))
            raise PersistenceError(
                f"Snapshot rejected by store: {snapshot.id}",
                snapshot_id=snapshot.id,
            ) from e
        except (SQLAlchemyError, OSError) as e:
            logger.error("snapshot_persist_failed", snapshot_id=snapshot.id, error=str(e))
            raise PersistenceError(
                "Failed to persist risk score snapshot",
                snapshot_id=snapshot.id,
            ) from e

        return snapshot

    async def _fetch(self, query: Any) -> list[RiskScoreHistoryModel]:
        try:
            async with self._session_scope() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except (SQLAlchemyError, OSError) as e:
            logger.error("history_query_failed", error=str(e))
            raise DataUnavailableError("History store is unavailable", error=str(e)) from e

    async def latest(self, user_id: str, framework_id: str | None = None) -> RiskScoreSnapshot | None:
        rows = await self.history(user_id, framework_id, limit=1)
        return rows[0] if rows else None

    async def history(
        self,
        user_id: str,
        framework_id: str | None = None,
        limit: int = 30,
        offset: int = 0,
    ) -> list[RiskScoreSnapshot]:
        query = (
            select(RiskScoreHistoryModel)
            .where(*self._scope_filter(user_id, framework_id))
            .order_by(
                RiskScoreHistoryModel.created_at.desc(),
                RiskScoreHistoryModel.id.desc(),
            )
            .limit(limit)
            .offset(offset)
        )
        rows = await self._fetch(query)
        return [row.to_snapshot() for row in rows]

    async def count(self, user_id: str, framework_id: str | None = None) -> int:
        query = (
            select(func.count())
            .select_from(RiskScoreHistoryModel)
            .where(*self._scope_filter(user_id, framework_id))
        )
        try:
            async with self._session_scope() as session:
                result = await session.execute(query)
                return int(result.scalar_one())
        except (SQLAlchemyError, OSError) as e:
            logger.error("history_count_failed", error=str(e))
            raise DataUnavailableError("History store is unavailable", error=str(e)) from e

    async def health_check(self) -> dict[str, Any]:
        try:
            await self.count("__health__")
        except DataUnavailableError as e:
            return {"status": "unhealthy", "backend": "postgres", "error": e.message}
        return {"status": "healthy", "backend": "postgres"}
