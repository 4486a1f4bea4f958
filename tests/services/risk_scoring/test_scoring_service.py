"""
Risk Scoring Service Tests
==========================

Tests for calculation orchestration and the read side.

Version: 0.1.0
"""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import RedisError

from services.risk_scoring.errors import (
    DataUnavailableError,
    InvalidMetricsError,
    PersistenceError,
    ScopeNotFoundError,
)
from services.risk_scoring.services.aggregator import (
    InMemoryComplianceDataSource,
    MetricsAggregator,
    TaskRecord,
)
from services.risk_scoring.services.cache import LatestScoreCache, snapshot_rank
from services.risk_scoring.services.history import InMemoryHistoryStore
from services.risk_scoring.services.notifications import InMemoryEventPublisher
from services.risk_scoring.services.scoring import RiskScoringService
from shared.models.risk import (
    NotificationType,
    RiskLevel,
    RiskMetrics,
    TrendDirection,
    TriggeredBy,
)
from tests.conftest import FRAMEWORK_ID, USER_ID


# =============================================================================
# Calculation Tests
# =============================================================================


class TestCalculateScore:
    """Tests for RiskScoringService.calculate_score."""

    @pytest.mark.asyncio
    async def test_records_snapshot(
        self,
        scoring_service: RiskScoringService,
        history_store: InMemoryHistoryStore,
    ) -> None:
        outcome = await scoring_service.calculate_score(USER_ID, FRAMEWORK_ID)

        snapshot = outcome.snapshot
        assert snapshot.user_id == USER_ID
        assert snapshot.framework_id == FRAMEWORK_ID
        assert snapshot.overall_risk_score == pytest.approx(47.667, abs=0.01)
        assert snapshot.total_tasks == 3
        assert snapshot.completed_tasks == 2
        assert snapshot.high_risks == 1
        assert snapshot.triggered_by == TriggeredBy.MANUAL_REFRESH
        assert outcome.calculation.risk_level == RiskLevel.MEDIUM
        assert outcome.direction == TrendDirection.UNKNOWN
        assert await history_store.latest(USER_ID, FRAMEWORK_ID) == snapshot

    @pytest.mark.asyncio
    async def test_context_stored(self, scoring_service: RiskScoringService) -> None:
        outcome = await scoring_service.calculate_score(
            USER_ID,
            triggered_by=TriggeredBy.SCHEDULED,
            context=["2 tasks are overdue"],
        )

        assert outcome.snapshot.context == ["2 tasks are overdue"]
        assert outcome.snapshot.triggered_by == TriggeredBy.SCHEDULED

    @pytest.mark.asyncio
    async def test_n_calculations_give_n_snapshots(self, scoring_service: RiskScoringService) -> None:
        ids = [(await scoring_service.calculate_score(USER_ID)).snapshot.id for _ in range(4)]

        history, total = await scoring_service.score_history(USER_ID, limit=4)

        assert total == 4
        assert len({s.id for s in history}) == 4
        assert history[0].id == ids[-1]

    @pytest.mark.asyncio
    async def test_second_calculation_has_delta(
        self,
        scoring_service: RiskScoringService,
        data_source: InMemoryComplianceDataSource,
    ) -> None:
        """Completing a task lowers the score and yields an improvement notice."""
        await scoring_service.calculate_score(USER_ID, FRAMEWORK_ID)

        data_source.tasks[2].status = "completed"
        outcome = await scoring_service.calculate_score(
            USER_ID,
            FRAMEWORK_ID,
            triggered_by=TriggeredBy.TASK_COMPLETION,
        )

        assert outcome.direction == TrendDirection.IMPROVING
        assert outcome.delta.change < 0
        assert NotificationType.SCORE_IMPROVEMENT in {n.type for n in outcome.notifications}

    @pytest.mark.asyncio
    async def test_publishes_score_changed(
        self,
        scoring_service: RiskScoringService,
        publisher: InMemoryEventPublisher,
    ) -> None:
        outcome = await scoring_service.calculate_score(USER_ID)

        assert len(publisher.score_changes) == 1
        assert publisher.score_changes[0].snapshot.id == outcome.snapshot.id

    @pytest.mark.asyncio
    async def test_unknown_framework_records_nothing(
        self,
        scoring_service: RiskScoringService,
        history_store: InMemoryHistoryStore,
        publisher: InMemoryEventPublisher,
    ) -> None:
        with pytest.raises(ScopeNotFoundError):
            await scoring_service.calculate_score(USER_ID, "fw-unknown")

        assert await history_store.count(USER_ID, "fw-unknown") == 0
        assert publisher.score_changes == []

    @pytest.mark.asyncio
    async def test_data_unavailable_propagates(
        self,
        scoring_service: RiskScoringService,
        data_source: InMemoryComplianceDataSource,
    ) -> None:
        data_source.available = False

        with pytest.raises(DataUnavailableError):
            await scoring_service.calculate_score(USER_ID)

    @pytest.mark.asyncio
    async def test_invalid_metrics_propagate(
        self,
        scoring_service: RiskScoringService,
        history_store: InMemoryHistoryStore,
    ) -> None:
        scoring_service.aggregator = MagicMock()
        scoring_service.aggregator.aggregate = AsyncMock(
            return_value=RiskMetrics(total_tasks=1, completed_tasks=3)
        )

        with pytest.raises(InvalidMetricsError):
            await scoring_service.calculate_score(USER_ID)

        assert await history_store.count(USER_ID) == 0

    @pytest.mark.asyncio
    async def test_persistence_failure_publishes_nothing(
        self,
        scoring_service: RiskScoringService,
        history_store: InMemoryHistoryStore,
        publisher: InMemoryEventPublisher,
    ) -> None:
        history_store.available = False

        with pytest.raises(PersistenceError):
            await scoring_service.calculate_score(USER_ID)

        assert publisher.score_changes == []

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_fail_calculation(
        self,
        scoring_service: RiskScoringService,
        history_store: InMemoryHistoryStore,
        publisher: InMemoryEventPublisher,
    ) -> None:
        publisher.fail = True

        outcome = await scoring_service.calculate_score(USER_ID)

        assert await history_store.latest(USER_ID) == outcome.snapshot

    @pytest.mark.asyncio
    async def test_response_rounds_scores(self, scoring_service: RiskScoringService) -> None:
        outcome = await scoring_service.calculate_score(USER_ID, FRAMEWORK_ID)

        body = outcome.to_response().model_dump(by_alias=True)

        assert body["overallRiskScore"] == 47.7
        assert body["riskLevel"] == RiskLevel.MEDIUM
        assert body["calculationFactors"]["taskCompletion"] == 66.7
        assert body["recommendations"]


# =============================================================================
# Read Side Tests
# =============================================================================


class TestReadSide:
    """Tests for latest, history and trend reads."""

    @pytest.mark.asyncio
    async def test_latest_score_is_idempotent(self, scoring_service: RiskScoringService) -> None:
        await scoring_service.calculate_score(USER_ID)

        first = await scoring_service.latest_score(USER_ID)
        second = await scoring_service.latest_score(USER_ID)

        assert first == second

    @pytest.mark.asyncio
    async def test_latest_score_none_for_new_scope(self, scoring_service: RiskScoringService) -> None:
        assert await scoring_service.latest_score("brand-new-user") is None

    @pytest.mark.asyncio
    async def test_history_limit_is_capped(self, scoring_service: RiskScoringService) -> None:
        scoring_service.store = MagicMock()
        scoring_service.store.history = AsyncMock(return_value=[])
        scoring_service.store.count = AsyncMock(return_value=0)

        await scoring_service.score_history(USER_ID, limit=10_000)

        assert scoring_service.store.history.call_args.kwargs["limit"] == scoring_service.config.history_max_limit

    @pytest.mark.asyncio
    async def test_history_default_limit(self, scoring_service: RiskScoringService) -> None:
        scoring_service.store = MagicMock()
        scoring_service.store.history = AsyncMock(return_value=[])
        scoring_service.store.count = AsyncMock(return_value=0)

        await scoring_service.score_history(USER_ID)

        assert scoring_service.store.history.call_args.kwargs["limit"] == 30


    @pytest.mark.asyncio
    async def test_concurrent_calculations_same_scope(
        self,
        scoring_service: RiskScoringService,
        history_store: InMemoryHistoryStore,
    ) -> None:
        first, second = await asyncio.gather(
            scoring_service.calculate_score(USER_ID, FRAMEWORK_ID),
            scoring_service.calculate_score(USER_ID, FRAMEWORK_ID),
        )

        assert first.snapshot.id != second.snapshot.id
        assert await history_store.count(USER_ID, FRAMEWORK_ID) == 2

        expected = max((first.snapshot, second.snapshot), key=lambda s: s.sort_key)
        assert await scoring_service.latest_score(USER_ID, FRAMEWORK_ID) == expected
        assert await scoring_service.latest_score(USER_ID, FRAMEWORK_ID) == expected


# =============================================================================
# Cache Tests
# =============================================================================


class VersionedRedis:
    """In-process stand-in for RedisClient's versioned entries."""

    def __init__(self) -> None:
        self.entries: dict[str, tuple[str, dict]] = {}

    async def set_if_newer(self, key: str, rank: str, value: dict, ttl_seconds: int = 300) -> bool:
        current = self.entries.get(key)
        if current is not None and current[0] >= rank:
            return False
        self.entries[key] = (rank, value)
        return True

    async def get_versioned(self, key: str, default=None):
        entry = self.entries.get(key)
        return default if entry is None else entry[1]

    async def delete_cached(self, key: str) -> bool:
        return self.entries.pop(key, None) is not None


@pytest.fixture
def versioned_redis():
    fake = VersionedRedis()
    target = "services.risk_scoring.services.cache.RedisClient"
    with (
        patch(f"{target}.set_if_newer", new=fake.set_if_newer),
        patch(f"{target}.get_versioned", new=fake.get_versioned),
        patch(f"{target}.delete_cached", new=fake.delete_cached),
    ):
        yield fake


@pytest.fixture
def cached_service(
    data_source: InMemoryComplianceDataSource,
    history_store: InMemoryHistoryStore,
    publisher: InMemoryEventPublisher,
    versioned_redis: VersionedRedis,
) -> RiskScoringService:
    return RiskScoringService(
        aggregator=MetricsAggregator(data_source),
        store=history_store,
        publisher=publisher,
        cache=LatestScoreCache(ttl_seconds=300),
    )


class TestLatestScoreCache:
    """Tests for the read-through latest score cache."""

    def test_rank_orders_by_created_at_then_id(self, make_snapshot) -> None:
        earlier = make_snapshot(50.0, created_at=datetime(2024, 1, 1, tzinfo=UTC), snapshot_id="b")
        later = make_snapshot(50.0, created_at=datetime(2024, 1, 1, 0, 0, 1, tzinfo=UTC), snapshot_id="a")
        tied = make_snapshot(50.0, created_at=datetime(2024, 1, 1, tzinfo=UTC), snapshot_id="c")

        assert snapshot_rank(earlier) < snapshot_rank(later)
        assert snapshot_rank(earlier) < snapshot_rank(tied)

    @pytest.mark.asyncio
    async def test_calculation_writes_through(
        self,
        cached_service: RiskScoringService,
        versioned_redis: VersionedRedis,
        history_store: InMemoryHistoryStore,
    ) -> None:
        outcome = await cached_service.calculate_score(USER_ID)

        assert f"risk_score:latest:{USER_ID}:*" in versioned_redis.entries

        history_store.available = False
        assert await cached_service.latest_score(USER_ID) == outcome.snapshot

    @pytest.mark.asyncio
    async def test_older_snapshot_does_not_replace_newer(
        self,
        cached_service: RiskScoringService,
    ) -> None:
        first = await cached_service.calculate_score(USER_ID)
        second = await cached_service.calculate_score(USER_ID)

        assert await cached_service.cache.set(first.snapshot) is False
        assert await cached_service.latest_score(USER_ID) == second.snapshot

    @pytest.mark.asyncio
    async def test_slow_read_racing_calculation_keeps_newest(
        self,
        cached_service: RiskScoringService,
        versioned_redis: VersionedRedis,
        history_store: InMemoryHistoryStore,
    ) -> None:
        first = await cached_service.calculate_score(USER_ID)
        versioned_redis.entries.clear()

        read_done = asyncio.Event()
        release = asyncio.Event()
        store_latest = history_store.latest

        async def paused_latest(*args, **kwargs):
            result = await store_latest(*args, **kwargs)
            read_done.set()
            await release.wait()
            return result

        with patch.object(history_store, "latest", new=paused_latest):
            reader = asyncio.create_task(cached_service.latest_score(USER_ID))
            await read_done.wait()

            second = await cached_service.calculate_score(USER_ID)
            release.set()
            assert await reader == first.snapshot

        assert await cached_service.latest_score(USER_ID) == second.snapshot
        assert await history_store.latest(USER_ID) == second.snapshot

    @pytest.mark.asyncio
    async def test_write_failure_drops_entry(
        self,
        cached_service: RiskScoringService,
        versioned_redis: VersionedRedis,
    ) -> None:
        first = await cached_service.calculate_score(USER_ID)

        with patch(
            "services.risk_scoring.services.cache.RedisClient.set_if_newer",
            new_callable=AsyncMock,
            side_effect=RedisError("connection reset"),
        ):
            await cached_service.calculate_score(USER_ID)

        assert versioned_redis.entries == {}
        assert (await cached_service.latest_score(USER_ID)).id != first.snapshot.id

    @pytest.mark.asyncio
    async def test_redis_write_is_compare_and_set(self, make_snapshot) -> None:
        from shared.database.redis import RedisClient

        client = MagicMock()
        client.eval = AsyncMock(return_value=0)
        snapshot = make_snapshot(50.0, created_at=datetime(2024, 1, 1, tzinfo=UTC), snapshot_id="s1")

        with patch.object(RedisClient, "get_client", return_value=client):
            written = await LatestScoreCache(ttl_seconds=60).set(snapshot)

        assert written is False
        script, numkeys, key, rank, _, ttl = client.eval.call_args.args
        assert "HGET" in script
        assert numkeys == 1
        assert key == f"risk_score:latest:{USER_ID}:*"
        assert rank == snapshot_rank(snapshot)
        assert ttl == 60



class TestEmptyScope:
    """A user with no tasks and no risks."""

    @pytest.mark.asyncio
    async def test_empty_scope_scores(self, history_store: InMemoryHistoryStore) -> None:
        service = RiskScoringService(
            aggregator=MetricsAggregator(InMemoryComplianceDataSource(tasks=[TaskRecord("t", "x")])),
            store=history_store,
            publisher=InMemoryEventPublisher(),
        )

        outcome = await service.calculate_score("empty-user")

        assert outcome.snapshot.calculation_factors.task_completion == 0.0
        assert outcome.snapshot.calculation_factors.risk_mitigation == 0.0
        assert outcome.snapshot.calculation_factors.timely_completion == 100.0
        assert outcome.snapshot.total_tasks == 0
