"""
Risk Scoring Dependencies
=========================

Process-wide collaborators for the risk scoring service, built lazily from
settings and used as FastAPI dependencies.

Backends:
- storage_backend: memory | postgres (data source and history store)
- event_backend: memory | kafka (score changes and notifications)

Tests replace individual collaborators with the set_* functions and call
shutdown_dependencies() between cases. Backends cannot be swapped while the
recompute worker or the aging scheduler is running.

Version: 0.1.0
"""

from services.risk_scoring.services.aggregator import (
    ComplianceDataSource,
    InMemoryComplianceDataSource,
    MetricsAggregator,
    PostgresComplianceDataSource,
)
from services.risk_scoring.services.cache import LatestScoreCache
from services.risk_scoring.services.calculator import ScoreCalculator, ScoreWeights
from services.risk_scoring.services.history import (
    HistoryStore,
    InMemoryHistoryStore,
    PostgresHistoryStore,
)
from services.risk_scoring.services.notifications import (
    EventPublisher,
    InMemoryEventPublisher,
    KafkaEventPublisher,
    NotificationRules,
)
from services.risk_scoring.services.recompute import RecomputeQueue
from services.risk_scoring.services.scheduler import AgingScheduler
from services.risk_scoring.services.scoring import RiskScoringService
from shared.config import EventBackend, StorageBackend, settings
from shared.logging import get_logger


logger = get_logger(__name__)


_data_source: ComplianceDataSource | None = None
_history_store: HistoryStore | None = None
_publisher: EventPublisher | None = None
_service: RiskScoringService | None = None
_queue: RecomputeQueue | None = None
_scheduler: AgingScheduler | None = None


# =============================================================================
# Backends
# =============================================================================


def get_data_source() -> ComplianceDataSource:
    """Get the configured task/risk data source."""
    global _data_source

    if _data_source is None:
        backend = settings.risk_scoring.storage_backend
        if backend == StorageBackend.POSTGRES:
            _data_source = PostgresComplianceDataSource()
        else:
            _data_source = InMemoryComplianceDataSource()
        logger.info("data_source_initialized", backend=backend.value)

    return _data_source


def _drop_services() -> None:
    # Services capture their backends; rebuild them after a swap
    global _service, _queue, _scheduler

    queue_running = _queue is not None and _queue.running
    scheduler_running = _scheduler is not None and _scheduler.running
    if queue_running or scheduler_running:
        raise RuntimeError(
            "Stop background workers with shutdown_dependencies() before swapping backends"
        )

    _service = None
    _queue = None
    _scheduler = None


def set_data_source(source: ComplianceDataSource) -> None:
    global _data_source
    _drop_services()
    _data_source = source


def get_history_store() -> HistoryStore:
    """Get the configured history store."""
    global _history_store

    if _history_store is None:
        backend = settings.risk_scoring.storage_backend
        if backend == StorageBackend.POSTGRES:
            _history_store = PostgresHistoryStore()
        else:
            _history_store = InMemoryHistoryStore()
        logger.info("history_store_initialized", backend=backend.value)

    return _history_store


def set_history_store(store: HistoryStore) -> None:
    global _history_store
    _drop_services()
    _history_store = store


def get_event_publisher() -> EventPublisher:
    """Get the configured event publisher."""
    global _publisher

    if _publisher is None:
        backend = settings.risk_scoring.event_backend
        if backend == EventBackend.KAFKA:
            _publisher = KafkaEventPublisher()
        else:
            _publisher = InMemoryEventPublisher()
        logger.info("event_publisher_initialized", backend=backend.value)

    return _publisher


def set_event_publisher(publisher: EventPublisher) -> None:
    global _publisher
    _drop_services()
    _publisher = publisher


# =============================================================================
# Services
# =============================================================================


def get_scoring_service() -> RiskScoringService:
    """Get the risk scoring service."""
    global _service

    if _service is None:
        config = settings.risk_scoring
        _service = RiskScoringService(
            aggregator=MetricsAggregator(get_data_source()),
            store=get_history_store(),
            publisher=get_event_publisher(),
            calculator=ScoreCalculator(ScoreWeights.from_settings(config)),
            rules=NotificationRules.from_settings(config),
            cache=LatestScoreCache(ttl_seconds=config.cache_ttl_seconds),
            config=config,
        )

    return _service


def get_recompute_queue() -> RecomputeQueue:
    """Get the recompute queue; its worker starts on first submit."""
    global _queue

    if _queue is None:
        _queue = RecomputeQueue(get_scoring_service())

    return _queue


def get_aging_scheduler() -> AgingScheduler:
    global _scheduler

    if _scheduler is None:
        _scheduler = AgingScheduler(
            get_data_source(),
            get_recompute_queue(),
            interval_seconds=settings.risk_scoring.aging_check_interval_seconds,
        )

    return _scheduler


async def shutdown_dependencies() -> None:
    """Stop background workers and forget every collaborator."""
    global _data_source, _history_store, _publisher, _service, _queue, _scheduler

    if _scheduler is not None:
        await _scheduler.stop()
    if _queue is not None:
        await _queue.stop()

    _data_source = None
    _history_store = None
    _publisher = None
    _service = None
    _queue = None
    _scheduler = None
