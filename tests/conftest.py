"""
Test Configuration
==================

Pytest fixtures for risk scoring tests.
"""

import os
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment
os.environ["ENVIRONMENT"] = "testing"
os.environ["RISK_SCORING_STORAGE_BACKEND"] = "memory"
os.environ["RISK_SCORING_EVENT_BACKEND"] = "memory"
os.environ["RISK_SCORING_CACHE_TTL_SECONDS"] = "0"
os.environ["RISK_SCORING_SCHEDULER_ENABLED"] = "false"
os.environ["RISK_SCORING_RECOMPUTE_BACKOFF_MAX_SECONDS"] = "0"

from services.risk_scoring.services.aggregator import (  # noqa: E402
    InMemoryComplianceDataSource,
    MetricsAggregator,
    RiskRecord,
    TaskRecord,
)
from services.risk_scoring.services.history import InMemoryHistoryStore  # noqa: E402
from services.risk_scoring.services.notifications import InMemoryEventPublisher  # noqa: E402
from services.risk_scoring.services.scoring import RiskScoringService  # noqa: E402
from shared.models.risk import (  # noqa: E402
    CalculationFactors,
    RiskScoreSnapshot,
    TriggeredBy,
)


USER_ID = "test-user-id"
FRAMEWORK_ID = "fw-soc2"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


# =============================================================================
# Backends
# =============================================================================


@pytest.fixture
def data_source() -> InMemoryComplianceDataSource:
    """Task/risk store with one framework and a mixed workload."""
    now = datetime.now(UTC)
    source = InMemoryComplianceDataSource()
    source.add_framework(FRAMEWORK_ID)
    source.add_framework("fw-iso27001")

    source.add_task(TaskRecord("t1", USER_ID, FRAMEWORK_ID, "completed",
                               due_date=now - timedelta(days=5), completed_at=now - timedelta(days=6)))
    source.add_task(TaskRecord("t2", USER_ID, FRAMEWORK_ID, "completed",
                               due_date=now - timedelta(days=10), completed_at=now - timedelta(days=2)))
    source.add_task(TaskRecord("t3", USER_ID, FRAMEWORK_ID, "in_progress",
                               due_date=now - timedelta(days=3)))
    source.add_task(TaskRecord("t4", USER_ID, "fw-iso27001", "pending",
                               due_date=now + timedelta(days=7)))

    source.add_risk(RiskRecord("r1", USER_ID, FRAMEWORK_ID, impact="high", status="open"))
    source.add_risk(RiskRecord("r2", USER_ID, FRAMEWORK_ID, impact="medium", status="mitigated"))
    source.add_risk(RiskRecord("r3", USER_ID, "fw-iso27001", impact="low", status="open"))

    return source


@pytest.fixture
def history_store() -> InMemoryHistoryStore:
    return InMemoryHistoryStore()


@pytest.fixture
def publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def scoring_service(
    data_source: InMemoryComplianceDataSource,
    history_store: InMemoryHistoryStore,
    publisher: InMemoryEventPublisher,
) -> RiskScoringService:
    """Scoring service wired to in-memory backends."""
    return RiskScoringService(
        aggregator=MetricsAggregator(data_source),
        store=history_store,
        publisher=publisher,
    )


@pytest.fixture
def make_snapshot() -> Callable[..., RiskScoreSnapshot]:
    """Factory for snapshots with a given score and timestamp."""

    def _make(
        score: float,
        created_at: datetime | None = None,
        snapshot_id: str | None = None,
        user_id: str = USER_ID,
        framework_id: str | None = None,
        triggered_by: TriggeredBy = TriggeredBy.MANUAL_REFRESH,
    ) -> RiskScoreSnapshot:
        from uuid import uuid4

        return RiskScoreSnapshot(
            id=snapshot_id or str(uuid4()),
            user_id=user_id,
            framework_id=framework_id,
            overall_risk_score=score,
            high_risks=0,
            medium_risks=0,
            low_risks=0,
            mitigated_risks=0,
            total_tasks=0,
            completed_tasks=0,
            calculation_factors=CalculationFactors(
                task_completion=0.0,
                risk_mitigation=0.0,
                timely_completion=100.0,
                overall_health=20.0,
            ),
            triggered_by=triggered_by,
            created_at=created_at or datetime.now(UTC),
        )

    return _make


# =============================================================================
# API
# =============================================================================


@pytest_asyncio.fixture
async def risk_scoring_app(
    data_source: InMemoryComplianceDataSource,
    history_store: InMemoryHistoryStore,
    publisher: InMemoryEventPublisher,
) -> AsyncGenerator[Any, None]:
    """Risk scoring app with in-memory collaborators."""
    from services.risk_scoring import dependencies
    from services.risk_scoring.main import app

    await dependencies.shutdown_dependencies()
    dependencies.set_data_source(data_source)
    dependencies.set_history_store(history_store)
    dependencies.set_event_publisher(publisher)

    yield app

    await dependencies.shutdown_dependencies()


@pytest_asyncio.fixture
async def risk_scoring_client(risk_scoring_app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Create test client for Risk Scoring Service."""
    async with AsyncClient(
        transport=ASGITransport(app=risk_scoring_app),
        base_url="http://test",
    ) as client:
        yield client


def _headers(sub: str, roles: list[str]) -> dict[str, str]:
    from shared.auth import create_access_token

    token = create_access_token({
        "sub": sub,
        "email": f"{sub}@example.com",
        "roles": roles,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Generate test authentication headers for a regular user."""
    return _headers(USER_ID, ["user"])


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return _headers("admin-user-id", ["user", "admin"])


@pytest.fixture
def service_headers() -> dict[str, str]:
    """Headers for the task subsystem calling the event webhook."""
    return _headers("task-service", ["service"])
