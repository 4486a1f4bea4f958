#!/usr/bin/env python3
"""
Database Initialization Script
==============================

Initialize the risk scoring database schema and verify the Redis and Kafka
connections.

Usage:
    python scripts/init_databases.py
    python scripts/init_databases.py --postgres-only
    python scripts/init_databases.py --postgres-only --seed

``--seed`` creates minimal frameworks/tasks/risks tables (normally owned by
the task and risk subsystems) and fills them with demo rows for local
development.

Version: 0.1.0
"""

import argparse
import asyncio
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from shared.logging import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False, service_name="init-db")
logger = get_logger(__name__)


DEMO_USER = "demo-user"

UPSTREAM_DDL = [
    """
    CREATE TABLE IF NOT EXISTS core.frameworks (
        id VARCHAR(255) PRIMARY KEY,
        name VARCHAR(255) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS core.tasks (
        id VARCHAR(255) PRIMARY KEY,
        user_id VARCHAR(255) NOT NULL,
        framework_id VARCHAR(255),
        title VARCHAR(500) NOT NULL,
        status VARCHAR(50) NOT NULL DEFAULT 'pending',
        due_date TIMESTAMPTZ,
        completed_at TIMESTAMPTZ
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS core.risks (
        id VARCHAR(255) PRIMARY KEY,
        user_id VARCHAR(255) NOT NULL,
        framework_id VARCHAR(255),
        title VARCHAR(500) NOT NULL,
        impact VARCHAR(50) NOT NULL DEFAULT 'medium',
        status VARCHAR(50) NOT NULL DEFAULT 'open'
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_tasks_user_framework ON core.tasks (user_id, framework_id)",
    "CREATE INDEX IF NOT EXISTS ix_risks_user_framework ON core.risks (user_id, framework_id)",
]


async def init_postgres() -> bool:
    """Create the core schema and the risk score history table."""
    from sqlalchemy import text

    # Registers the ORM tables on the shared metadata
    import services.risk_scoring.models  # noqa: F401
    from shared.database.postgres import PostgresClient

    logger.info("postgres_init_started")

    try:
        await PostgresClient.create_tables()

        engine = PostgresClient.get_engine()
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT version()"))
            version = result.scalar() or ""
            logger.info("postgres_connected", version=version[:50])

        logger.info("postgres_initialized")
        return True

    except Exception as e:
        logger.error("postgres_init_failed", error=str(e))
        return False


async def init_redis() -> bool:
    """Initialize Redis and verify connection."""
    from shared.database.redis import RedisClient

    logger.info("redis_init_started")

    try:
        client = RedisClient.get_client()
        await client.ping()

        info = await client.info("server")
        logger.info("redis_connected", version=info["redis_version"])
        return True

    except Exception as e:
        logger.error("redis_init_failed", error=str(e))
        return False


async def init_kafka() -> bool:
    """Verify the Kafka connection."""
    from shared.database.kafka import KafkaClient

    logger.info("kafka_init_started")

    try:
        health = await KafkaClient.health_check()
        if health.get("status") == "healthy":
            logger.info("kafka_connected", brokers=health["brokers"])
            return True

        logger.error("kafka_health_check_failed", error=health.get("error"))
        return False

    except Exception as e:
        logger.error("kafka_init_failed", error=str(e))
        return False

    finally:
        await KafkaClient.close()


async def seed_data() -> bool:
    """Create upstream demo tables and seed a demo user's tasks and risks."""
    from sqlalchemy import text

    from shared.database.postgres import postgres_session

    logger.info("seed_started", user_id=DEMO_USER)
    now = datetime.now(UTC)

    frameworks = [
        {"id": "soc2", "name": "SOC 2"},
        {"id": "iso27001", "name": "ISO/IEC 27001"},
    ]
    tasks = [
        {"id": "demo-task-1", "framework_id": "soc2", "title": "Enable MFA for all admins",
         "status": "completed", "due_date": now - timedelta(days=10), "completed_at": now - timedelta(days=12)},
        {"id": "demo-task-2", "framework_id": "soc2", "title": "Document incident response plan",
         "status": "in_progress", "due_date": now - timedelta(days=4), "completed_at": None},
        {"id": "demo-task-3", "framework_id": "iso27001", "title": "Review supplier contracts",
         "status": "pending", "due_date": now + timedelta(days=14), "completed_at": None},
    ]
    risks = [
        {"id": "demo-risk-1", "framework_id": "soc2", "title": "Shared admin credentials",
         "impact": "high", "status": "open"},
        {"id": "demo-risk-2", "framework_id": "soc2", "title": "Unencrypted backups",
         "impact": "medium", "status": "mitigated"},
        {"id": "demo-risk-3", "framework_id": "iso27001", "title": "No asset inventory",
         "impact": "low", "status": "open"},
    ]

    try:
        async with postgres_session() as session:
            for statement in UPSTREAM_DDL:
                await session.execute(text(statement))

            for framework in frameworks:
                await session.execute(
                    text("""
                        INSERT INTO core.frameworks (id, name) VALUES (:id, :name)
                        ON CONFLICT (id) DO NOTHING
                    """),
                    framework,
                )

            for task in tasks:
                await session.execute(
                    text("""
                        INSERT INTO core.tasks
                            (id, user_id, framework_id, title, status, due_date, completed_at)
                        VALUES
                            (:id, :user_id, :framework_id, :title, :status, :due_date, :completed_at)
                        ON CONFLICT (id) DO NOTHING
                    """),
                    {**task, "user_id": DEMO_USER},
                )

            for risk in risks:
                await session.execute(
                    text("""
                        INSERT INTO core.risks (id, user_id, framework_id, title, impact, status)
                        VALUES (:id, :user_id, :framework_id, :title, :impact, :status)
                        ON CONFLICT (id) DO NOTHING
                    """),
                    {**risk, "user_id": DEMO_USER},
                )

        logger.info("seed_completed", tasks=len(tasks), risks=len(risks))
        return True

    except Exception as e:
        logger.error("seed_failed", error=str(e))
        return False


async def main(args: argparse.Namespace) -> int:
    """Main initialization function."""
    logger.info("database_initialization_started")

    results = {}

    if args.all or args.postgres_only:
        results["PostgreSQL"] = await init_postgres()

    if args.all:
        results["Redis"] = await init_redis()
        results["Kafka"] = await init_kafka()

    if args.seed:
        results["Seed Data"] = await seed_data()

    failed = [name for name, success in results.items() if not success]
    for name, success in results.items():
        logger.info("initialization_result", component=name, ok=success)

    if failed:
        logger.error("initialization_failed", failed=failed)
        return 1

    logger.info("initialization_completed")
    return 0


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Initialize risk scoring databases",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--postgres-only",
        action="store_true",
        help="Initialize only PostgreSQL",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Seed demo frameworks, tasks and risks",
    )

    args = parser.parse_args()

    # If no specific database is selected, init all
    args.all = not args.postgres_only

    return args


if __name__ == "__main__":
    args = parse_args()
    exit_code = asyncio.run(main(args))
    sys.exit(exit_code)
