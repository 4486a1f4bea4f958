"""
Database Module
===============

Async clients for the data stores the risk scoring service talks to.

Clients:
- PostgreSQL (asyncpg + SQLAlchemy)
- Redis (redis.asyncio)
- Kafka (aiokafka)

Usage:
    from shared.database import postgres_session

    async with postgres_session() as session:
        result = await session.execute(select(RiskScoreHistoryModel))
"""

from shared.database.kafka import (
    KafkaClient,
    consume_messages,
    kafka_consumer_context,
)
from shared.database.postgres import (
    Base,
    PostgresClient,
    postgres_session,
)
from shared.database.redis import RedisClient


__all__ = [
    # PostgreSQL
    "postgres_session",
    "PostgresClient",
    "Base",
    # Redis
    "RedisClient",
    # Kafka
    "KafkaClient",
    "kafka_consumer_context",
    "consume_messages",
]
