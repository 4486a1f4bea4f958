"""
Kafka Client
============

Async Kafka producer and consumer for event streaming.

Version: 0.1.0
"""

import json
import time
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.structs import ConsumerRecord

from shared.config import settings
from shared.logging import get_logger

logger = get_logger(__name__)


class KafkaClient:
    """
    Async Kafka client wrapper.

    Holds a single shared producer; consumers are created per subscription.
    """

    _producer: AIOKafkaProducer | None = None

    @classmethod
    async def get_producer(cls) -> AIOKafkaProducer:
        """Get or create the started producer."""
        if cls._producer is None:
            producer = AIOKafkaProducer(
                bootstrap_servers=settings.kafka.bootstrap_servers,
                security_protocol=settings.kafka.security_protocol,
                value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
                key_serializer=lambda k: k.encode("utf-8") if k else None,
                compression_type="gzip",
                acks="all",
            )
            await producer.start()
            cls._producer = producer
            logger.info(
                "kafka_producer_created",
                bootstrap_servers=settings.kafka.bootstrap_servers,
            )
        return cls._producer

    @classmethod
    def create_consumer(
        cls,
        topics: list[str],
        group_id: str,
        auto_offset_reset: str = "latest",
    ) -> AIOKafkaConsumer:
        """
        Create a new consumer instance (not started).

        Args:
            topics: List of topics to subscribe to
            group_id: Consumer group ID
            auto_offset_reset: Where to start reading ('earliest' or 'latest')
        """
        return AIOKafkaConsumer(
            *topics,
            bootstrap_servers=settings.kafka.bootstrap_servers,
            security_protocol=settings.kafka.security_protocol,
            group_id=group_id,
            auto_offset_reset=auto_offset_reset,
            enable_auto_commit=True,
            value_deserializer=lambda v: json.loads(v.decode("utf-8")),
            key_deserializer=lambda k: k.decode("utf-8") if k else None,
        )

    @classmethod
    async def close(cls) -> None:
        """Stop the producer."""
        if cls._producer is not None:
            await cls._producer.stop()
            cls._producer = None
            logger.info("kafka_producer_closed")

    @classmethod
    async def health_check(cls) -> dict[str, Any]:
        """
        Check Kafka health.

        Returns:
            dict with status and cluster info
        """
        try:
            start = time.perf_counter()
            producer = await cls.get_producer()
            await producer.client.force_metadata_update()
            latency_ms = (time.perf_counter() - start) * 1000

            return {
                "status": "healthy",
                "latency_ms": round(latency_ms, 2),
                "brokers": len(producer.client.cluster.brokers()),
            }
        except Exception as e:
            logger.error("kafka_health_check_failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e),
            }

    @classmethod
    async def publish(
        cls,
        topic: str,
        value: dict[str, Any],
        key: str | None = None,
    ) -> None:
        """
        Publish a JSON message to a topic.

        Args:
            topic: Topic name
            value: JSON-serializable message body
            key: Optional message key for partitioning
        """
        producer = await cls.get_producer()
        await producer.send_and_wait(topic, value=value, key=key)

        logger.debug(
            "kafka_message_published",
            topic=topic,
            key=key,
        )


@asynccontextmanager
async def kafka_consumer_context(
    topics: list[str],
    group_id: str,
) -> AsyncGenerator[AIOKafkaConsumer, None]:
    """
    Context manager for a started Kafka consumer.

    Usage:
        async with kafka_consumer_context(["topic"], "group") as consumer:
            async for msg in consumer:
                process(msg)
    """
    consumer = KafkaClient.create_consumer(topics, group_id)
    await consumer.start()
    try:
        yield consumer
    finally:
        await consumer.stop()


async def consume_messages(
    topics: list[str],
    group_id: str,
    handler: Callable[[ConsumerRecord], Awaitable[Any]],
    max_messages: int | None = None,
) -> int:
    """
    Consume messages from topics and process each with handler.

    A failing message is logged and skipped so one bad record cannot stall
    the partition.

    Returns:
        Number of messages processed successfully
    """
    count = 0
    async with kafka_consumer_context(topics, group_id) as consumer:
        async for msg in consumer:
            try:
                await handler(msg)
                count += 1
            except Exception as e:
                logger.error(
                    "kafka_message_processing_error",
                    topic=msg.topic,
                    offset=msg.offset,
                    error=str(e),
                    error_type=type(e).__name__,
                )

            if max_messages and count >= max_messages:
                break

    return count
