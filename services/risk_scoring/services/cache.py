"""
Latest Score Cache
==================

Redis read-through cache for the latest snapshot of a scope. New snapshots
are written through on append and entries expire after the configured TTL.
A TTL of 0 disables the cache.

Every entry carries the snapshot's rank (created_at, then id). Writes are
compare-and-set in Redis, so a reader that fetched an older snapshot from
the store cannot overwrite a newer one written by a calculation.

Cache failures are logged and treated as a miss; the history store stays
the source of truth.

Version: 0.1.0
"""

from datetime import UTC, datetime, timedelta

from redis.exceptions import RedisError

from shared.database.redis import RedisClient
from shared.logging import get_logger
from shared.models.risk import FULL_PRECISION, RiskScoreSnapshot


logger = get_logger(__name__)


KEY_PREFIX = "risk_score:latest"

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def cache_key(user_id: str, framework_id: str | None) -> str:
    return f"{KEY_PREFIX}:{user_id}:{framework_id or '*'}"


def snapshot_rank(snapshot: RiskScoreSnapshot) -> str:
    """String form of the snapshot's recency that sorts like sort_key."""
    created_at = snapshot.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)
    micros = (created_at - _EPOCH) // timedelta(microseconds=1)
    return f"{micros:020d}:{snapshot.id}"


class LatestScoreCache:
    """Caches serialized snapshots in Redis."""

    def __init__(self, ttl_seconds: int = 300) -> None:
        self.ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    async def get(self, user_id: str, framework_id: str | None) -> RiskScoreSnapshot | None:
        if not self.enabled:
            return None
        try:
            data = await RedisClient.get_versioned(cache_key(user_id, framework_id))
        except (RedisError, OSError) as e:
            logger.warning("score_cache_read_failed", user_id=user_id, error=str(e))
            return None
        if not isinstance(data, dict):
            return None
        return RiskScoreSnapshot.model_validate(data)

    async def set(self, snapshot: RiskScoreSnapshot) -> bool:
        """
        Cache a snapshot unless a newer one for the scope is already cached.

        Returns:
            True if the entry was written
        """
        if not self.enabled:
            return False
        try:
            written = await RedisClient.set_if_newer(
                cache_key(snapshot.user_id, snapshot.framework_id),
                snapshot_rank(snapshot),
                snapshot.model_dump(mode="json", by_alias=True, context=FULL_PRECISION),
                ttl_seconds=self.ttl_seconds,
            )
        except (RedisError, OSError) as e:
            logger.warning("score_cache_write_failed", user_id=snapshot.user_id, error=str(e))
            # An older entry may still be cached
            await self.invalidate(snapshot.user_id, snapshot.framework_id)
            return False
        if not written:
            logger.debug("score_cache_write_skipped", user_id=snapshot.user_id, snapshot_id=snapshot.id)
        return written

    async def invalidate(self, user_id: str, framework_id: str | None) -> None:
        if not self.enabled:
            return
        try:
            await RedisClient.delete_cached(cache_key(user_id, framework_id))
        except (RedisError, OSError) as e:
            logger.warning("score_cache_invalidate_failed", user_id=user_id, error=str(e))
