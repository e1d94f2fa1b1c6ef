"""
Redis implementation of the SubscriberStore interface.
Subscribers live in a Redis Set; replay locks are plain keys created with
SET NX PX so acquisition is one atomic round trip.
"""

import hashlib
import logging
from datetime import datetime
from typing import List

from redis.exceptions import RedisError

from announce_bot.domain.ports import SubscriberStore, StoreUnavailableError
from announce_bot.domain.schema import HealthStatus, SubscribeOutcome, UnsubscribeOutcome
from .redis_client import RedisClient


logger = logging.getLogger(__name__)


class RedisSubscriberStore(SubscriberStore):
    """
    Redis-backed subscriber set with replay locks.

    Membership is never cached in process; every call goes to Redis so HTTP
    and chat-driven changes are always seen by the next reader.
    """

    def __init__(
        self,
        redis_client: RedisClient,
        subscribers_key: str = "subscribers",
        replay_lock_prefix: str = "announcebot:replay"
    ):
        """
        Initialize Redis subscriber store.

        Args:
            redis_client: Connected Redis client wrapper
            subscribers_key: Redis Set key holding subscriber ids
            replay_lock_prefix: Prefix for replay lock keys
        """
        self.redis_client = redis_client
        self.subscribers_key = subscribers_key
        self.replay_lock_prefix = replay_lock_prefix

    async def list_subscribers(self) -> List[str]:
        try:
            members = await self.redis_client.client.smembers(self.subscribers_key)
        except RedisError as e:
            self._log_failure("smembers", e)
            raise StoreUnavailableError(f"Failed to list subscribers: {e}") from e

        return list(members)

    async def subscribe(self, user_id: str) -> SubscribeOutcome:
        """
        Add a user with SADD.

        SADD reports how many members it added, which tells a new
        subscription apart from an existing one without a separate
        SISMEMBER round trip.
        """
        try:
            added = await self.redis_client.client.sadd(self.subscribers_key, user_id)
        except RedisError as e:
            self._log_failure("sadd", e, user=user_id)
            raise StoreUnavailableError(f"Failed to subscribe user: {e}") from e

        if not added:
            return SubscribeOutcome.ALREADY_SUBSCRIBED

        logger.info(
            "User subscribed",
            extra={"component": "redis_store", "user": user_id}
        )
        return SubscribeOutcome.CREATED

    async def unsubscribe(self, user_id: str) -> UnsubscribeOutcome:
        try:
            removed = await self.redis_client.client.srem(self.subscribers_key, user_id)
        except RedisError as e:
            self._log_failure("srem", e, user=user_id)
            raise StoreUnavailableError(f"Failed to unsubscribe user: {e}") from e

        if not removed:
            return UnsubscribeOutcome.NOT_SUBSCRIBED

        logger.info(
            "User unsubscribed",
            extra={"component": "redis_store", "user": user_id}
        )
        return UnsubscribeOutcome.REMOVED

    async def try_acquire_replay_lock(
        self,
        sender: str,
        message_text: str,
        ttl_seconds: float
    ) -> bool:
        key = self.replay_lock_key(sender, message_text)
        ttl_ms = max(1, int(ttl_seconds * 1000))

        try:
            acquired = await self.redis_client.client.set(key, "1", nx=True, px=ttl_ms)
        except RedisError as e:
            self._log_failure("set_nx", e, user=sender)
            raise StoreUnavailableError(f"Failed to acquire replay lock: {e}") from e

        return bool(acquired)

    def replay_lock_key(self, sender: str, message_text: str) -> str:
        digest = hashlib.sha256(message_text.encode("utf-8")).hexdigest()
        return f"{self.replay_lock_prefix}:{sender}:{digest}"

    async def check_health(self) -> HealthStatus:
        """
        Check Redis health by pinging and reading the set size.

        Returns:
            HealthStatus with current state
        """
        checks = {}
        overall_status = "healthy"

        ping_result = await self.redis_client.ping()
        checks["redis_ping"] = "ok" if ping_result else "failed"
        if not ping_result:
            overall_status = "unhealthy"
        else:
            try:
                size = await self.redis_client.client.scard(self.subscribers_key)
                checks["subscribers"] = f"ok_size_{size}"
            except RedisError as e:
                checks["subscribers"] = f"error_{e}"
                overall_status = "unhealthy"

        return HealthStatus(
            status=overall_status,
            timestamp=datetime.utcnow(),
            checks=checks
        )

    def _log_failure(self, operation: str, error: Exception, **context) -> None:
        logger.error(
            f"Redis {operation} failed: {error}",
            extra={
                "component": "redis_store",
                "operation": operation,
                "error": str(error),
                **context
            }
        )
