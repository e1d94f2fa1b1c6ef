"""
Redis client wrapper for announce-bot.
Owns the connection pool shared by the subscriber set and the replay locks.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError, ConnectionError

from announce_bot.config import RedisConfig


logger = logging.getLogger(__name__)


class RedisClient:
    """
    Async Redis client wrapper with connection pooling and error handling.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        password: Optional[str] = None,
        db: int = 0,
        max_connections: int = 10,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
        retry_on_timeout: bool = True,
        health_check_interval: int = 30
    ):
        """
        Initialize Redis client.

        Args:
            host: Redis host
            port: Redis port
            password: Redis password, None or empty for no auth
            db: Database index
            max_connections: Maximum connections in pool
            socket_timeout: Socket timeout in seconds
            socket_connect_timeout: Connection timeout in seconds
            retry_on_timeout: Whether to retry on timeout
            health_check_interval: Health check interval in seconds
        """
        self.host = host
        self.port = port
        self.db = db
        self._pool: Optional[redis.ConnectionPool] = None
        self._client: Optional[redis.Redis] = None

        self._pool_config = {
            "host": host,
            "port": port,
            "password": password or None,
            "db": db,
            "max_connections": max_connections,
            "socket_timeout": socket_timeout,
            "socket_connect_timeout": socket_connect_timeout,
            "retry_on_timeout": retry_on_timeout,
            "health_check_interval": health_check_interval,
            "decode_responses": True
        }

    @classmethod
    def from_config(cls, config: RedisConfig) -> "RedisClient":
        return cls(
            host=config.host,
            port=config.port,
            password=config.password,
            db=config.db,
            max_connections=config.max_connections,
            socket_timeout=config.socket_timeout,
            socket_connect_timeout=config.socket_connect_timeout,
            health_check_interval=config.health_check_interval
        )

    async def connect(self) -> None:
        """
        Establish connection to Redis.

        Raises:
            ConnectionError: If connection fails
        """
        try:
            self._pool = redis.ConnectionPool(**self._pool_config)
            self._client = redis.Redis(connection_pool=self._pool)

            await self._client.ping()
            logger.info(
                "Connected to Redis",
                extra={"component": "redis_client", "address": f"{self.host}:{self.port}", "db": self.db}
            )

        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            await self.close()
            raise ConnectionError(f"Redis connection failed: {e}") from e

    async def close(self) -> None:
        """Close Redis connection and cleanup resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

        if self._pool:
            await self._pool.aclose()
            self._pool = None

        logger.info("Redis connection closed")

    @property
    def client(self) -> redis.Redis:
        """
        Get Redis client instance.

        Raises:
            RuntimeError: If not connected
        """
        if not self._client:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def ping(self) -> bool:
        """
        Ping Redis to check connectivity.

        Returns:
            True if ping successful, False otherwise
        """
        try:
            if not self._client:
                return False

            await self._client.ping()
            return True

        except (RedisError, ConnectionError) as e:
            logger.warning(f"Redis ping failed: {e}")
            return False
