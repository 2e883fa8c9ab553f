"""Redis-backed store for task and workflow records."""

import asyncio
import json
import logging
from typing import List, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from ..config.scheduler_config import StorageConfig
from ..errors import StorageError
from .base import TASK, Record, StateStore, deserialize_record, record_kind, serialize_record


logger = logging.getLogger(__name__)


class RedisStateStore(StateStore):
    """
    Stores each record as a JSON string plus a per-kind id set.

    Key pattern: {prefix}:{kind}:{id}, index: {prefix}:{kind}:index
    """

    PING_ATTEMPTS = 3
    PING_RETRY_DELAY = 1.0  # seconds

    def __init__(self, config: Optional[StorageConfig] = None):
        """
        Initialize Redis store.

        Args:
            config: Storage configuration (read from environment if omitted)
        """
        self.config = config or StorageConfig()
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = None

    async def _get_redis(self) -> Redis:
        """
        Return the shared client, connecting on first use.

        Raises:
            StorageError: If Redis does not answer a ping after PING_ATTEMPTS tries
        """
        if self._redis is not None:
            return self._redis

        pool = ConnectionPool.from_url(
            self.config.redis_url,
            max_connections=self.config.connection_pool_size,
            decode_responses=True,
        )
        client = Redis(connection_pool=pool)
        await self._wait_until_reachable(client)

        self._pool, self._redis = pool, client
        return client

    async def _wait_until_reachable(self, client: Redis) -> None:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.PING_ATTEMPTS + 1):
            try:
                await client.ping()
            except RedisError as e:
                last_error = e
                logger.warning(f"Redis ping {attempt}/{self.PING_ATTEMPTS} failed: {e}")
                if attempt < self.PING_ATTEMPTS:
                    await asyncio.sleep(self.PING_RETRY_DELAY)
            else:
                logger.info(f"Connected to Redis at {self.config.redis_url}")
                return

        logger.error(f"Giving up on Redis after {self.PING_ATTEMPTS} pings")
        raise StorageError(f"Redis unavailable: {last_error}") from last_error

    def _key(self, kind: str, record_id: str) -> str:
        return f"{self.config.key_prefix}:{kind}:{record_id}"

    def _index_key(self, kind: str) -> str:
        return f"{self.config.key_prefix}:{kind}:index"

    async def save(self, record: Record) -> None:
        redis = await self._get_redis()
        kind = record_kind(record)
        try:
            await redis.set(self._key(kind, record.id), json.dumps(serialize_record(record)))
            await redis.sadd(self._index_key(kind), record.id)
            logger.debug(f"Stored {kind} {record.id}")
        except RedisError as e:
            logger.error(f"Failed to store {kind} {record.id}: {e}")
            raise StorageError(str(e)) from e

    async def load(self, record_id: str, kind: str = TASK) -> Optional[Record]:
        redis = await self._get_redis()
        try:
            raw = await redis.get(self._key(kind, record_id))
        except RedisError as e:
            logger.error(f"Failed to load {kind} {record_id}: {e}")
            raise StorageError(str(e)) from e

        if raw is None:
            return None
        return deserialize_record(kind, json.loads(raw))

    async def delete(self, record_id: str, kind: str = TASK) -> bool:
        redis = await self._get_redis()
        try:
            removed = await redis.delete(self._key(kind, record_id))
            await redis.srem(self._index_key(kind), record_id)
        except RedisError as e:
            logger.error(f"Failed to delete {kind} {record_id}: {e}")
            raise StorageError(str(e)) from e
        return bool(removed)

    async def list_all(self, kind: str = TASK) -> List[Record]:
        redis = await self._get_redis()
        try:
            ids = sorted(await redis.smembers(self._index_key(kind)))
            if not ids:
                return []
            values = await redis.mget([self._key(kind, record_id) for record_id in ids])
        except RedisError as e:
            logger.error(f"Failed to list {kind} records: {e}")
            raise StorageError(str(e)) from e

        return [deserialize_record(kind, json.loads(raw)) for raw in values if raw is not None]

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
