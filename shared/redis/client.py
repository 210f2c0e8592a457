import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
import json
import os
from typing import Any
import uuid

import redis.asyncio as redis
import structlog

from shared.contracts.base import BaseMessage

logger = structlog.get_logger(__name__)


@dataclass
class StreamMessage:
    """A decoded stream entry."""

    message_id: str
    data: dict[str, Any]


class RedisStreamClient:
    """Job streams with consumer groups, per-key locks and fixed-window rate limits.

    Entries carry a single ``data`` field holding the JSON-encoded DTO.
    """

    def __init__(self, redis_url: str | None = None, client: redis.Redis | None = None):
        """
        Args:
            redis_url: Connection URL, falls back to REDIS_URL.
            client: Ready client to use instead of connecting (fakeredis in tests).
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL")
        if client is None and not self.redis_url:
            raise RuntimeError("Redis URL not provided. Pass redis_url or set REDIS_URL.")
        self._redis: redis.Redis | None = client

    async def connect(self) -> None:
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, decode_responses=True)
            logger.info("redis_connected", redis_url=self.redis_url)

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("redis_connection_closed")

    @property
    def redis(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._redis

    # Streams

    async def publish_message(self, stream: str, message: BaseMessage) -> str:
        """XADD a DTO; returns the entry id."""
        message_id = await self.redis.xadd(stream, {"data": message.model_dump_json()})
        logger.debug("message_published", stream=stream, message_id=message_id)
        return message_id

    async def ensure_consumer_group(self, stream: str, group: str) -> None:
        try:
            await self.redis.xgroup_create(stream, group, id="0", mkstream=True)
            logger.info("consumer_group_created", stream=stream, group=group)
        except redis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
            logger.debug("consumer_group_exists", stream=stream, group=group)

    async def ack(self, stream: str, group: str, message_id: str) -> None:
        await self.redis.xack(stream, group, message_id)
        logger.debug("message_acked", stream=stream, message_id=message_id)

    @staticmethod
    def _decode(message_id: str, fields: dict[str, str]) -> StreamMessage | None:
        try:
            data = json.loads(fields.get("data", "{}"))
        except json.JSONDecodeError as e:
            logger.error("message_parse_failed", message_id=message_id, error=str(e))
            return None
        return StreamMessage(message_id=message_id, data=data)

    async def consume(
        self,
        stream: str,
        group: str,
        consumer: str,
        block_ms: int = 5000,
        count: int = 1,
    ) -> AsyncIterator[StreamMessage | None]:
        """Yield new entries for ``consumer`` in ``group``.

        ``None`` is yielded whenever ``block_ms`` passes with nothing to read.
        An entry is acked when the caller pulls the next item; undecodable
        entries are acked and dropped.
        """
        await self.ensure_consumer_group(stream, group)

        while True:
            try:
                batches = await self.redis.xreadgroup(
                    groupname=group,
                    consumername=consumer,
                    streams={stream: ">"},
                    count=count,
                    block=block_ms,
                )
            except asyncio.CancelledError:
                logger.info("consumer_cancelled", consumer=consumer)
                return
            except redis.RedisError as e:
                logger.error("consume_error", stream=stream, error=str(e))
                await asyncio.sleep(1)
                continue

            if not batches:
                yield None
                continue

            for _stream, entries in batches:
                for message_id, fields in entries:
                    message = self._decode(message_id, fields)
                    if message is not None:
                        yield message
                    await self.ack(stream, group, message_id)

    # Locks and rate limits

    async def acquire_lock(self, key: str, ttl_seconds: int) -> str | None:
        """SET NX with a TTL. Returns the owner token, or None when held elsewhere."""
        token = uuid.uuid4().hex
        if not await self.redis.set(key, token, nx=True, ex=ttl_seconds):
            logger.debug("lock_busy", key=key)
            return None
        return token

    async def release_lock(self, key: str, token: str) -> bool:
        """Delete ``key`` only while ``token`` still owns it."""
        if await self.redis.get(key) != token:
            # expired and taken by someone else
            logger.warning("lock_not_owned", key=key)
            return False
        await self.redis.delete(key)
        return True

    async def hit_rate_limit(self, key: str, limit: int, window_seconds: int) -> bool:
        """Count one hit; True once more than ``limit`` hits landed in the window."""
        count = int(await self.redis.incr(key))
        if count == 1:
            await self.redis.expire(key, window_seconds)
        return count > limit
