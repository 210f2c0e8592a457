"""Periodic sweeps that enqueue workflow jobs.

- Monitoring: a detect-changes job per verified, non-archived domain
- Re-verification: a reverify job per verified domain
- Pending domains: one immediate auto-verify attempt for unverified domains
  whose auto-verify window is over
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from shared.contracts.queues.monitor import (
    AUTO_VERIFY_STREAM,
    DETECT_CHANGES_STREAM,
    REVERIFY_STREAM,
    AutoVerifyJob,
    DetectChangesJob,
    ReverifyJob,
)
from shared.redis.client import RedisStreamClient
from src.models.base import utcnow
from src.repositories import tracked_domains as tracked_repo

logger = structlog.get_logger()


async def enqueue_monitoring(
    session_maker: async_sessionmaker[AsyncSession], redis: RedisStreamClient
) -> int:
    async with session_maker() as session:
        ids = await tracked_repo.list_monitored_ids(session)
    for tracked_domain_id in ids:
        await redis.publish_message(
            DETECT_CHANGES_STREAM, DetectChangesJob(tracked_domain_id=tracked_domain_id)
        )
    logger.info("monitoring_jobs_enqueued", count=len(ids))
    return len(ids)


async def enqueue_reverification(
    session_maker: async_sessionmaker[AsyncSession], redis: RedisStreamClient
) -> int:
    async with session_maker() as session:
        ids = await tracked_repo.list_verified_ids(session)
    for tracked_domain_id in ids:
        await redis.publish_message(REVERIFY_STREAM, ReverifyJob(tracked_domain_id=tracked_domain_id))
    logger.info("reverify_jobs_enqueued", count=len(ids))
    return len(ids)


async def enqueue_stale_pending(
    session_maker: async_sessionmaker[AsyncSession],
    redis: RedisStreamClient,
    window_days: int,
    now: datetime | None = None,
) -> int:
    created_before = (now or utcnow()) - timedelta(days=window_days)
    async with session_maker() as session:
        ids = await tracked_repo.list_stale_pending_ids(session, created_before)
    for tracked_domain_id in ids:
        await redis.publish_message(
            AUTO_VERIFY_STREAM, AutoVerifyJob(tracked_domain_id=tracked_domain_id, sweep=True)
        )
    logger.info("pending_verification_jobs_enqueued", count=len(ids))
    return len(ids)


async def periodic(name: str, interval: int, sweep: Callable[[], Awaitable[int]]):
    """Run ``sweep`` every ``interval`` seconds, logging and surviving its errors."""
    logger.info("sweep_worker_started", sweep=name, interval_sec=interval)

    while True:
        try:
            await sweep()
        except Exception as e:
            logger.error(
                "sweep_worker_error",
                sweep=name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

        await asyncio.sleep(interval)
