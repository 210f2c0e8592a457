"""Monitor service entry point.

Runs all background workers:
- Job consumers: one per monitor stream, executing workflow runs
- Resumer: wakes sleeping and retry-pending runs
- Sweeps: enqueue change detection, re-verification and stale pending checks

Run standalone: python -m src.main
"""

import asyncio
from functools import partial

import structlog

from shared.contracts.queues.monitor import JOB_FOR_STREAM
from shared.logging import setup_logging
from shared.redis.client import RedisStreamClient

from .config import get_settings
from .db import get_session_maker
from .dependencies import build_deps
from .tasks.consumer import JobConsumer
from .tasks.resumer import resumer_worker
from .tasks.sweeps import enqueue_monitoring, enqueue_reverification, enqueue_stale_pending, periodic
from .workflow.runtime import RetryPolicy, WorkflowRuntime
from .workflows import WORKFLOWS

logger = structlog.get_logger()


async def main():
    """Run all background workers concurrently."""
    settings = get_settings()
    setup_logging(
        service_name=settings.service_name,
        log_format=settings.log_format,
        log_level=settings.log_level,
    )
    logger.info("monitor_service_starting", streams=list(JOB_FOR_STREAM))

    redis = RedisStreamClient(settings.redis_url)
    await redis.connect()
    session_maker = get_session_maker()
    deps = build_deps(settings, session_maker, redis)

    runtime = WorkflowRuntime(
        session_maker,
        WORKFLOWS,
        deps=deps,
        retry_policy=RetryPolicy(
            max_attempts=settings.step_max_attempts,
            base=settings.step_backoff_base,
            max_delay=settings.step_backoff_max,
        ),
        max_run_attempts=settings.max_run_attempts,
    )
    consumer = JobConsumer(
        runtime,
        redis,
        lock_ttl=settings.run_lock_ttl,
        max_concurrent_runs=settings.max_concurrent_runs,
    )

    tasks = [
        asyncio.create_task(consumer.consume(stream), name=f"consumer:{stream}")
        for stream in JOB_FOR_STREAM
    ]
    tasks += [
        asyncio.create_task(
            resumer_worker(runtime, redis, settings.run_lock_ttl, settings.resume_poll_interval),
            name="resumer",
        ),
        asyncio.create_task(
            periodic(
                "monitoring",
                settings.monitor_interval,
                partial(enqueue_monitoring, session_maker, redis),
            ),
            name="monitoring_sweep",
        ),
        asyncio.create_task(
            periodic(
                "reverification",
                settings.reverify_interval,
                partial(enqueue_reverification, session_maker, redis),
            ),
            name="reverify_sweep",
        ),
        asyncio.create_task(
            periodic(
                "pending_verification",
                settings.pending_sweep_interval,
                partial(
                    enqueue_stale_pending, session_maker, redis, settings.auto_verify_window_days
                ),
            ),
            name="pending_sweep",
        ),
    ]

    try:
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        logger.info("monitor_shutdown_requested")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await consumer.drain()
    except Exception as e:
        logger.error("monitor_service_error", error=str(e), exc_info=True)
        raise
    finally:
        await deps.aclose()
        await redis.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("monitor_stopped_by_user")
