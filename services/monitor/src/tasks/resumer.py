"""Wakes up sleeping and retry-pending workflow runs."""

import asyncio

import structlog

from shared.redis.client import RedisStreamClient
from src.models.base import ensure_utc
from src.models.workflow import RunStatus
from src.workflow.runtime import WorkflowRuntime

from .consumer import lock_key

logger = structlog.get_logger()

RESUMABLE = {RunStatus.SLEEPING.value, RunStatus.PENDING.value}


async def resume_due_runs(runtime: WorkflowRuntime, redis: RedisStreamClient, lock_ttl: int) -> int:
    """Execute every due run whose domain lock is free; returns how many ran."""
    resumed = 0
    for run_id in await runtime.due_runs():
        run = await runtime.get_run(run_id)
        if run is None:
            continue
        key = lock_key(run.key)
        token = await redis.acquire_lock(key, lock_ttl)
        if token is None:
            continue
        try:
            # Another resumer may have picked it up between the query and the lock
            run = await runtime.get_run(run_id)
            resume_at = ensure_utc(run.resume_at)
            if run.status not in RESUMABLE or resume_at is None or resume_at > runtime.now():
                continue
            logger.info("workflow_run_resuming", run_id=run_id, workflow=run.workflow)
            await runtime.execute(run_id)
            resumed += 1
        finally:
            await redis.release_lock(key, token)
    return resumed


async def resumer_worker(runtime: WorkflowRuntime, redis: RedisStreamClient, lock_ttl: int, interval: int):
    """Poll for due runs every ``interval`` seconds."""
    logger.info("resumer_worker_started", interval_sec=interval)

    while True:
        try:
            resumed = await resume_due_runs(runtime, redis, lock_ttl)
            if resumed:
                logger.info("workflow_runs_resumed", count=resumed)
        except Exception as e:
            logger.error(
                "resumer_worker_error",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

        await asyncio.sleep(interval)
