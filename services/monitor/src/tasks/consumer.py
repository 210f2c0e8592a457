"""Job consumer: Redis stream message -> workflow run.

At most one run per tracked domain executes at a time. A job arriving while
the domain lock is held is dropped and the scheduled sweeps enqueue it again
later; a job whose workflow already has a parked run for the domain is dropped
and the resumer finishes that run.
"""

import asyncio
import os

from pydantic import ValidationError
import structlog

from shared.contracts.queues.monitor import JOB_FOR_STREAM, MONITOR_GROUP, MonitorJob
from shared.logging import bound_context
from shared.redis.client import RedisStreamClient
from src.models.workflow import WorkflowRun
from src.workflow.runtime import WorkflowRuntime

logger = structlog.get_logger()

LOCK_KEY = "monitor:lock:{tracked_domain_id}"


def lock_key(tracked_domain_id: str) -> str:
    return LOCK_KEY.format(tracked_domain_id=tracked_domain_id)


class JobConsumer:
    def __init__(
        self,
        runtime: WorkflowRuntime,
        redis: RedisStreamClient,
        lock_ttl: int = 15 * 60,
        max_concurrent_runs: int = 10,
        consumer_name: str | None = None,
    ):
        self.runtime = runtime
        self.redis = redis
        self.lock_ttl = lock_ttl
        self.consumer_name = consumer_name or f"monitor-{os.getpid()}"
        self._semaphore = asyncio.Semaphore(max_concurrent_runs)
        self._tasks: set[asyncio.Task] = set()

    def parse(self, stream: str, data: dict) -> MonitorJob | None:
        try:
            return JOB_FOR_STREAM[stream].model_validate(data)
        except ValidationError as e:
            logger.error("job_invalid", stream=stream, error=str(e))
            return None

    async def handle(self, job: MonitorJob) -> WorkflowRun | None:
        """Run the job's workflow under the per-domain lock."""
        key = lock_key(job.tracked_domain_id)
        token = await self.redis.acquire_lock(key, self.lock_ttl)
        if token is None:
            logger.info(
                "job_skipped_locked", workflow=job.workflow, tracked_domain_id=job.tracked_domain_id
            )
            return None

        try:
            parked = await self.runtime.parked_run(job.workflow, job.tracked_domain_id)
            if parked is not None:
                logger.info(
                    "job_skipped_parked_run",
                    workflow=job.workflow,
                    tracked_domain_id=job.tracked_domain_id,
                    run_id=parked,
                )
                return None
            with bound_context(correlation_id=job.correlation_id):
                return await self.runtime.run(
                    job.workflow, job.tracked_domain_id, job.workflow_input()
                )
        finally:
            await self.redis.release_lock(key, token)

    async def _handle_bounded(self, job: MonitorJob) -> None:
        try:
            await self.handle(job)
        except Exception as e:
            logger.error(
                "job_processing_error",
                workflow=job.workflow,
                tracked_domain_id=job.tracked_domain_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
        finally:
            self._semaphore.release()

    async def consume(self, stream: str) -> None:
        """Consume one stream forever, running up to ``max_concurrent_runs`` jobs at once."""
        logger.info("job_consumer_started", stream=stream, consumer=self.consumer_name)
        async for message in self.redis.consume(stream, MONITOR_GROUP, self.consumer_name):
            if message is None:
                continue
            job = self.parse(stream, message.data)
            if job is None:
                continue

            await self._semaphore.acquire()
            task = asyncio.create_task(self._handle_bounded(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
