"""Durable workflow runtime.

A run is a coroutine ``fn(ctx, **input)``. Every side effect goes through
``ctx.step(name, fn)``: the first execution stores the JSON result in
``workflow_steps`` and any later execution of the same run (after a crash,
a run retry or a durable sleep) replays the cached value instead of
re-running the side effect.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from pydantic_core import to_jsonable_python
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from shared.logging import bound_context
from src.models.base import ensure_utc, utcnow
from src.models.workflow import RunStatus, WorkflowRun, WorkflowStep
from src.repositories.base import dialect_insert, persistence_errors

from .errors import FatalError, PersistenceError, RetryableError

logger = structlog.get_logger()

WorkflowFn = Callable[..., Awaitable[Any]]

TERMINAL_STATUSES = {RunStatus.COMPLETED.value, RunStatus.FAILED.value}

_MISSING = object()


class Suspended(Exception):
    """Raised by ``ctx.sleep`` to park the run until ``resume_at``."""

    def __init__(self, resume_at: datetime):
        super().__init__(f"suspended until {resume_at.isoformat()}")
        self.resume_at = resume_at


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for step retries."""

    max_attempts: int = 3
    base: float = 1.0
    factor: float = 2.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return min(self.base * self.factor ** (attempt - 1), self.max_delay)


class WorkflowContext:
    """Per-run handle passed to workflow functions."""

    def __init__(
        self,
        run_id: str,
        workflow: str,
        key: str,
        session_maker: async_sessionmaker[AsyncSession],
        deps: Any,
        retry_policy: RetryPolicy,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.run_id = run_id
        self.workflow = workflow
        self.key = key
        self.deps = deps
        self._session_maker = session_maker
        self._retry_policy = retry_policy
        self._sleep = sleep
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    async def timestamp(self, name: str) -> datetime:
        """Clock reading stored as step ``name``; a replay returns the first reading."""
        return datetime.fromisoformat(await self.step(name, self._read_clock))

    async def _read_clock(self) -> datetime:
        return self._clock()

    async def step(self, name: str, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run ``fn`` once per run and cache its JSON-serializable result.

        Retries ``RetryableError`` and timeouts with exponential backoff;
        ``FatalError`` and ``PersistenceError`` propagate immediately.
        The returned value is always the JSON form, on first execution and
        on replay alike.
        """
        cached = await self._load_step(name)
        if cached is not _MISSING:
            logger.debug("step_replayed", step=name)
            return cached

        attempt = 0
        while True:
            attempt += 1
            try:
                value = await fn(*args, **kwargs)
                break
            except (FatalError, PersistenceError):
                logger.warning("step_failed", step=name, attempt=attempt)
                raise
            except (RetryableError, TimeoutError) as e:
                if attempt >= self._retry_policy.max_attempts:
                    logger.error(
                        "step_retries_exhausted",
                        step=name,
                        attempts=attempt,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise
                delay = getattr(e, "retry_after", None) or self._retry_policy.delay(attempt)
                logger.warning(
                    "step_retrying",
                    step=name,
                    attempt=attempt,
                    delay_seconds=delay,
                    error=str(e),
                )
                await self._sleep(delay)

        stored = to_jsonable_python(value)
        await self._save_step(name, stored, attempt)
        logger.debug("step_completed", step=name, attempts=attempt)
        return stored

    async def sleep(self, name: str, seconds: float) -> None:
        """Durable sleep: park the run and let the resumer wake it up later."""
        step_name = f"sleep:{name}"
        cached = await self._load_step(step_name)
        if cached is _MISSING:
            wake_at = self._clock() + timedelta(seconds=seconds)
            await self._save_step(step_name, wake_at.isoformat(), 1)
        else:
            wake_at = datetime.fromisoformat(cached)

        if self._clock() >= wake_at:
            return
        raise Suspended(wake_at)

    async def _load_step(self, name: str) -> Any:
        async with self._session_maker() as session:
            result = await session.execute(
                select(WorkflowStep.output).where(
                    WorkflowStep.run_id == self.run_id, WorkflowStep.name == name
                )
            )
            output = result.scalar_one_or_none()
        if output is None:
            return _MISSING
        return output["value"]

    async def _save_step(self, name: str, value: Any, attempts: int) -> None:
        with persistence_errors(f"saving step {name}"):
            async with self._session_maker() as session:
                stmt = (
                    dialect_insert(session, WorkflowStep)
                    .values(run_id=self.run_id, name=name, output={"value": value}, attempts=attempts)
                    .on_conflict_do_nothing(index_elements=["run_id", "name"])
                )
                await session.execute(stmt)
                await session.commit()


class WorkflowRuntime:
    """Starts, executes and resumes workflow runs."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        workflows: dict[str, WorkflowFn],
        deps: Any = None,
        retry_policy: RetryPolicy | None = None,
        max_run_attempts: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_maker = session_maker
        self._workflows = workflows
        self.deps = deps
        self._retry_policy = retry_policy or RetryPolicy()
        self._max_run_attempts = max_run_attempts
        self._sleep = sleep
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    async def start(self, workflow: str, key: str, input: dict[str, Any]) -> str:
        """Record a new pending run and return its id."""
        if workflow not in self._workflows:
            raise ValueError(f"Unknown workflow: {workflow}")
        async with self._session_maker() as session:
            run = WorkflowRun(workflow=workflow, key=key, input=input)
            session.add(run)
            await session.commit()
            logger.info("workflow_run_created", run_id=run.id, workflow=workflow, key=key)
            return run.id

    async def run(self, workflow: str, key: str, input: dict[str, Any]) -> WorkflowRun:
        """Start a run and execute it immediately."""
        run_id = await self.start(workflow, key, input)
        return await self.execute(run_id)

    async def execute(self, run_id: str) -> WorkflowRun | None:
        """Execute (or resume) a run until it completes, fails or sleeps."""
        async with self._session_maker() as session:
            run = await session.get(WorkflowRun, run_id)
            if run is None:
                logger.warning("workflow_run_not_found", run_id=run_id)
                return None
            if run.status in TERMINAL_STATUSES:
                return run
            run.status = RunStatus.RUNNING.value
            run.attempts += 1
            run.resume_at = None
            await session.commit()
            workflow, key, input, attempt = run.workflow, run.key, dict(run.input), run.attempts

        ctx = WorkflowContext(
            run_id=run_id,
            workflow=workflow,
            key=key,
            session_maker=self._session_maker,
            deps=self.deps,
            retry_policy=self._retry_policy,
            sleep=self._sleep,
            clock=self._clock,
        )

        with bound_context(run_id=run_id, workflow=workflow, tracked_domain_id=key):
            logger.info("workflow_run_started", attempt=attempt)
            try:
                result = await self._workflows[workflow](ctx, **input)
            except Suspended as s:
                logger.info("workflow_run_sleeping", resume_at=s.resume_at.isoformat())
                return await self._update(run_id, status=RunStatus.SLEEPING, resume_at=s.resume_at)
            except FatalError as e:
                logger.error("workflow_run_failed", error=str(e), error_code=e.code)
                return await self._update(
                    run_id, status=RunStatus.FAILED, error=str(e), finished_at=self._clock()
                )
            except Exception as e:
                return await self._handle_retry(run_id, attempt, e)

            logger.info("workflow_run_completed")
            return await self._update(
                run_id,
                status=RunStatus.COMPLETED,
                result=to_jsonable_python(result),
                error=None,
                finished_at=self._clock(),
            )

    async def due_runs(self, limit: int = 100) -> list[str]:
        """Ids of sleeping or retry-pending runs whose wake-up time has passed."""
        async with self._session_maker() as session:
            result = await session.execute(
                select(WorkflowRun.id)
                .where(
                    WorkflowRun.status.in_([RunStatus.SLEEPING.value, RunStatus.PENDING.value]),
                    WorkflowRun.resume_at.is_not(None),
                    WorkflowRun.resume_at <= self._clock(),
                )
                .order_by(WorkflowRun.resume_at)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def parked_run(self, workflow: str, key: str) -> str | None:
        """Id of a sleeping or retry-pending run of ``workflow`` for ``key``.

        Such a run is woken by the resumer, so a new job for the same pair
        must not start a second one.
        """
        async with self._session_maker() as session:
            result = await session.execute(
                select(WorkflowRun.id)
                .where(
                    WorkflowRun.workflow == workflow,
                    WorkflowRun.key == key,
                    WorkflowRun.status.in_([RunStatus.SLEEPING.value, RunStatus.PENDING.value]),
                    WorkflowRun.resume_at.is_not(None),
                )
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        async with self._session_maker() as session:
            return await session.get(WorkflowRun, run_id)

    async def _handle_retry(self, run_id: str, attempt: int, error: Exception) -> WorkflowRun:
        if attempt >= self._max_run_attempts:
            logger.error(
                "workflow_run_abandoned",
                attempts=attempt,
                error=str(error),
                error_type=type(error).__name__,
            )
            return await self._update(
                run_id, status=RunStatus.FAILED, error=str(error), finished_at=self._clock()
            )

        resume_at = self._clock() + timedelta(seconds=self._retry_policy.delay(attempt))
        logger.warning(
            "workflow_run_retry_scheduled",
            attempt=attempt,
            resume_at=resume_at.isoformat(),
            error=str(error),
            error_type=type(error).__name__,
        )
        return await self._update(
            run_id, status=RunStatus.PENDING, error=str(error), resume_at=resume_at
        )

    async def _update(self, run_id: str, status: RunStatus, **fields: Any) -> WorkflowRun:
        async with self._session_maker() as session:
            run = await session.get(WorkflowRun, run_id)
            run.status = status.value
            for name, value in fields.items():
                setattr(run, name, value)
            await session.commit()
            run.resume_at = ensure_utc(run.resume_at)
            return run
