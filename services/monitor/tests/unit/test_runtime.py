"""Unit tests for the durable workflow runtime."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from src.models.workflow import RunStatus, WorkflowStep
from src.workflow.errors import FatalError, PersistenceError, RetryableError
from src.workflow.runtime import RetryPolicy, WorkflowRuntime


class Clock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock(datetime(2026, 10, 18, 12, 0, tzinfo=UTC))


@pytest.fixture
def no_sleep():
    return AsyncMock()


def make_runtime(session_maker, workflows, clock, no_sleep, **kwargs) -> WorkflowRuntime:
    return WorkflowRuntime(
        session_maker,
        workflows,
        deps=kwargs.pop("deps", None),
        sleep=no_sleep,
        clock=clock,
        **kwargs,
    )


def test_retry_policy_backoff():
    policy = RetryPolicy(base=1, factor=2, max_delay=30)
    assert [policy.delay(n) for n in (1, 2, 3, 6, 10)] == [1, 2, 4, 30, 30]


@pytest.mark.asyncio
async def test_completed_steps_are_replayed_not_rerun(session_maker, clock, no_sleep):
    side_effect = AsyncMock(return_value={"answer": 42})
    calls = {"n": 0}

    async def workflow(ctx, tracked_domain_id):
        value = await ctx.step("side-effect", side_effect)
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("crash after the step")
        return value

    runtime = make_runtime(session_maker, {"wf": workflow}, clock, no_sleep)
    run = await runtime.run("wf", "td-1", {"tracked_domain_id": "td-1"})
    assert run.status == RunStatus.PENDING.value
    assert run.resume_at == clock() + timedelta(seconds=1)

    clock.advance(seconds=5)
    assert await runtime.due_runs() == [run.id]
    run = await runtime.execute(run.id)

    assert run.status == RunStatus.COMPLETED.value
    assert run.result == {"answer": 42}
    assert side_effect.await_count == 1


@pytest.mark.asyncio
async def test_timestamp_is_stable_across_replays(session_maker, clock, no_sleep):
    readings = []

    async def workflow(ctx, tracked_domain_id):
        readings.append(await ctx.timestamp("observed-at"))
        if len(readings) == 1:
            raise RuntimeError("crash after reading the clock")
        return readings[-1].isoformat()

    runtime = make_runtime(session_maker, {"wf": workflow}, clock, no_sleep)
    run = await runtime.run("wf", "td-1", {"tracked_domain_id": "td-1"})

    clock.advance(minutes=5)
    run = await runtime.execute(run.id)

    assert run.status == RunStatus.COMPLETED.value
    assert readings[0] == readings[1] == datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_retryable_step_is_retried_with_backoff(session_maker, clock, no_sleep):
    flaky = AsyncMock(side_effect=[RetryableError("503"), TimeoutError(), "ok"])

    async def workflow(ctx, tracked_domain_id):
        return await ctx.step("flaky", flaky)

    runtime = make_runtime(session_maker, {"wf": workflow}, clock, no_sleep)
    run = await runtime.run("wf", "td-1", {"tracked_domain_id": "td-1"})

    assert run.status == RunStatus.COMPLETED.value
    assert run.result == "ok"
    assert flaky.await_count == 3
    assert [c.args[0] for c in no_sleep.await_args_list] == [1, 2]

    async with session_maker() as session:
        step = await session.scalar(select(WorkflowStep).where(WorkflowStep.name == "flaky"))
    assert step.attempts == 3


@pytest.mark.asyncio
async def test_retry_after_hint_overrides_backoff(session_maker, clock, no_sleep):
    flaky = AsyncMock(side_effect=[RetryableError("rate limited", retry_after=7), "ok"])

    async def workflow(ctx, tracked_domain_id):
        return await ctx.step("flaky", flaky)

    runtime = make_runtime(session_maker, {"wf": workflow}, clock, no_sleep)
    await runtime.run("wf", "td-1", {"tracked_domain_id": "td-1"})

    no_sleep.assert_awaited_once_with(7)


@pytest.mark.asyncio
async def test_fatal_error_fails_run_without_step_retry(session_maker, clock, no_sleep):
    broken = AsyncMock(side_effect=FatalError("nxdomain", code="dns_error"))

    async def workflow(ctx, tracked_domain_id):
        return await ctx.step("broken", broken)

    runtime = make_runtime(session_maker, {"wf": workflow}, clock, no_sleep)
    run = await runtime.run("wf", "td-1", {"tracked_domain_id": "td-1"})

    assert run.status == RunStatus.FAILED.value
    assert "nxdomain" in run.error
    assert broken.await_count == 1
    no_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_persistence_error_is_not_retried_by_step_but_by_run(session_maker, clock, no_sleep):
    failing_write = AsyncMock(side_effect=PersistenceError("disk full"))

    async def workflow(ctx, tracked_domain_id):
        return await ctx.step("write", failing_write)

    runtime = make_runtime(session_maker, {"wf": workflow}, clock, no_sleep, max_run_attempts=2)
    run = await runtime.run("wf", "td-1", {"tracked_domain_id": "td-1"})
    assert failing_write.await_count == 1
    assert run.status == RunStatus.PENDING.value

    clock.advance(minutes=1)
    run = await runtime.execute(run.id)

    assert run.status == RunStatus.FAILED.value
    assert run.attempts == 2


@pytest.mark.asyncio
async def test_durable_sleep_suspends_and_resumes(session_maker, clock, no_sleep):
    before = AsyncMock(return_value=1)
    after = AsyncMock(return_value=2)

    async def workflow(ctx, tracked_domain_id):
        first = await ctx.step("before", before)
        await ctx.sleep("nap", 3600)
        second = await ctx.step("after", after)
        return first + second

    runtime = make_runtime(session_maker, {"wf": workflow}, clock, no_sleep)
    run = await runtime.run("wf", "td-1", {"tracked_domain_id": "td-1"})

    assert run.status == RunStatus.SLEEPING.value
    assert run.resume_at == clock() + timedelta(hours=1)
    assert await runtime.due_runs() == []

    clock.advance(minutes=59)
    run = await runtime.execute(run.id)
    assert run.status == RunStatus.SLEEPING.value

    clock.advance(minutes=1)
    assert await runtime.due_runs() == [run.id]
    run = await runtime.execute(run.id)

    assert run.status == RunStatus.COMPLETED.value
    assert run.result == 3
    assert before.await_count == 1
    assert after.await_count == 1


@pytest.mark.asyncio
async def test_completed_run_is_not_executed_again(session_maker, clock, no_sleep):
    work = AsyncMock(return_value=None)

    async def workflow(ctx, tracked_domain_id):
        return await ctx.step("work", work)

    runtime = make_runtime(session_maker, {"wf": workflow}, clock, no_sleep)
    run = await runtime.run("wf", "td-1", {"tracked_domain_id": "td-1"})
    again = await runtime.execute(run.id)

    assert again.status == RunStatus.COMPLETED.value
    assert again.attempts == 1
    assert work.await_count == 1


@pytest.mark.asyncio
async def test_unknown_workflow_is_rejected(session_maker, clock, no_sleep):
    runtime = make_runtime(session_maker, {}, clock, no_sleep)

    with pytest.raises(ValueError):
        await runtime.start("nope", "td-1", {})
