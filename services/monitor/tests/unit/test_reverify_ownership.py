"""Tests for the ownership re-verification workflow."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from src.models import Notification, TrackedDomain
from src.models.workflow import RunStatus
from src.workflow.runtime import WorkflowRuntime
from src.workflows import WORKFLOWS

NOW = datetime(2026, 10, 18, 9, 0, tzinfo=UTC)


@pytest.fixture
def runtime(session_maker, deps):
    deps.verification = MagicMock()
    deps.verification.check_stored_method = AsyncMock(return_value=True)
    return WorkflowRuntime(session_maker, WORKFLOWS, deps=deps, sleep=AsyncMock(), clock=lambda: NOW)


async def reverify(runtime, tracked_domain_id):
    return await runtime.run("reverify_ownership", tracked_domain_id, {"tracked_domain_id": tracked_domain_id})


async def load(session_maker, tracked_domain_id) -> TrackedDomain:
    async with session_maker() as session:
        return await session.get(TrackedDomain, tracked_domain_id)


@pytest.mark.asyncio
async def test_proof_present_stays_verified(runtime, deps, seed_domain, session_maker, email_client):
    seeded = await seed_domain(verified=True, method="dns_txt", status="verified")

    run = await reverify(runtime, seeded.tracked_domain_id)

    assert run.result["action"] == "verified"
    assert run.result["verified"] is True
    deps.verification.check_stored_method.assert_awaited_once_with("example.com", "a" * 32, "dns_txt")
    tracked = await load(session_maker, seeded.tracked_domain_id)
    assert tracked.last_verified_at is not None
    email_client.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_first_failure_starts_grace_period(runtime, deps, seed_domain, session_maker, email_client):
    seeded = await seed_domain(verified=True, method="html_file", status="verified")
    deps.verification.check_stored_method.return_value = False

    run = await reverify(runtime, seeded.tracked_domain_id)

    assert run.result["action"] == "marked_failing"
    tracked = await load(session_maker, seeded.tracked_domain_id)
    assert tracked.verification_status == "failing"
    assert tracked.verified is True
    assert tracked.verification_failed_at.replace(tzinfo=UTC) == NOW

    sent = email_client.send.await_args.kwargs
    assert sent["subject"] == "⚠️ Verification failing for example.com"
    assert sent["text"] == (
        "Verification for example.com is failing. "
        "You have 7 days to fix it before access is revoked."
    )
    assert sent["idempotency_key"] == f"{seeded.tracked_domain_id}:verification_failing:2026-10-18"


@pytest.mark.asyncio
async def test_still_failing_inside_grace_period(runtime, deps, seed_domain, session_maker, email_client):
    failed_at = NOW - timedelta(days=3)
    seeded = await seed_domain(verified=True, method="dns_txt", status="failing", failed_at=failed_at)
    deps.verification.check_stored_method.return_value = False

    run = await reverify(runtime, seeded.tracked_domain_id)

    assert run.result["action"] == "in_grace_period"
    tracked = await load(session_maker, seeded.tracked_domain_id)
    assert tracked.verified is True
    assert tracked.verification_status == "failing"
    email_client.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_grace_period_expiry_revokes(runtime, deps, seed_domain, session_maker, email_client):
    failed_at = NOW - timedelta(days=7)
    seeded = await seed_domain(verified=True, method="meta_tag", status="failing", failed_at=failed_at)
    deps.verification.check_stored_method.return_value = False

    run = await reverify(runtime, seeded.tracked_domain_id)

    assert run.result["action"] == "revoked"
    assert run.result["verified"] is False
    tracked = await load(session_maker, seeded.tracked_domain_id)
    assert tracked.verified is False
    assert tracked.verification_status == "unverified"
    assert tracked.verification_method is None
    assert tracked.verification_failed_at is None

    sent = email_client.send.await_args.kwargs
    assert sent["subject"] == "❌ Verification revoked for example.com"
    assert sent["idempotency_key"] == f"{seeded.tracked_domain_id}:verification_revoked:2026-10-11"


@pytest.mark.asyncio
async def test_recovery_during_grace_period_restores(runtime, seed_domain, session_maker, email_client):
    seeded = await seed_domain(
        verified=True, method="dns_txt", status="failing", failed_at=NOW - timedelta(days=2)
    )

    run = await reverify(runtime, seeded.tracked_domain_id)

    assert run.result["action"] == "restored"
    tracked = await load(session_maker, seeded.tracked_domain_id)
    assert tracked.verification_status == "verified"
    assert tracked.verification_failed_at is None
    email_client.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_muted_domain_fails_silently(runtime, deps, seed_domain, session_maker, email_client):
    seeded = await seed_domain(verified=True, method="dns_txt", status="verified", muted=True)
    deps.verification.check_stored_method.return_value = False

    run = await reverify(runtime, seeded.tracked_domain_id)

    assert run.result["action"] == "marked_failing"
    email_client.send.assert_not_awaited()
    async with session_maker() as session:
        assert await session.scalar(select(Notification)) is None


@pytest.mark.asyncio
async def test_unverified_domain_is_skipped(runtime, deps, seed_domain):
    seeded = await seed_domain()

    run = await reverify(runtime, seeded.tracked_domain_id)

    assert run.status == RunStatus.COMPLETED.value
    assert run.result["skipped"] is True
    assert run.result["reason"] == "invalid_state"
    deps.verification.check_stored_method.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_domain_is_skipped(runtime):
    run = await reverify(runtime, "does-not-exist")

    assert run.result == {"skipped": True, "reason": "not_found", "verified": False, "action": None}
