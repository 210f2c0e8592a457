"""Background verification of a freshly added domain.

Sleeps before every attempt following ``auto_verify_delays`` and stops on the
first success, when the domain is deleted or verified elsewhere, or once the
window is used up.
"""

from typing import Literal

from pydantic import BaseModel
import structlog

from src.models.tracked_domain import VerificationMethod
from src.repositories import tracked_domains as tracked_repo
from src.verification.schedule import auto_verify_delays
from src.verification.service import TrackedDomainNotFound
from src.workflow.runtime import WorkflowContext

logger = structlog.get_logger()

DomainStatus = Literal["deleted", "verified", "pending"]


class AutoVerifyResult(BaseModel):
    result: Literal["verified", "cancelled", "exhausted"]
    reason: str | None = None
    method: VerificationMethod | None = None
    attempt: int | None = None


async def domain_status(deps, tracked_domain_id: str) -> DomainStatus:
    async with deps.session_maker() as session:
        info = await tracked_repo.get_info(session, tracked_domain_id)
    if info is None:
        return "deleted"
    return "verified" if info.verified else "pending"


async def attempt_verification(deps, tracked_domain_id: str) -> dict | None:
    """One check with every method; None when the domain disappeared meanwhile."""
    try:
        result = await deps.verification.verify_tracked_domain(tracked_domain_id)
    except TrackedDomainNotFound:
        return None
    return {"verified": result.verified, "method": result.method}


def schedule_for(settings, sweep: bool) -> list[int]:
    if sweep:
        return [0]
    return auto_verify_delays(
        first_delay=settings.auto_verify_first_delay,
        factor=settings.auto_verify_factor,
        max_delay=settings.auto_verify_max_delay,
        window_seconds=settings.auto_verify_window_days * 24 * 60 * 60,
    )


async def auto_verify(ctx: WorkflowContext, tracked_domain_id: str, sweep: bool = False) -> AutoVerifyResult:
    """Retry verification on the backoff schedule.

    Args:
        tracked_domain_id: Domain to verify
        sweep: Single immediate attempt, used by the stale pending-domain sweep
    """
    delays = schedule_for(ctx.deps.settings, sweep)

    for attempt, delay in enumerate(delays, start=1):
        if delay:
            await ctx.sleep(f"attempt-{attempt}", delay)

        status = await ctx.step(f"status-{attempt}", domain_status, ctx.deps, tracked_domain_id)
        if status == "deleted":
            logger.info("auto_verify_cancelled", reason="domain_deleted", attempt=attempt)
            return AutoVerifyResult(result="cancelled", reason="domain_deleted")
        if status == "verified":
            logger.info("auto_verify_cancelled", reason="already_verified", attempt=attempt)
            return AutoVerifyResult(result="cancelled", reason="already_verified")

        outcome = await ctx.step(f"verify-{attempt}", attempt_verification, ctx.deps, tracked_domain_id)
        if outcome is None:
            return AutoVerifyResult(result="cancelled", reason="domain_deleted")
        if outcome["verified"]:
            logger.info("auto_verify_succeeded", attempt=attempt, method=outcome["method"])
            return AutoVerifyResult(result="verified", method=outcome["method"], attempt=attempt)

        logger.debug("auto_verify_attempt_failed", attempt=attempt)

    logger.info("auto_verify_exhausted", attempts=len(delays), sweep=sweep)
    return AutoVerifyResult(result="exhausted", reason="window_expired")
