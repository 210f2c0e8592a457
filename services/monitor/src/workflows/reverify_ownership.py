"""Periodic ownership re-validation with a grace period before revocation."""

from datetime import datetime, timedelta
from typing import Any, Literal

from pydantic import BaseModel
import structlog

from src.models.notification import NotificationType
from src.models.tracked_domain import VerificationMethod, VerificationStatus
from src.notifications.channels import Channels, NotificationCategory
from src.notifications.dispatcher import ComposedNotification, notification_key
from src.repositories import tracked_domains as tracked_repo
from src.workflow.runtime import WorkflowContext

from .notify import dispatch, resolve_user_channels

logger = structlog.get_logger()

ReverifyAction = Literal["verified", "restored", "marked_failing", "in_grace_period", "revoked"]


class OwnershipTarget(BaseModel):
    tracked_domain_id: str
    domain: str
    user_id: str
    user_email: str
    token: str
    method: VerificationMethod | None = None
    verified: bool
    status: VerificationStatus
    failed_at: datetime | None = None
    notification_overrides: dict[str, Any] = {}
    muted: bool = False


class ReverifyResult(BaseModel):
    skipped: bool = False
    reason: str | None = None
    verified: bool = False
    action: ReverifyAction | None = None


async def load_ownership_target(deps, tracked_domain_id: str) -> OwnershipTarget | None:
    async with deps.session_maker() as session:
        info = await tracked_repo.get_info(session, tracked_domain_id)
    if info is None:
        return None
    return OwnershipTarget(
        tracked_domain_id=info.id,
        domain=info.domain_name,
        user_id=info.user_id,
        user_email=info.user_email,
        token=info.verification_token,
        method=info.verification_method,
        verified=info.verified,
        status=info.verification_status,
        failed_at=info.verification_failed_at,
        notification_overrides=info.notification_overrides,
        muted=info.muted,
    )


async def check_ownership(deps, domain: str, token: str, method: VerificationMethod) -> bool:
    return await deps.verification.check_stored_method(domain, token, method)


async def mark_reverified(deps, tracked_domain_id: str, now: datetime) -> bool:
    async with deps.session_maker() as session:
        return await tracked_repo.mark_reverified(session, tracked_domain_id, now)


async def mark_failing(deps, tracked_domain_id: str, now: datetime) -> bool:
    async with deps.session_maker() as session:
        return await tracked_repo.mark_failing(session, tracked_domain_id, now)


async def revoke(deps, tracked_domain_id: str) -> bool:
    async with deps.session_maker() as session:
        return await tracked_repo.revoke(session, tracked_domain_id)


def failing_notification(target: OwnershipTarget, failed_at: datetime, grace_days: int) -> ComposedNotification:
    return ComposedNotification(
        user_id=target.user_id,
        user_email=target.user_email,
        tracked_domain_id=target.tracked_domain_id,
        domain_name=target.domain,
        type=NotificationType.VERIFICATION_FAILING,
        title=f"Verification failing for {target.domain}",
        message=(
            f"Verification for {target.domain} is failing. "
            f"You have {grace_days} days to fix it before access is revoked."
        ),
        idempotency_key=notification_key(
            target.tracked_domain_id, NotificationType.VERIFICATION_FAILING, failed_at.date().isoformat()
        ),
        data={"method": target.method.value if target.method else None, "grace_period_days": grace_days},
    )


def revoked_notification(target: OwnershipTarget, failed_at: datetime) -> ComposedNotification:
    return ComposedNotification(
        user_id=target.user_id,
        user_email=target.user_email,
        tracked_domain_id=target.tracked_domain_id,
        domain_name=target.domain,
        type=NotificationType.VERIFICATION_REVOKED,
        title=f"Verification revoked for {target.domain}",
        message=(
            f"Verification for {target.domain} has been revoked. "
            "The grace period has expired without successful re-verification."
        ),
        idempotency_key=notification_key(
            target.tracked_domain_id, NotificationType.VERIFICATION_REVOKED, failed_at.date().isoformat()
        ),
        data={"method": target.method.value if target.method else None},
    )


async def _notify(ctx: WorkflowContext, prefix: str, target: OwnershipTarget, notification: ComposedNotification) -> bool:
    resolved = await ctx.step(
        f"{prefix}-channels",
        resolve_user_channels,
        ctx.deps,
        target.user_id,
        NotificationCategory.VERIFICATION_STATUS,
        target.notification_overrides,
        target.muted,
    )
    channels = Channels(**resolved)
    if not channels.any:
        logger.info("verification_notification_skipped", type=notification.type.value, reason="no_channels")
        return False
    return await ctx.step(f"{prefix}-send", dispatch, ctx.deps, notification, channels)


async def reverify_ownership(ctx: WorkflowContext, tracked_domain_id: str) -> ReverifyResult:
    """Re-check the stored method and walk verified -> failing -> unverified."""
    loaded = await ctx.step("load-domain", load_ownership_target, ctx.deps, tracked_domain_id)
    if loaded is None:
        return ReverifyResult(skipped=True, reason="not_found")
    target = OwnershipTarget.model_validate(loaded)
    if not target.verified or target.method is None:
        return ReverifyResult(skipped=True, reason="invalid_state")

    owned = await ctx.step(
        "check-ownership", check_ownership, ctx.deps, target.domain, target.token, target.method
    )
    now = await ctx.timestamp("observed-at")

    if owned:
        await ctx.step("mark-verified", mark_reverified, ctx.deps, tracked_domain_id, now)
        if target.status == VerificationStatus.FAILING:
            logger.info("verification_restored", domain=target.domain)
            return ReverifyResult(verified=True, action="restored")
        return ReverifyResult(verified=True, action="verified")

    grace_days = ctx.deps.settings.grace_period_days

    if target.status == VerificationStatus.VERIFIED:
        await ctx.step("mark-failing", mark_failing, ctx.deps, tracked_domain_id, now)
        logger.warning("verification_failing", domain=target.domain, method=target.method.value)
        await _notify(ctx, "failing", target, failing_notification(target, now, grace_days))
        return ReverifyResult(action="marked_failing")

    failed_at = target.failed_at or now
    if now - failed_at >= timedelta(days=grace_days):
        await ctx.step("revoke", revoke, ctx.deps, tracked_domain_id)
        logger.warning("verification_revoked", domain=target.domain, failed_at=failed_at.isoformat())
        await _notify(ctx, "revoked", target, revoked_notification(target, failed_at))
        return ReverifyResult(action="revoked")

    logger.info("verification_in_grace_period", domain=target.domain, failed_at=failed_at.isoformat())
    return ReverifyResult(action="in_grace_period")
