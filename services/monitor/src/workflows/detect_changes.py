"""Change detection for one tracked domain.

Fetches the current facts, diffs them against the baseline per category and
notifies the owner. A category's baseline is only overwritten once its
notification went out, so a change nobody was told about is reported again
on the next run.
"""

import asyncio
from datetime import date

import structlog

from src.change_detection import messages
from src.change_detection.detection import (
    detect_certificate_change,
    detect_provider_change,
    detect_registration_change,
)
from src.change_detection.types import (
    CertificateSnapshot,
    DetectChangesResult,
    ProviderSnapshot,
    RegistrationSnapshot,
)
from src.models.notification import NotificationType
from src.notifications.channels import Channels, NotificationCategory
from src.notifications.dispatcher import ComposedNotification, notification_key
from src.workflow.errors import SNAPSHOT_NOT_FOUND
from src.workflow.runtime import WorkflowContext

from .notify import dispatch, resolve_user_channels
from .observe import (
    Target,
    commit_baseline,
    commit_certificate,
    commit_providers,
    commit_registration,
    load_target,
    observe,
    provider_names,
)

logger = structlog.get_logger()

BASELINE_INITIALIZED = "baseline_initialized"


async def _channels(ctx: WorkflowContext, prefix: str, target: Target, category: NotificationCategory) -> Channels:
    resolved = await ctx.step(
        f"{prefix}-channels",
        resolve_user_channels,
        ctx.deps,
        target.user_id,
        category,
        target.notification_overrides,
        target.muted,
    )
    channels = Channels(**resolved)
    if not channels.any:
        logger.info("change_notification_skipped", category=category.value, reason="no_channels")
    return channels


async def _send(
    ctx: WorkflowContext,
    prefix: str,
    target: Target,
    channels: Channels,
    type: NotificationType,
    label: str,
    details: list[str],
    fallback: str,
    change,
    observed_on: date,
) -> bool:
    notification = ComposedNotification(
        user_id=target.user_id,
        user_email=target.user_email,
        tracked_domain_id=target.tracked_domain_id,
        domain_name=target.domain,
        type=type,
        title=messages.compose_title(label, target.domain),
        message=messages.compose_message(details, fallback),
        idempotency_key=notification_key(
            target.tracked_domain_id, type, messages.change_bucket(change, ctx.run_id, observed_on)
        ),
        data=change.model_dump(mode="json"),
    )
    return await ctx.step(f"{prefix}-send", dispatch, ctx.deps, notification, channels)


async def _registration(
    ctx: WorkflowContext, target: Target, current: RegistrationSnapshot | None, observed_on: date
) -> bool:
    if current is None:
        return False
    change = detect_registration_change(target.registration, current)
    if change is None:
        return False
    logger.info(
        "registration_change_detected",
        registrar_changed=change.registrar_changed,
        nameservers_changed=change.nameservers_changed,
        transfer_lock_changed=change.transfer_lock_changed,
        statuses_changed=change.statuses_changed,
    )

    channels = await _channels(ctx, "registration", target, NotificationCategory.REGISTRATION_CHANGES)
    if not channels.any:
        return False

    names = await ctx.step(
        "registration-names",
        provider_names,
        ctx.deps,
        [change.previous.registrar_provider_id, current.registrar_provider_id],
    )
    sent = await _send(
        ctx,
        "registration",
        target,
        channels,
        NotificationType.REGISTRATION_CHANGE,
        messages.registration_label(change),
        messages.registration_details(change, names),
        f"Registration details updated for {target.domain}.",
        change,
        observed_on,
    )
    if sent:
        await ctx.step("registration-commit", commit_registration, ctx.deps, target.tracked_domain_id, current)
    return sent


async def _providers(
    ctx: WorkflowContext, target: Target, current: ProviderSnapshot | None, observed_on: date
) -> bool:
    if current is None:
        return False
    change = detect_provider_change(target.providers, current)
    if change is None:
        return False
    logger.info(
        "provider_change_detected",
        dns_changed=change.dns_changed,
        hosting_changed=change.hosting_changed,
        email_changed=change.email_changed,
    )

    channels = await _channels(ctx, "providers", target, NotificationCategory.PROVIDER_CHANGES)
    if not channels.any:
        return False

    previous = change.previous
    names = await ctx.step(
        "providers-names",
        provider_names,
        ctx.deps,
        [
            previous.dns_provider_id,
            previous.hosting_provider_id,
            previous.email_provider_id,
            current.dns_provider_id,
            current.hosting_provider_id,
            current.email_provider_id,
        ],
    )
    sent = await _send(
        ctx,
        "providers",
        target,
        channels,
        NotificationType.PROVIDER_CHANGE,
        messages.provider_label(change),
        messages.provider_details(change, names),
        f"Provider configuration updated for {target.domain}.",
        change,
        observed_on,
    )
    if sent:
        await ctx.step("providers-commit", commit_providers, ctx.deps, target.tracked_domain_id, current)
    return sent


async def _certificate(
    ctx: WorkflowContext, target: Target, current: CertificateSnapshot | None, observed_on: date
) -> bool:
    if current is None:
        return False
    change = detect_certificate_change(target.certificate, current)
    if change is None:
        return False
    logger.info(
        "certificate_change_detected",
        ca_changed=change.ca_changed,
        issuer_changed=change.issuer_changed,
        valid_to_changed=change.valid_to_changed,
    )

    channels = await _channels(ctx, "certificate", target, NotificationCategory.CERTIFICATE_CHANGES)
    if not channels.any:
        return False

    names = await ctx.step(
        "certificate-names",
        provider_names,
        ctx.deps,
        [change.previous.ca_provider_id, current.ca_provider_id],
    )
    sent = await _send(
        ctx,
        "certificate",
        target,
        channels,
        NotificationType.CERTIFICATE_CHANGE,
        messages.certificate_label(change),
        messages.certificate_details(change, names),
        f"Certificate updated for {target.domain}.",
        change,
        observed_on,
    )
    if sent:
        await ctx.step("certificate-commit", commit_certificate, ctx.deps, target.tracked_domain_id, current)
    return sent


async def detect_changes(ctx: WorkflowContext, tracked_domain_id: str) -> DetectChangesResult:
    """Detect and notify registration, provider and certificate changes."""
    loaded = await ctx.step("load-target", load_target, ctx.deps, tracked_domain_id)
    if loaded is None:
        logger.info("detect_changes_skipped", reason=SNAPSHOT_NOT_FOUND)
        return DetectChangesResult(skipped=True, reason=SNAPSHOT_NOT_FOUND)
    target = Target.model_validate(loaded)

    observation = await observe(ctx, target)

    if not target.initialized:
        # Nothing to compare against yet: record what we see without notifying
        await commit_baseline(ctx, target, observation)
        return DetectChangesResult(reason=BASELINE_INITIALIZED)

    observed_on = observation.observed_at.date()
    outcomes = await asyncio.gather(
        _registration(ctx, target, observation.registration, observed_on),
        _providers(ctx, target, observation.providers, observed_on),
        _certificate(ctx, target, observation.certificate, observed_on),
        return_exceptions=True,
    )
    # All three pipelines have settled before a failure reaches the runtime
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome
    registration, providers, certificate = outcomes

    result = DetectChangesResult(
        registration_changes=registration,
        provider_changes=providers,
        certificate_changes=certificate,
    )
    logger.info("detect_changes_completed", **result.model_dump(exclude={"skipped", "reason"}))
    return result
