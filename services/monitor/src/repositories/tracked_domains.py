"""Tracked domain queries and verification state transitions.

Every transition is a single conditional UPDATE so concurrent workers
cannot apply it twice.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.base import ensure_utc
from src.models.domain import Domain, User
from src.models.tracked_domain import TrackedDomain, VerificationStatus

from .base import persistence_errors


@dataclass
class TrackedDomainInfo:
    """A tracked domain joined with its domain name and owner."""

    id: str
    domain_id: str
    domain_name: str
    user_id: str
    user_email: str
    user_name: str
    verification_token: str
    verified: bool
    verification_method: str | None
    verification_status: str
    verification_failed_at: datetime | None
    notification_overrides: dict
    archived: bool
    muted: bool


async def get_info(session: AsyncSession, tracked_domain_id: str) -> TrackedDomainInfo | None:
    result = await session.execute(
        select(TrackedDomain, Domain.name, User.email, User.name)
        .join(Domain, Domain.id == TrackedDomain.domain_id)
        .join(User, User.id == TrackedDomain.user_id)
        .where(TrackedDomain.id == tracked_domain_id)
    )
    row = result.first()
    if row is None:
        return None
    tracked, domain_name, user_email, user_name = row
    return TrackedDomainInfo(
        id=tracked.id,
        domain_id=tracked.domain_id,
        domain_name=domain_name,
        user_id=tracked.user_id,
        user_email=user_email,
        user_name=user_name,
        verification_token=tracked.verification_token,
        verified=tracked.verified,
        verification_method=tracked.verification_method,
        verification_status=tracked.verification_status,
        verification_failed_at=ensure_utc(tracked.verification_failed_at),
        notification_overrides=tracked.notification_overrides or {},
        archived=tracked.archived_at is not None,
        muted=tracked.muted_at is not None,
    )


async def _update(session: AsyncSession, operation: str, stmt) -> bool:
    with persistence_errors(operation):
        result = await session.execute(stmt)
        await session.commit()
    return result.rowcount == 1


async def mark_verified(session: AsyncSession, tracked_domain_id: str, method: str, now: datetime) -> bool:
    """False -> True transition; returns False when it was already verified."""
    return await _update(
        session,
        "marking domain verified",
        update(TrackedDomain)
        .where(TrackedDomain.id == tracked_domain_id, TrackedDomain.verified.is_(False))
        .values(
            verified=True,
            verification_method=method,
            verification_status=VerificationStatus.VERIFIED.value,
            verified_at=now,
            last_verified_at=now,
            verification_failed_at=None,
        ),
    )


async def mark_reverified(session: AsyncSession, tracked_domain_id: str, now: datetime) -> bool:
    """Proof found again: back to ``verified`` and forget the failure."""
    return await _update(
        session,
        "marking domain re-verified",
        update(TrackedDomain)
        .where(TrackedDomain.id == tracked_domain_id, TrackedDomain.verified.is_(True))
        .values(
            verification_status=VerificationStatus.VERIFIED.value,
            last_verified_at=now,
            verification_failed_at=None,
        ),
    )


async def mark_failing(session: AsyncSession, tracked_domain_id: str, now: datetime) -> bool:
    """Start the grace period; only the first failure sets the timestamp."""
    return await _update(
        session,
        "marking domain verification failing",
        update(TrackedDomain)
        .where(
            TrackedDomain.id == tracked_domain_id,
            TrackedDomain.verified.is_(True),
            TrackedDomain.verification_status == VerificationStatus.VERIFIED.value,
        )
        .values(verification_status=VerificationStatus.FAILING.value, verification_failed_at=now),
    )


async def revoke(session: AsyncSession, tracked_domain_id: str) -> bool:
    return await _update(
        session,
        "revoking domain verification",
        update(TrackedDomain)
        .where(
            TrackedDomain.id == tracked_domain_id,
            TrackedDomain.verification_status == VerificationStatus.FAILING.value,
        )
        .values(
            verified=False,
            verification_status=VerificationStatus.UNVERIFIED.value,
            verification_method=None,
            verified_at=None,
            verification_failed_at=None,
        ),
    )


async def list_monitored_ids(session: AsyncSession) -> list[str]:
    """Verified, non-archived domains: the change-detection population."""
    result = await session.execute(
        select(TrackedDomain.id).where(
            TrackedDomain.verified.is_(True), TrackedDomain.archived_at.is_(None)
        )
    )
    return list(result.scalars().all())


async def list_verified_ids(session: AsyncSession) -> list[str]:
    result = await session.execute(select(TrackedDomain.id).where(TrackedDomain.verified.is_(True)))
    return list(result.scalars().all())


async def list_stale_pending_ids(session: AsyncSession, created_before: datetime) -> list[str]:
    """Unverified, non-archived domains whose auto-verify window has passed."""
    result = await session.execute(
        select(TrackedDomain.id).where(
            TrackedDomain.verified.is_(False),
            TrackedDomain.archived_at.is_(None),
            TrackedDomain.created_at < created_before,
        )
    )
    return list(result.scalars().all())
