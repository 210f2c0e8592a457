"""Baseline snapshot persistence.

Each category is overwritten by its own single-statement update so that
committing one category never touches another.
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.change_detection.types import CertificateSnapshot, ProviderSnapshot, RegistrationSnapshot
from src.models.snapshot import DomainSnapshot

from .base import dialect_insert, persistence_errors


async def get(session: AsyncSession, tracked_domain_id: str) -> DomainSnapshot | None:
    result = await session.execute(
        select(DomainSnapshot).where(DomainSnapshot.tracked_domain_id == tracked_domain_id)
    )
    return result.scalar_one_or_none()


async def ensure_empty(session: AsyncSession, tracked_domain_id: str) -> None:
    """Create the empty baseline if the domain has none yet."""
    with persistence_errors("creating snapshot"):
        await session.execute(
            dialect_insert(session, DomainSnapshot)
            .values(tracked_domain_id=tracked_domain_id, registration={}, certificate={})
            .on_conflict_do_nothing(index_elements=["tracked_domain_id"])
        )
        await session.commit()


async def _update(session: AsyncSession, tracked_domain_id: str, operation: str, **values) -> None:
    with persistence_errors(operation):
        await session.execute(
            update(DomainSnapshot)
            .where(DomainSnapshot.tracked_domain_id == tracked_domain_id)
            .values(**values)
        )
        await session.commit()


async def save_registration(session: AsyncSession, tracked_domain_id: str, value: RegistrationSnapshot) -> None:
    await _update(
        session, tracked_domain_id, "updating registration snapshot",
        registration=value.model_dump(mode="json"),
    )


async def save_providers(session: AsyncSession, tracked_domain_id: str, value: ProviderSnapshot) -> None:
    await _update(
        session, tracked_domain_id, "updating provider snapshot",
        dns_provider_id=value.dns_provider_id,
        hosting_provider_id=value.hosting_provider_id,
        email_provider_id=value.email_provider_id,
    )


async def save_certificate(session: AsyncSession, tracked_domain_id: str, value: CertificateSnapshot) -> None:
    await _update(
        session, tracked_domain_id, "updating certificate snapshot",
        certificate=value.model_dump(mode="json"),
    )


async def mark_initialized(session: AsyncSession, tracked_domain_id: str, now: datetime) -> None:
    await _update(session, tracked_domain_id, "marking snapshot initialized", initialized_at=now)
