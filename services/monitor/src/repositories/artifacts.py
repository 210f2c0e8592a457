"""Raw fetched facts, one row per (domain, kind)."""

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.artifact import ArtifactKind, DomainArtifact

from .base import dialect_insert, persistence_errors


async def upsert(
    session: AsyncSession,
    domain_id: str,
    kind: ArtifactKind,
    payload: dict[str, Any],
    fetched_at: datetime,
) -> None:
    with persistence_errors(f"persisting {kind.value} artifact"):
        stmt = dialect_insert(session, DomainArtifact).values(
            domain_id=domain_id, kind=kind.value, payload=payload, fetched_at=fetched_at
        )
        await session.execute(
            stmt.on_conflict_do_update(
                index_elements=["domain_id", "kind"],
                set_={"payload": stmt.excluded.payload, "fetched_at": stmt.excluded.fetched_at},
            )
        )
        await session.commit()


async def get(session: AsyncSession, domain_id: str, kind: ArtifactKind) -> DomainArtifact | None:
    result = await session.execute(
        select(DomainArtifact).where(
            DomainArtifact.domain_id == domain_id, DomainArtifact.kind == kind.value
        )
    )
    return result.scalar_one_or_none()
