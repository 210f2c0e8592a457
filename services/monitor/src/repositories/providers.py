"""Provider catalog queries."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.provider import Provider, ProviderSource

from .base import dialect_insert, persistence_errors


async def list_catalog(session: AsyncSession, category: str) -> list[Provider]:
    """Catalog providers of a category in evaluation order."""
    result = await session.execute(
        select(Provider)
        .where(
            Provider.category == category,
            Provider.source == ProviderSource.CATALOG.value,
            Provider.rule.is_not(None),
        )
        .order_by(Provider.position, Provider.name)
    )
    return list(result.scalars().all())


async def get_or_create_discovered(
    session: AsyncSession, category: str, name: str, domain: str
) -> str:
    """Id of the provider for (category, domain), creating a discovered one if needed."""
    with persistence_errors(f"upserting {category} provider {domain}"):
        await session.execute(
            dialect_insert(session, Provider)
            .values(
                category=category,
                name=name,
                domain=domain,
                source=ProviderSource.DISCOVERED.value,
            )
            .on_conflict_do_nothing(index_elements=["category", "domain"])
        )
        await session.commit()

    result = await session.execute(
        select(Provider.id).where(Provider.category == category, Provider.domain == domain)
    )
    return result.scalar_one()


async def get_names(session: AsyncSession, provider_ids: set[str | None]) -> dict[str, str]:
    ids = {pid for pid in provider_ids if pid}
    if not ids:
        return {}
    result = await session.execute(select(Provider.id, Provider.name).where(Provider.id.in_(ids)))
    return {row.id: row.name for row in result}
