"""Provider detection on top of the rule evaluator."""

from urllib.parse import urlsplit

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from src.domains import registrable_domain
from src.fetchers.types import DnsRecords, HeadersResult
from src.models.provider import Provider, ProviderCategory
from src.repositories import providers as providers_repo

from .rules import DetectionContext, eval_rule, parse_rule

logger = structlog.get_logger()


def detect_provider(providers: list[Provider], ctx: DetectionContext) -> Provider | None:
    """First provider, in catalog order, whose rule matches ``ctx``."""
    for provider in providers:
        if not provider.rule:
            continue
        try:
            rule = parse_rule(provider.rule)
        except ValidationError as e:
            logger.warning("provider_rule_invalid", provider=provider.name, error=str(e))
            continue
        if eval_rule(rule, ctx):
            return provider
    return None


class ProviderResolver:
    """Resolves provider ids for each category from freshly fetched facts.

    DNS and email fall back to a ``discovered`` provider named after the
    registrable domain of the first NS / MX host; the registrar falls back
    to one keyed on its URL (or name).
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def _match(self, category: ProviderCategory, ctx: DetectionContext) -> Provider | None:
        async with self._session_maker() as session:
            catalog = await providers_repo.list_catalog(session, category.value)
        return detect_provider(catalog, ctx)

    async def _discovered(self, category: ProviderCategory, name: str, domain: str) -> str:
        async with self._session_maker() as session:
            provider_id = await providers_repo.get_or_create_discovered(
                session, category.value, name, domain
            )
        logger.debug("provider_discovered", category=category.value, domain=domain)
        return provider_id

    async def _from_hosts(self, category: ProviderCategory, ctx: DetectionContext, hosts: list[str]) -> str | None:
        matched = await self._match(category, ctx)
        if matched:
            return matched.id
        if not hosts:
            return None
        root = registrable_domain(hosts[0])
        if not root:
            return None
        return await self._discovered(category, root, root)

    async def dns(self, records: DnsRecords) -> str | None:
        return await self._from_hosts(
            ProviderCategory.DNS, DetectionContext.create(ns=records.ns), records.ns
        )

    async def email(self, records: DnsRecords) -> str | None:
        mx_hosts = records.mx_hosts
        return await self._from_hosts(
            ProviderCategory.EMAIL, DetectionContext.create(mx=mx_hosts), mx_hosts
        )

    async def hosting(self, headers: HeadersResult | None, records: DnsRecords | None) -> str | None:
        """Hosting is detected from headers; no A/AAAA record means not hosted at all."""
        if records is not None and not (records.a or records.aaaa):
            return None
        if headers is None:
            return None
        ctx = DetectionContext.create(
            headers=[(h.name, h.value) for h in headers.headers],
            ns=records.ns if records else None,
        )
        matched = await self._match(ProviderCategory.HOSTING, ctx)
        return matched.id if matched else None

    async def registrar(self, name: str | None, url: str | None) -> str | None:
        name = (name or "").strip()
        matched = await self._match(ProviderCategory.REGISTRAR, DetectionContext.create(registrar=name))
        if matched:
            return matched.id

        domain = None
        if url:
            hostname = urlsplit(url if "://" in url else f"https://{url}").hostname
            domain = registrable_domain(hostname) if hostname else None
        if not domain and not name:
            return None
        return await self._discovered(ProviderCategory.REGISTRAR, name or domain, domain or name.lower())

    async def certificate_authority(self, issuer: str | None) -> str | None:
        if not issuer:
            return None
        matched = await self._match(
            ProviderCategory.CA, DetectionContext.create(issuer=issuer)
        )
        return matched.id if matched else None
