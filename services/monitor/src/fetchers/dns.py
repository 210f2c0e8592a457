"""DNS lookups over dnspython's asyncio resolver."""

import asyncio

import dns.asyncresolver
import dns.exception
import dns.resolver
import structlog

from src.workflow.errors import classify_fetch_error

from .types import DnsRecords, FetchOutcome, MxRecord

logger = structlog.get_logger()


def normalize_host(host: str) -> str:
    return host.strip().lower().rstrip(".")


class DnsResolver:
    """Thin wrapper adding a lifetime and a single retry on timeouts.

    NXDOMAIN and empty answers are authoritative and come back as ``[]``
    without a retry.
    """

    def __init__(self, lifetime: float = 5.0, resolver: dns.asyncresolver.Resolver | None = None):
        self.lifetime = lifetime
        self._resolver = resolver or dns.asyncresolver.Resolver()

    async def query(self, name: str, rdtype: str) -> list:
        for attempt in (1, 2):
            try:
                answer = await self._resolver.resolve(name, rdtype, lifetime=self.lifetime)
                return list(answer)
            except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
                return []
            except dns.exception.Timeout:
                if attempt == 2:
                    raise
                logger.debug("dns_timeout_retry", name=name, rdtype=rdtype)
        return []

    async def txt(self, name: str) -> list[str]:
        """TXT values with multi-string records joined."""
        records = await self.query(name, "TXT")
        return [b"".join(r.strings).decode("utf-8", errors="replace") for r in records]

    async def mx(self, name: str) -> list[MxRecord]:
        records = await self.query(name, "MX")
        return [
            MxRecord(host=normalize_host(r.exchange.to_text()), priority=r.preference)
            for r in records
        ]

    async def ns(self, name: str) -> list[str]:
        records = await self.query(name, "NS")
        return [normalize_host(r.target.to_text()) for r in records]

    async def addresses(self, name: str, rdtype: str) -> list[str]:
        records = await self.query(name, rdtype)
        return [r.address for r in records]


async def fetch_dns_records(resolver: DnsResolver, domain: str) -> FetchOutcome[DnsRecords]:
    """Fetch A, AAAA, MX, NS and TXT records for ``domain`` concurrently."""
    try:
        a, aaaa, mx, ns, txt = await asyncio.gather(
            resolver.addresses(domain, "A"),
            resolver.addresses(domain, "AAAA"),
            resolver.mx(domain),
            resolver.ns(domain),
            resolver.txt(domain),
        )
    except dns.exception.DNSException as e:
        error = classify_fetch_error(e, "dns lookup")
        logger.warning("dns_fetch_failed", domain=domain, error=str(e), error_code=error.code)
        return FetchOutcome.failure(error.code)

    return FetchOutcome.success(DnsRecords(a=a, aaaa=aaaa, mx=mx, ns=ns, txt=txt))
