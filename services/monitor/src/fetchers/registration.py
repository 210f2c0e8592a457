"""Registration data: RDAP first, WHOIS as a fallback."""

import asyncio
from datetime import datetime
from typing import Any

import httpx
import structlog
import whois

from src.change_detection.status import transfer_lock_from_statuses
from src.domains import normalize_domain, registry_tld
from src.workflow.errors import classify_fetch_error

from .dns import normalize_host
from .types import FetchOutcome, RegistrationRecord

logger = structlog.get_logger()

RDAP_BOOTSTRAP_URL = "https://data.iana.org/rdap/dns.json"
RDAP_ACCEPT = "application/rdap+json, application/json"


def _vcard_value(entity: dict[str, Any], field: str) -> str | None:
    vcard = entity.get("vcardArray") or []
    if len(vcard) < 2:
        return None
    for item in vcard[1]:
        if len(item) >= 4 and item[0] == field and isinstance(item[3], str):
            return item[3].strip() or None
    return None


def _parse_date(value: Any) -> datetime | None:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _as_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value if v]


def parse_rdap(domain: str, data: dict[str, Any]) -> RegistrationRecord:
    """Normalize an RDAP domain object."""
    registrar_name = registrar_url = None
    for entity in data.get("entities") or []:
        if "registrar" in (entity.get("roles") or []):
            registrar_name = _vcard_value(entity, "fn")
            registrar_url = _vcard_value(entity, "url")
            break

    events = {e.get("eventAction"): e.get("eventDate") for e in data.get("events") or []}
    statuses = _as_list(data.get("status"))

    return RegistrationRecord(
        domain=domain,
        is_registered=True,
        registrar_name=registrar_name,
        registrar_url=registrar_url,
        statuses=statuses,
        transfer_lock=transfer_lock_from_statuses(statuses),
        nameservers=sorted(
            {normalize_host(ns["ldhName"]) for ns in data.get("nameservers") or [] if ns.get("ldhName")}
        ),
        creation_date=_parse_date(events.get("registration")),
        expiration_date=_parse_date(events.get("expiration")),
        source="rdap",
    )


def parse_whois(domain: str, entry: Any) -> RegistrationRecord:
    """Normalize a python-whois ``WhoisEntry``."""
    if not entry or not entry.get("domain_name"):
        return RegistrationRecord(domain=domain, is_registered=False, source="whois")

    statuses = _as_list(entry.get("status"))
    registrar_url = entry.get("registrar_url")
    return RegistrationRecord(
        domain=domain,
        is_registered=True,
        registrar_name=entry.get("registrar"),
        registrar_url=registrar_url if isinstance(registrar_url, str) else None,
        statuses=statuses,
        transfer_lock=transfer_lock_from_statuses(statuses),
        nameservers=sorted({normalize_host(ns) for ns in _as_list(entry.get("name_servers"))}),
        creation_date=_parse_date(entry.get("creation_date")),
        expiration_date=_parse_date(entry.get("expiration_date")),
        source="whois",
    )


class RegistrationFetcher:
    """RDAP client using the IANA bootstrap registry, with a WHOIS fallback."""

    def __init__(self, client: httpx.AsyncClient, bootstrap_url: str = RDAP_BOOTSTRAP_URL):
        self._client = client
        self._bootstrap_url = bootstrap_url
        self._bootstrap: dict[str, list[str]] | None = None
        self._bootstrap_lock = asyncio.Lock()

    async def fetch(self, domain: str) -> FetchOutcome[RegistrationRecord]:
        domain = normalize_domain(domain)
        try:
            record = await self._rdap(domain)
        except (httpx.HTTPError, ValueError) as e:
            logger.info("rdap_lookup_failed", domain=domain, error=str(e))
            record = None

        if record is not None:
            return FetchOutcome.success(record)

        try:
            entry = await asyncio.to_thread(whois.whois, domain)
        except Exception as e:
            # python-whois raises its own errors for unknown TLDs and unregistered names
            error = classify_fetch_error(e, "whois lookup")
            logger.warning("whois_lookup_failed", domain=domain, error=str(e), error_code=error.code)
            return FetchOutcome.failure(error.code)

        return FetchOutcome.success(parse_whois(domain, entry))

    async def _rdap(self, domain: str) -> RegistrationRecord | None:
        """RDAP record, or None when the TLD has no RDAP service."""
        servers = (await self._servers()).get(registry_tld(domain), [])
        for base in servers:
            url = f"{base.rstrip('/')}/domain/{domain}"
            response = await self._client.get(url, headers={"Accept": RDAP_ACCEPT})
            if response.status_code == 404:
                return RegistrationRecord(domain=domain, is_registered=False, source="rdap")
            if response.is_success:
                return parse_rdap(domain, response.json())
            logger.debug("rdap_server_error", url=url, status_code=response.status_code)
        return None

    async def _servers(self) -> dict[str, list[str]]:
        async with self._bootstrap_lock:
            if self._bootstrap is None:
                response = await self._client.get(self._bootstrap_url)
                response.raise_for_status()
                mapping: dict[str, list[str]] = {}
                for tlds, urls in response.json().get("services", []):
                    for tld in tlds:
                        mapping[tld.lower()] = list(urls)
                self._bootstrap = mapping
                logger.info("rdap_bootstrap_loaded", tlds=len(mapping))
        return self._bootstrap
