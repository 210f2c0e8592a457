"""Ownership checks: DNS TXT record, HTML file, meta tag."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
import re

from bs4 import BeautifulSoup
import dns.exception
import httpx
import structlog

from src.domains import normalize_domain
from src.fetchers.dns import DnsResolver
from src.fetchers.http import fetch_limited
from src.models.tracked_domain import VerificationMethod

from . import constants

logger = structlog.get_logger()

_META_NAME = re.compile(rf"^\s*{re.escape(constants.META_NAME)}\s*$", re.IGNORECASE)


class CheckOutcome(str, Enum):
    VERIFIED = "verified"
    NOT_FOUND = "not_found"
    ERROR = "error"  # lookup failed; indistinguishable from "not there" for the caller


@dataclass
class VerificationResult:
    verified: bool
    method: VerificationMethod | None = None


Checker = Callable[[str, str], Awaitable[CheckOutcome]]


def clean_txt(value: str) -> str:
    return value.strip().strip('"').strip()


class VerificationChecker:
    """Runs the challenge checks. Never raises: failures read as "not verified"."""

    def __init__(self, resolver: DnsResolver, http_client: httpx.AsyncClient, max_bytes: int = 512 * 1024):
        self._resolver = resolver
        self._http = http_client
        self._max_bytes = max_bytes

    @property
    def checkers(self) -> list[tuple[VerificationMethod, Checker]]:
        """Checks in the order they are tried without an explicit method."""
        return [
            (VerificationMethod.DNS_TXT, self.check_dns_txt),
            (VerificationMethod.HTML_FILE, self.check_html_file),
            (VerificationMethod.META_TAG, self.check_meta_tag),
        ]

    async def verify(
        self, domain: str, token: str, method: VerificationMethod | None = None
    ) -> VerificationResult:
        domain = normalize_domain(domain)
        for candidate, checker in self.checkers:
            if method is not None and candidate != method:
                continue
            outcome = await self._run(candidate, checker, domain, token)
            if outcome == CheckOutcome.VERIFIED:
                logger.info("verification_succeeded", domain=domain, method=candidate.value)
                return VerificationResult(verified=True, method=candidate)
        logger.info("verification_not_found", domain=domain, method=method.value if method else None)
        return VerificationResult(verified=False)

    async def _run(self, method: VerificationMethod, checker: Checker, domain: str, token: str) -> CheckOutcome:
        try:
            return await checker(domain, token)
        except Exception as e:
            logger.warning(
                "verification_check_crashed",
                domain=domain,
                method=method.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return CheckOutcome.ERROR

    async def check_dns_txt(self, domain: str, token: str) -> CheckOutcome:
        expected = constants.txt_value(token)
        outcome = CheckOutcome.NOT_FOUND
        for name in (domain, constants.txt_legacy_host(domain)):
            try:
                values = await self._resolver.txt(name)
            except dns.exception.DNSException as e:
                logger.info("verification_dns_lookup_failed", name=name, error=str(e))
                outcome = CheckOutcome.ERROR
                continue
            if any(clean_txt(value) == expected for value in values):
                return CheckOutcome.VERIFIED
        return outcome

    async def check_html_file(self, domain: str, token: str) -> CheckOutcome:
        expected = constants.html_body(token)
        urls = [
            f"{scheme}://{domain}{path}"
            for path in (constants.html_path(token), constants.HTML_LEGACY_PATH)
            for scheme in ("https", "http")
        ]
        outcome = CheckOutcome.NOT_FOUND
        for url in urls:
            try:
                response = await fetch_limited(self._http, url, self._max_bytes)
            except httpx.HTTPError as e:
                logger.debug("verification_html_fetch_failed", url=url, error=str(e))
                outcome = CheckOutcome.ERROR
                continue
            if not response.ok:
                continue
            if response.body.strip() == expected:
                return CheckOutcome.VERIFIED
        return outcome

    async def check_meta_tag(self, domain: str, token: str) -> CheckOutcome:
        url = f"https://{domain}/"
        try:
            response = await fetch_limited(self._http, url, self._max_bytes)
        except httpx.HTTPError as e:
            logger.debug("verification_meta_fetch_failed", url=url, error=str(e))
            return CheckOutcome.ERROR
        if not response.ok:
            return CheckOutcome.NOT_FOUND

        soup = BeautifulSoup(response.body, "html.parser")
        for tag in soup.find_all("meta", attrs={"name": _META_NAME}):
            content = tag.get("content")
            if isinstance(content, str) and content.strip() == token:
                return CheckOutcome.VERIFIED
        return CheckOutcome.NOT_FOUND
