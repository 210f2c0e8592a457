"""Verification entry points used by workflows and the web application."""

from datetime import datetime
import secrets

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from shared.contracts.queues.monitor import INITIALIZE_SNAPSHOT_STREAM, InitializeSnapshotJob
from shared.redis.client import RedisStreamClient
from src.models.base import utcnow
from src.models.tracked_domain import VerificationMethod
from src.repositories import snapshots as snapshots_repo
from src.repositories import tracked_domains as tracked_repo

from . import constants
from .checks import VerificationChecker, VerificationResult

logger = structlog.get_logger()

RATE_LIMIT_KEY = "monitor:verify-rate:{tracked_domain_id}"


class RateLimitExceeded(Exception):
    """Manual verification attempted too often."""

    def __init__(self, tracked_domain_id: str, window_seconds: int):
        super().__init__(f"Too many verification attempts for {tracked_domain_id}")
        self.retry_after = window_seconds


class TrackedDomainNotFound(Exception):
    pass


def generate_token() -> str:
    """32 hex chars."""
    return secrets.token_hex(16)


class DnsTxtInstructions(BaseModel):
    hostname: str
    legacy_hostname: str
    value: str


class HtmlFileInstructions(BaseModel):
    url: str
    legacy_url: str
    content: str


class MetaTagInstructions(BaseModel):
    tag: str


class VerificationInstructions(BaseModel):
    dns_txt: DnsTxtInstructions
    html_file: HtmlFileInstructions
    meta_tag: MetaTagInstructions


def build_instructions(domain: str, token: str) -> VerificationInstructions:
    return VerificationInstructions(
        dns_txt=DnsTxtInstructions(
            hostname=domain,
            legacy_hostname=constants.txt_legacy_host(domain),
            value=constants.txt_value(token),
        ),
        html_file=HtmlFileInstructions(
            url=f"https://{domain}{constants.html_path(token)}",
            legacy_url=f"https://{domain}{constants.HTML_LEGACY_PATH}",
            content=constants.html_body(token),
        ),
        meta_tag=MetaTagInstructions(tag=constants.meta_tag(token)),
    )


class VerificationService:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        checker: VerificationChecker,
        redis: RedisStreamClient | None = None,
        rate_limit: int = 5,
        rate_window: int = 60,
    ):
        self._session_maker = session_maker
        self._checker = checker
        self._redis = redis
        self._rate_limit = rate_limit
        self._rate_window = rate_window

    async def verify_tracked_domain(
        self,
        tracked_domain_id: str,
        method: VerificationMethod | None = None,
        now: datetime | None = None,
    ) -> VerificationResult:
        """Check ownership and persist the first successful verification.

        An already verified domain returns its stored method without any
        network check.
        """
        async with self._session_maker() as session:
            info = await tracked_repo.get_info(session, tracked_domain_id)
        if info is None:
            raise TrackedDomainNotFound(tracked_domain_id)

        if info.verified:
            stored = VerificationMethod(info.verification_method) if info.verification_method else None
            return VerificationResult(verified=True, method=stored)

        result = await self._checker.verify(info.domain_name, info.verification_token, method)
        if not result.verified:
            return result

        async with self._session_maker() as session:
            transitioned = await tracked_repo.mark_verified(
                session, tracked_domain_id, result.method.value, now or utcnow()
            )
            await snapshots_repo.ensure_empty(session, tracked_domain_id)

        if transitioned:
            logger.info(
                "domain_verified",
                tracked_domain_id=tracked_domain_id,
                domain=info.domain_name,
                method=result.method.value,
            )
            await self._enqueue_snapshot_initialization(tracked_domain_id)
        return result

    async def verify_now(
        self, tracked_domain_id: str, method: VerificationMethod | None = None
    ) -> VerificationResult:
        """Manual trigger, rate limited per tracked domain."""
        if self._redis is not None:
            key = RATE_LIMIT_KEY.format(tracked_domain_id=tracked_domain_id)
            if await self._redis.hit_rate_limit(key, self._rate_limit, self._rate_window):
                logger.warning("manual_verification_rate_limited", tracked_domain_id=tracked_domain_id)
                raise RateLimitExceeded(tracked_domain_id, self._rate_window)
        return await self.verify_tracked_domain(tracked_domain_id, method)

    async def check_stored_method(self, domain: str, token: str, method: VerificationMethod) -> bool:
        """Re-run only the method the domain was verified with."""
        result = await self._checker.verify(domain, token, method)
        return result.verified

    async def _enqueue_snapshot_initialization(self, tracked_domain_id: str) -> None:
        if self._redis is None:
            return
        await self._redis.publish_message(
            INITIALIZE_SNAPSHOT_STREAM, InitializeSnapshotJob(tracked_domain_id=tracked_domain_id)
        )
