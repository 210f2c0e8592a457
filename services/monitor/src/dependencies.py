"""Collaborators shared by every workflow run."""

from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shared.redis.client import RedisStreamClient
from src.config import Settings
from src.fetchers.dns import DnsResolver
from src.fetchers.http import create_http_client
from src.fetchers.registration import RegistrationFetcher
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.email import ResendClient
from src.providers.detection import ProviderResolver
from src.verification.checks import VerificationChecker
from src.verification.service import VerificationService


@dataclass
class MonitorDeps:
    settings: Settings
    session_maker: async_sessionmaker[AsyncSession]
    resolver: DnsResolver
    http_client: httpx.AsyncClient
    registration: RegistrationFetcher
    providers: ProviderResolver
    verification: VerificationService
    dispatcher: NotificationDispatcher
    email: ResendClient
    redis: RedisStreamClient | None = None

    async def aclose(self) -> None:
        await self.http_client.aclose()
        await self.email.aclose()


def build_deps(
    settings: Settings,
    session_maker: async_sessionmaker[AsyncSession],
    redis: RedisStreamClient | None = None,
) -> MonitorDeps:
    """Wire the production collaborators from settings."""
    resolver = DnsResolver(lifetime=settings.dns_timeout)
    http_client = create_http_client(
        timeout=settings.http_timeout, max_redirects=settings.http_max_redirects
    )
    email = ResendClient(
        api_key=settings.resend_api_key,
        sender=settings.email_from,
        base_url=settings.resend_base_url,
    )
    checker = VerificationChecker(resolver, http_client, max_bytes=settings.http_max_bytes)

    return MonitorDeps(
        settings=settings,
        session_maker=session_maker,
        resolver=resolver,
        http_client=http_client,
        registration=RegistrationFetcher(http_client),
        providers=ProviderResolver(session_maker),
        verification=VerificationService(
            session_maker,
            checker,
            redis=redis,
            rate_limit=settings.manual_verify_limit,
            rate_window=settings.manual_verify_window,
        ),
        dispatcher=NotificationDispatcher(session_maker, email),
        email=email,
        redis=redis,
    )
