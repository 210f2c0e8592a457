"""Pytest configuration for monitor tests."""

from dataclasses import dataclass
import itertools
from pathlib import Path
import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from fakeredis import aioredis
import pytest

# Service root, so that ``src`` is importable as a package
service_root = Path(__file__).parent.parent
sys.path.insert(0, str(service_root))

# Add project root for shared imports
project_root = Path(__file__).parent.parent.parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from shared.redis.client import RedisStreamClient  # noqa: E402
from src.config import Settings  # noqa: E402
from src.models import Base, Domain, DomainSnapshot, TrackedDomain, User  # noqa: E402
from src.models.base import utcnow  # noqa: E402
from src.notifications.dispatcher import NotificationDispatcher  # noqa: E402
from src.providers.detection import ProviderResolver  # noqa: E402


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite+aiosqlite://",
        redis_url="redis://localhost:6379/0",
        _env_file=None,
    )


@pytest.fixture
async def session_maker(tmp_path):
    """File-backed SQLite so concurrent steps get their own connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'monitor.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def redis_client():
    redis = aioredis.FakeRedis(decode_responses=True)
    yield RedisStreamClient(client=redis)
    await redis.aclose()


@dataclass
class Seeded:
    tracked_domain_id: str
    domain_id: str
    user_id: str


@pytest.fixture
def seed_domain(session_maker):
    """Factory inserting a user, a domain and the user's tracked domain."""

    async def _seed(
        name: str = "example.com",
        token: str = "a" * 32,
        verified: bool = False,
        method: str | None = None,
        status: str = "unverified",
        failed_at=None,
        with_snapshot: bool = False,
        initialized: bool = True,
        overrides: dict | None = None,
        muted: bool = False,
        **snapshot_values,
    ) -> Seeded:
        async with session_maker() as session:
            user = User(name="Ada", email="ada@example.org")
            domain = Domain(name=name)
            session.add_all([user, domain])
            await session.flush()
            tracked = TrackedDomain(
                user_id=user.id,
                domain_id=domain.id,
                verification_token=token,
                verified=verified,
                verification_method=method,
                verification_status=status,
                verification_failed_at=failed_at,
                notification_overrides=overrides or {},
                muted_at=utcnow() if muted else None,
            )
            session.add(tracked)
            await session.flush()
            if with_snapshot:
                session.add(
                    DomainSnapshot(
                        tracked_domain_id=tracked.id,
                        registration=snapshot_values.pop("registration", {}),
                        certificate=snapshot_values.pop("certificate", {}),
                        initialized_at=utcnow() if initialized else None,
                        **snapshot_values,
                    )
                )
            await session.commit()
            return Seeded(tracked_domain_id=tracked.id, domain_id=domain.id, user_id=user.id)

    return _seed


@pytest.fixture
def email_client():
    """Resend stand-in that hands out sequential message ids."""
    ids = itertools.count(1)
    client = MagicMock()
    client.enabled = True
    client.send = AsyncMock(side_effect=lambda **kwargs: f"msg-{next(ids)}")
    return client


@pytest.fixture
def deps(settings, session_maker, email_client, redis_client):
    """Workflow dependencies with real persistence and mocked network collaborators."""
    return SimpleNamespace(
        settings=settings,
        session_maker=session_maker,
        resolver=MagicMock(),
        http_client=MagicMock(),
        registration=MagicMock(),
        providers=ProviderResolver(session_maker),
        verification=MagicMock(),
        dispatcher=NotificationDispatcher(session_maker, email_client),
        email=email_client,
        redis=redis_client,
    )
