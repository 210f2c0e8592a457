"""Notification records and preferences."""

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.notification import EmailStatus, Notification, UserNotificationPreferences

from .base import dialect_insert, persistence_errors


async def get_or_create(
    session: AsyncSession,
    *,
    idempotency_key: str,
    user_id: str,
    tracked_domain_id: str | None,
    type: str,
    title: str,
    message: str,
    data: dict[str, Any],
    channels: list[str],
    email_status: EmailStatus,
) -> Notification:
    """Insert-or-ignore on the idempotency key, then return the stored row."""
    with persistence_errors("creating notification"):
        await session.execute(
            dialect_insert(session, Notification)
            .values(
                idempotency_key=idempotency_key,
                user_id=user_id,
                tracked_domain_id=tracked_domain_id,
                type=type,
                title=title,
                message=message,
                data=data,
                channels=channels,
                email_status=email_status.value,
            )
            .on_conflict_do_nothing(index_elements=["idempotency_key"])
        )
        await session.commit()

    result = await session.execute(
        select(Notification).where(Notification.idempotency_key == idempotency_key)
    )
    return result.scalar_one()


async def record_email(
    session: AsyncSession,
    notification_id: str,
    status: EmailStatus,
    message_id: str | None = None,
    error: str | None = None,
) -> None:
    with persistence_errors("recording email delivery"):
        await session.execute(
            update(Notification)
            .where(Notification.id == notification_id)
            .values(email_status=status.value, email_message_id=message_id, email_error=error)
        )
        await session.commit()


async def get_preferences(session: AsyncSession, user_id: str) -> UserNotificationPreferences | None:
    return await session.get(UserNotificationPreferences, user_id)
