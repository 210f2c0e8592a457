"""Notification steps shared by the workflows."""

from typing import Any

from src.notifications.channels import Channels, NotificationCategory, resolve_channels
from src.notifications.dispatcher import ComposedNotification
from src.repositories import notifications as notifications_repo


async def resolve_user_channels(
    deps,
    user_id: str,
    category: NotificationCategory,
    overrides: dict[str, Any] | None,
    muted: bool,
) -> Channels:
    async with deps.session_maker() as session:
        preferences = await notifications_repo.get_preferences(session, user_id)
    return resolve_channels(category, preferences, overrides, muted=muted)


async def dispatch(deps, notification: ComposedNotification, channels: Channels) -> bool:
    return await deps.dispatcher.dispatch(notification, channels)
