"""Notification channels, email transport and dispatcher."""

from .channels import Channels, NotificationCategory, resolve_channels
from .dispatcher import ComposedNotification, NotificationDispatcher, notification_key
from .email import EmailSendError, ResendClient

__all__ = [
    "Channels",
    "NotificationCategory",
    "resolve_channels",
    "ComposedNotification",
    "NotificationDispatcher",
    "notification_key",
    "EmailSendError",
    "ResendClient",
]
