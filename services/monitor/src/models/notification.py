"""Notification records and user notification preferences."""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, new_id


class NotificationType(str, Enum):
    REGISTRATION_CHANGE = "registration_change"
    PROVIDER_CHANGE = "provider_change"
    CERTIFICATE_CHANGE = "certificate_change"
    VERIFICATION_FAILING = "verification_failing"
    VERIFICATION_REVOKED = "verification_revoked"


class EmailStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"  # email channel disabled for this notification


class Notification(Base):
    """Delivery record backing the in-app inbox and the email audit trail."""

    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), index=True)
    tracked_domain_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("user_tracked_domains.id", ondelete="SET NULL"), index=True
    )
    type: Mapped[str] = mapped_column(String(50))
    title: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text)
    data: Mapped[dict] = mapped_column(JSON, default=dict)
    channels: Mapped[list] = mapped_column(JSON, default=list)

    # <tracked_domain_id>:<type>[:<bucket>]
    idempotency_key: Mapped[str] = mapped_column(String(255), unique=True)

    email_status: Mapped[str] = mapped_column(String(20), default=EmailStatus.PENDING.value)
    email_message_id: Mapped[str | None] = mapped_column(String(255))
    email_error: Mapped[str | None] = mapped_column(Text)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class UserNotificationPreferences(Base):
    """Global per-category channel switches for a user."""

    __tablename__ = "user_notification_preferences"

    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), primary_key=True)

    registration_changes: Mapped[bool] = mapped_column(Boolean, default=True)
    registration_changes_in_app: Mapped[bool] = mapped_column(Boolean, default=True)
    provider_changes: Mapped[bool] = mapped_column(Boolean, default=True)
    provider_changes_in_app: Mapped[bool] = mapped_column(Boolean, default=True)
    certificate_changes: Mapped[bool] = mapped_column(Boolean, default=True)
    certificate_changes_in_app: Mapped[bool] = mapped_column(Boolean, default=True)
    verification_status: Mapped[bool] = mapped_column(Boolean, default=True)
    verification_status_in_app: Mapped[bool] = mapped_column(Boolean, default=True)
