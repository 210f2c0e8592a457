"""Deduplicated multi-channel notification delivery."""

from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from src.models.notification import EmailStatus, NotificationType
from src.repositories import notifications as notifications_repo
from src.workflow.errors import RetryableError

from .channels import Channels
from .email import EmailSendError, ResendClient

logger = structlog.get_logger()

SUBJECT_PREFIX = {
    NotificationType.REGISTRATION_CHANGE: "⚠️",
    NotificationType.PROVIDER_CHANGE: "🔄",
    NotificationType.CERTIFICATE_CHANGE: "🔒",
    NotificationType.VERIFICATION_FAILING: "⚠️",
    NotificationType.VERIFICATION_REVOKED: "❌",
}


def notification_key(tracked_domain_id: str, type: NotificationType, bucket: str | None = None) -> str:
    """``<tracked_domain_id>:<type>[:<bucket>]``."""
    key = f"{tracked_domain_id}:{type.value}"
    return f"{key}:{bucket}" if bucket else key


class ComposedNotification(BaseModel):
    user_id: str
    user_email: str
    tracked_domain_id: str
    domain_name: str
    type: NotificationType
    title: str
    message: str
    idempotency_key: str
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def subject(self) -> str:
        return f"{SUBJECT_PREFIX[self.type]} {self.title}"


class NotificationDispatcher:
    """Delivers a notification to each enabled channel.

    The notification row doubles as the in-app inbox entry and is created
    first, keyed by the idempotency key, so a retried step finds the same
    row. Email is sent with the same key and skipped once the row carries a
    message id.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], email: ResendClient):
        self._session_maker = session_maker
        self._email = email

    async def dispatch(self, notification: ComposedNotification, channels: Channels) -> bool:
        """Deliver on every enabled channel; True once all of them delivered.

        Raises:
            RetryableError: the email transport failed; the in-app record stays.
        """
        if not channels.any:
            return False

        send_email = channels.email and self._email.enabled
        async with self._session_maker() as session:
            row = await notifications_repo.get_or_create(
                session,
                idempotency_key=notification.idempotency_key,
                user_id=notification.user_id,
                tracked_domain_id=notification.tracked_domain_id,
                type=notification.type.value,
                title=notification.title,
                message=notification.message,
                data=notification.data,
                channels=channels.names(),
                email_status=EmailStatus.PENDING if send_email else EmailStatus.SKIPPED,
            )
        log = logger.bind(notification_id=row.id, type=notification.type.value)

        if channels.in_app:
            log.info("notification_in_app_delivered")

        if channels.email and not self._email.enabled:
            log.warning("email_transport_disabled")
        elif send_email:
            await self._send_email(row.id, row.email_message_id, notification)

        return True

    async def _send_email(
        self, notification_id: str, existing_message_id: str | None, notification: ComposedNotification
    ) -> None:
        if existing_message_id:
            logger.info("email_already_sent", notification_id=notification_id, message_id=existing_message_id)
            return

        try:
            message_id = await self._email.send(
                to=notification.user_email,
                subject=notification.subject,
                text=notification.message,
                idempotency_key=notification.idempotency_key,
            )
        except EmailSendError as e:
            async with self._session_maker() as session:
                await notifications_repo.record_email(
                    session, notification_id, EmailStatus.FAILED, error=str(e)
                )
            logger.warning("email_delivery_failed", notification_id=notification_id, error=str(e))
            raise RetryableError(str(e), code="email_failed") from e

        async with self._session_maker() as session:
            await notifications_repo.record_email(
                session, notification_id, EmailStatus.SENT, message_id=message_id
            )
