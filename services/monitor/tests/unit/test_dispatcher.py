"""Unit tests for the notification dispatcher and email transport."""

from unittest.mock import AsyncMock

import httpx
import pytest
import respx
from sqlalchemy import func, select

from src.models.notification import EmailStatus, Notification, NotificationType
from src.notifications.channels import Channels
from src.notifications.dispatcher import ComposedNotification, NotificationDispatcher, notification_key
from src.notifications.email import EmailSendError, ResendClient
from src.workflow.errors import RetryableError


def make_notification(tracked_domain_id: str, user_id: str, bucket: str = "abc123") -> ComposedNotification:
    return ComposedNotification(
        user_id=user_id,
        user_email="ada@example.org",
        tracked_domain_id=tracked_domain_id,
        domain_name="example.com",
        type=NotificationType.REGISTRATION_CHANGE,
        title="Registrar changed for example.com",
        message="Registrar changed from A to B.",
        idempotency_key=notification_key(tracked_domain_id, NotificationType.REGISTRATION_CHANGE, bucket),
    )


async def count_notifications(session_maker) -> int:
    async with session_maker() as session:
        return await session.scalar(select(func.count()).select_from(Notification))


def test_notification_key_format():
    assert notification_key("td-1", NotificationType.VERIFICATION_FAILING, "2026-10-18") == (
        "td-1:verification_failing:2026-10-18"
    )
    assert notification_key("td-1", NotificationType.PROVIDER_CHANGE) == "td-1:provider_change"


def test_subject_carries_type_prefix():
    notification = make_notification("td-1", "u-1")
    assert notification.subject == "⚠️ Registrar changed for example.com"


@pytest.mark.asyncio
async def test_retry_with_same_key_sends_one_email(session_maker, seed_domain, email_client):
    seeded = await seed_domain()
    dispatcher = NotificationDispatcher(session_maker, email_client)
    notification = make_notification(seeded.tracked_domain_id, seeded.user_id)
    channels = Channels(email=True, in_app=True)

    assert await dispatcher.dispatch(notification, channels) is True
    assert await dispatcher.dispatch(notification, channels) is True

    assert email_client.send.await_count == 1
    assert email_client.send.await_args.kwargs["idempotency_key"] == notification.idempotency_key
    assert await count_notifications(session_maker) == 1


@pytest.mark.asyncio
async def test_email_failure_keeps_in_app_record_and_is_retryable(session_maker, seed_domain, email_client):
    seeded = await seed_domain()
    email_client.send = AsyncMock(side_effect=[EmailSendError("503"), "msg-ok"])
    dispatcher = NotificationDispatcher(session_maker, email_client)
    notification = make_notification(seeded.tracked_domain_id, seeded.user_id)
    channels = Channels(email=True, in_app=True)

    with pytest.raises(RetryableError):
        await dispatcher.dispatch(notification, channels)

    async with session_maker() as session:
        row = await session.scalar(select(Notification))
    assert row.email_status == EmailStatus.FAILED.value

    assert await dispatcher.dispatch(notification, channels) is True
    async with session_maker() as session:
        row = await session.scalar(select(Notification))
    assert row.email_status == EmailStatus.SENT.value
    assert row.email_message_id == "msg-ok"
    assert await count_notifications(session_maker) == 1


@pytest.mark.asyncio
async def test_in_app_only_skips_email(session_maker, seed_domain, email_client):
    seeded = await seed_domain()
    dispatcher = NotificationDispatcher(session_maker, email_client)

    sent = await dispatcher.dispatch(
        make_notification(seeded.tracked_domain_id, seeded.user_id), Channels(email=False, in_app=True)
    )

    assert sent is True
    email_client.send.assert_not_awaited()
    async with session_maker() as session:
        row = await session.scalar(select(Notification))
    assert row.email_status == EmailStatus.SKIPPED.value
    assert row.channels == ["in_app"]


@pytest.mark.asyncio
async def test_no_channels_is_not_delivered(session_maker, email_client):
    dispatcher = NotificationDispatcher(session_maker, email_client)

    sent = await dispatcher.dispatch(make_notification("td-1", "u-1"), Channels(email=False, in_app=False))

    assert sent is False
    assert await count_notifications(session_maker) == 0


class TestResendClient:
    @pytest.mark.asyncio
    @respx.mock
    async def test_send_passes_idempotency_key(self):
        route = respx.post("https://api.resend.com/emails").respond(200, json={"id": "re_123"})
        client = ResendClient(api_key="re_key", sender="Domainstack <alerts@domainstack.io>")

        message_id = await client.send(
            to="ada@example.org", subject="Hi", text="Body", idempotency_key="td-1:provider_change:x"
        )
        await client.aclose()

        assert message_id == "re_123"
        request = route.calls.last.request
        assert request.headers["Idempotency-Key"] == "td-1:provider_change:x"
        assert request.headers["Authorization"] == "Bearer re_key"

    @pytest.mark.asyncio
    @respx.mock
    async def test_rejection_raises(self):
        respx.post("https://api.resend.com/emails").respond(422, json={"message": "invalid"})
        client = ResendClient(api_key="re_key", sender="alerts@domainstack.io")

        with pytest.raises(EmailSendError):
            await client.send(to="ada@example.org", subject="Hi", text="Body", idempotency_key="k")
        await client.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_raises(self):
        respx.post("https://api.resend.com/emails").mock(side_effect=httpx.ConnectError("down"))
        client = ResendClient(api_key="re_key", sender="alerts@domainstack.io")

        with pytest.raises(EmailSendError):
            await client.send(to="ada@example.org", subject="Hi", text="Body", idempotency_key="k")
        await client.aclose()

    def test_disabled_without_api_key(self):
        assert ResendClient(api_key="", sender="alerts@domainstack.io").enabled is False
