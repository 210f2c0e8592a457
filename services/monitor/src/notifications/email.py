"""Transactional email through the Resend HTTP API."""

import httpx
import structlog

logger = structlog.get_logger()

SEND_TIMEOUT = 10.0


class EmailSendError(Exception):
    """The transport rejected or failed to accept the email."""


class ResendClient:
    """Minimal Resend client.

    Resend deduplicates requests carrying the same ``Idempotency-Key`` for a
    day, so retrying a send with the notification's key never produces a
    second email.
    """

    def __init__(
        self,
        api_key: str,
        sender: str,
        base_url: str = "https://api.resend.com",
        client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._sender = sender
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=SEND_TIMEOUT)

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def send(self, to: str, subject: str, text: str, idempotency_key: str) -> str:
        """Send one email and return the transport's message id."""
        try:
            response = await self._client.post(
                f"{self._base_url}/emails",
                json={"from": self._sender, "to": [to], "subject": subject, "text": text},
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Idempotency-Key": idempotency_key,
                },
            )
        except httpx.HTTPError as e:
            raise EmailSendError(f"email transport error: {e}") from e

        if response.is_error:
            logger.error(
                "email_send_rejected",
                status=response.status_code,
                error=response.text[:200],
                idempotency_key=idempotency_key,
            )
            raise EmailSendError(f"email rejected with status {response.status_code}")

        message_id = response.json().get("id", "")
        logger.info("email_sent", message_id=message_id, idempotency_key=idempotency_key)
        return message_id

    async def aclose(self) -> None:
        await self._client.aclose()
