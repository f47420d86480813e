"""
Outbound notification channel for order alerts.

WhatsAppChannel delivers messages through the Twilio REST API. When its
credentials are missing it is unconfigured: every send logs the message it
would have sent and reports failure without raising.

dispatch() opens the channel once per fan-out with connect(), so every send
of one order shares a single HTTP client.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, List, Optional, Protocol, Sequence

import httpx

from . import config, schemas
from .alerts import Alert

logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    async def send(self, destination: str, message: str) -> bool:
        """Deliver message to destination; return True on success."""
        ...


class NotificationChannel(NotificationSender, Protocol):
    def connect(self) -> AsyncContextManager[NotificationSender]:
        """Open a sender shared by every send of one fan-out."""
        ...


class WhatsAppSession:
    """Sends through one open httpx client; see WhatsAppChannel.connect."""

    def __init__(self, channel: "WhatsAppChannel", client: httpx.AsyncClient):
        self.channel = channel
        self.client = client

    async def send(self, destination: str, message: str) -> bool:
        return await self.channel._post(self.client, destination, message)


class WhatsAppChannel:
    """
    Twilio WhatsApp sender.

    Args:
        account_sid: Twilio account SID
        auth_token: Twilio auth token
        from_number: Sending WhatsApp number, e.g. "+14155238886"
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (used by tests)
    """

    def __init__(
        self,
        account_sid: Optional[str] = config.TWILIO_ACCOUNT_SID,
        auth_token: Optional[str] = config.TWILIO_AUTH_TOKEN,
        from_number: Optional[str] = config.TWILIO_WHATSAPP_FROM,
        timeout: float = config.NOTIFY_TIMEOUT,
        base_url: str = config.TWILIO_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        if self.is_configured():
            logger.info("WhatsApp channel initialized")
        else:
            logger.warning("WhatsApp channel not configured - missing Twilio credentials")

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[WhatsAppSession]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            yield WhatsAppSession(self, client)

    async def send(self, destination: str, message: str) -> bool:
        async with self.connect() as session:
            return await session.send(destination, message)

    async def _post(self, client: httpx.AsyncClient, destination: str, message: str) -> bool:
        if not self.is_configured():
            logger.warning(f"WhatsApp not configured, would send to {destination}: {message[:40]!r}")
            return False

        url = f"{self.base_url}/Accounts/{self.account_sid}/Messages.json"
        data = {
            "From": f"whatsapp:{self.from_number}",
            "To": f"whatsapp:{destination}",
            "Body": message,
        }
        try:
            response = await client.post(url, data=data, auth=(self.account_sid, self.auth_token))
        except httpx.TimeoutException:
            logger.warning(f"WhatsApp send to {destination} timed out after {self.timeout}s")
            return False
        except httpx.HTTPError as e:
            logger.error(f"WhatsApp send to {destination} failed: {e}")
            return False

        if response.status_code >= 400:
            logger.error(f"WhatsApp send to {destination} rejected: HTTP {response.status_code}")
            return False
        logger.info(f"WhatsApp message sent to {destination}: HTTP {response.status_code}")
        return True


async def _send_one(sender: NotificationSender, semaphore: asyncio.Semaphore,
                    alert: Alert, recipient: str) -> schemas.NotificationOutcome:
    async with semaphore:
        try:
            delivered = await sender.send(recipient, alert.message)
            error = None if delivered else "channel reported failure"
        except Exception as e:
            # one recipient's failure never affects the others
            delivered, error = False, str(e) or type(e).__name__
    if delivered:
        logger.info(f"{alert.kind.value} alert delivered to {recipient}")
    else:
        logger.warning(f"{alert.kind.value} alert to {recipient} failed: {error}")
    return schemas.NotificationOutcome(kind=alert.kind.value, recipient=recipient,
                                       delivered=delivered, error=error)


async def dispatch(
    channel: NotificationChannel,
    alerts: Sequence[Alert],
    recipients: Sequence[str],
    max_concurrency: int = config.NOTIFY_MAX_CONCURRENCY,
) -> List[schemas.NotificationOutcome]:
    """
    Send every alert to every recipient concurrently.

    Sends are joined before returning; their order is not significant.

    Returns:
        One outcome per (alert, recipient) pair
    """
    if not alerts or not recipients:
        return []
    semaphore = asyncio.Semaphore(max(1, max_concurrency))
    async with channel.connect() as sender:
        tasks = [
            _send_one(sender, semaphore, alert, recipient)
            for alert in alerts
            for recipient in recipients
        ]
        return list(await asyncio.gather(*tasks))


def summarize_failures(outcomes: Sequence[schemas.NotificationOutcome]) -> List[schemas.PartialNotificationFailure]:
    """Group failed outcomes by alert kind."""
    failures = []
    kinds = []
    for outcome in outcomes:
        if outcome.kind not in kinds:
            kinds.append(outcome.kind)
    for kind in kinds:
        of_kind = [o for o in outcomes if o.kind == kind]
        failed = [o.recipient for o in of_kind if not o.delivered]
        if failed:
            failures.append(schemas.PartialNotificationFailure(
                kind=kind,
                failed_recipients=failed,
                delivered_count=len(of_kind) - len(failed),
            ))
    return failures
