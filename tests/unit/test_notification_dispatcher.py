"""Unit tests for the notification dispatcher."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from certchain.services.certificate.models import CertificateNotification
from certchain.services.notification.dispatcher import NotificationDispatcher
from tests.fakes import SIGNER_ADDRESS, TX_HASH


@pytest.fixture
def notification():
    return CertificateNotification(
        token_id=1,
        recipient_name="Ada Lovelace",
        course_name="Analytical Engines",
        institution_name="Royal Society",
        issuer=SIGNER_ADDRESS,
        issue_date=1_700_000_000,
        transaction_hash=TX_HASH,
        recipient_contact="ada@example.org",
    )


class TestNotificationDispatcher:
    """Tests for queueing and delivery."""

    async def test_delivers_flat_payload(self, notification):
        sender = AsyncMock()
        dispatcher = NotificationDispatcher(sender=sender, retry_delay_base=0)
        dispatcher.start()

        assert dispatcher.submit(notification)
        await dispatcher.stop()

        payload = sender.await_args.args[0]
        assert payload["tokenId"] == "1"
        assert payload["recipientName"] == "Ada Lovelace"
        assert payload["transactionHash"] == TX_HASH
        assert payload["recipientContact"] == "ada@example.org"
        assert dispatcher.delivered == 1

    async def test_retries_with_backoff(self, notification):
        sender = AsyncMock(side_effect=[ConnectionError("down"), ConnectionError("down"), None])
        dispatcher = NotificationDispatcher(sender=sender, max_retries=3, retry_delay_base=0)

        assert await dispatcher.deliver(notification)
        assert sender.await_count == 3

    async def test_gives_up_after_max_retries(self, notification):
        sender = AsyncMock(side_effect=ConnectionError("down"))
        dispatcher = NotificationDispatcher(sender=sender, max_retries=2, retry_delay_base=0)

        assert not await dispatcher.deliver(notification)
        assert sender.await_count == 3
        assert dispatcher.gave_up == 1

    async def test_submit_never_blocks_when_full(self, notification):
        dispatcher = NotificationDispatcher(sender=AsyncMock(), queue_size=1)
        assert dispatcher.submit(notification)
        assert not dispatcher.submit(notification)

    async def test_submit_returns_before_delivery(self, notification):
        """The caller is never held up by a slow sender."""
        release = asyncio.Event()

        async def slow_sender(payload):
            await release.wait()

        dispatcher = NotificationDispatcher(sender=slow_sender, retry_delay_base=0)
        dispatcher.start()
        dispatcher.submit(notification)
        await asyncio.sleep(0)
        assert dispatcher.delivered == 0

        release.set()
        await dispatcher.stop()
        assert dispatcher.delivered == 1
