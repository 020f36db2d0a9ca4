"""
Notification dispatcher.

Outbound queue for post-mint notifications. The engine only enqueues;
a worker task delivers through an injected async sender and owns the
retry/backoff, so delivery never delays or fails a mint.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp
from loguru import logger

from certchain.config.constants import (
    NOTIFICATION_MAX_RETRIES,
    NOTIFICATION_QUEUE_SIZE,
    NOTIFICATION_RETRY_DELAY_BASE,
)
from certchain.services.certificate.models import CertificateNotification

NotificationSender = Callable[[dict[str, Any]], Awaitable[None]]


async def log_sender(payload: dict[str, Any]) -> None:
    """Default sender: record the notification in the log only."""
    logger.info(
        f"Certificate notification: token {payload['tokenId']} "
        f"({payload['courseName']}) tx {payload['transactionHash']}"
    )


class WebhookSender:
    """POST notification payloads as JSON to a webhook URL."""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    async def __call__(self, payload: dict[str, Any]) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        async with self._session.post(self.url, json=payload) as response:
            response.raise_for_status()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()


class NotificationDispatcher:
    """
    Queue + worker for certificate notifications.

    Features:
    - Non-blocking submit (drops with a warning when the queue is full)
    - Exponential backoff per notification
    - Graceful stop that drains queued notifications
    """

    def __init__(
        self,
        sender: NotificationSender | None = None,
        max_retries: int = NOTIFICATION_MAX_RETRIES,
        retry_delay_base: float = NOTIFICATION_RETRY_DELAY_BASE,
        queue_size: int = NOTIFICATION_QUEUE_SIZE,
    ):
        """
        Initialize notification dispatcher.

        Args:
            sender: Async callable delivering one payload (default: log only)
            max_retries: Retries after the first failed delivery
            retry_delay_base: Base delay in seconds (base * 2^(attempt-1))
            queue_size: Maximum queued notifications
        """
        self.sender = sender or log_sender
        self.max_retries = max_retries
        self.retry_delay_base = retry_delay_base
        self.queue: asyncio.Queue[CertificateNotification] = asyncio.Queue(maxsize=queue_size)
        self._worker: asyncio.Task | None = None
        self.delivered = 0
        self.gave_up = 0

    def submit(self, notification: CertificateNotification) -> bool:
        """
        Enqueue a notification without waiting.

        Returns:
            True if queued, False if the queue was full
        """
        try:
            self.queue.put_nowait(notification)
        except asyncio.QueueFull:
            logger.warning(
                f"Notification queue full - dropping notification for "
                f"certificate {notification.token_id}"
            )
            return False
        return True

    def start(self) -> None:
        """Start the delivery worker on the running loop."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="notification-dispatcher")
            logger.info("Notification dispatcher started")

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Deliver what is queued (bounded by drain_timeout), then stop the worker."""
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self.queue.join(), timeout=drain_timeout)
        except TimeoutError:
            logger.warning(
                f"Notification dispatcher stopped with {self.queue.qsize()} undelivered"
            )
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

        close = getattr(self.sender, "close", None)
        if close is not None:
            await close()
        logger.info("Notification dispatcher stopped")

    async def _run(self) -> None:
        while True:
            notification = await self.queue.get()
            try:
                await self.deliver(notification)
            finally:
                self.queue.task_done()

    async def deliver(self, notification: CertificateNotification) -> bool:
        """
        Deliver one notification with exponential backoff.

        Returns:
            True if delivered, False after giving up
        """
        payload = notification.to_payload()
        for attempt in range(self.max_retries + 1):
            try:
                await self.sender(payload)
                self.delivered += 1
                return True
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if attempt >= self.max_retries:
                    break
                delay = self.retry_delay_base * 2**attempt
                logger.warning(
                    f"Notification for certificate {notification.token_id} failed "
                    f"(attempt {attempt + 1}/{self.max_retries + 1}): {e}. "
                    f"Retrying in {delay}s"
                )
                await asyncio.sleep(delay)

        self.gave_up += 1
        logger.error(
            f"Giving up on notification for certificate {notification.token_id} "
            f"after {self.max_retries + 1} attempts"
        )
        return False
