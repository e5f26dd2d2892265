"""
Notification Delivery Sinks

The tracker hands every message to a `NotificationSink`; how it reaches the
user's device is the sink's concern.

Sinks:
------
- `LoggingNotificationSink`: Writes each message to the log. Default when no
  delivery endpoint is configured.
- `WebhookNotificationSink`: POSTs each message as JSON to a notification
  gateway (the service that owns device tokens and push delivery).

Webhook body:
-------------
    {
        "user_id": "...",
        "title": "⚠️ TRANSFER ALERT",
        "body": "Drop at Rumuokoro Junction in 4 minutes ...",
        "data": {"type": "transfer_alert", "journeyId": "...", "eta": "4", ...}
    }

Exceptions:
-----------
- `NotificationDeliveryError`: Raised when the gateway rejects a message.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Protocol

import requests

from app.core.config import WEBHOOK_REQUEST_TIMEOUT
from app.notifications.messages import Notification

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    """
    Contract for delivering a notification to every device of a user.
    """

    async def send_to_user(self, user_id: str, notification: Notification) -> None:
        ...

    def close(self) -> None:
        ...


class LoggingNotificationSink:
    """Logs notifications instead of delivering them."""

    async def send_to_user(self, user_id: str, notification: Notification) -> None:
        logger.info(
            f"Notification for user {user_id} [{notification.type}] "
            f"{notification.title}: {notification.body!r}"
        )

    def close(self) -> None:
        return None


class WebhookNotificationSink:
    """
    Delivers notifications to an HTTP notification gateway.

    `requests` is synchronous; posts run on a small thread pool so that a slow
    gateway never blocks the event loop.
    """

    def __init__(
        self,
        url: str,
        timeout: float = WEBHOOK_REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._executor = ThreadPoolExecutor(max_workers=4)

    def _post(self, user_id: str, notification: Notification) -> int:
        response = self._session.post(
            self.url,
            json={
                "user_id": user_id,
                "title": notification.title,
                "body": notification.body,
                "data": notification.to_data(),
            },
            timeout=self.timeout,
        )
        return response.status_code

    async def send_to_user(self, user_id: str, notification: Notification) -> None:
        """
        Posts one notification to the gateway.

        Raises:
            NotificationDeliveryError: If the gateway answers with a non-2xx status.
            requests.RequestException: On connection errors or timeouts.
        """
        loop = asyncio.get_running_loop()
        status_code = await loop.run_in_executor(self._executor, self._post, user_id, notification)

        if not 200 <= status_code < 300:
            raise NotificationDeliveryError(
                f"Gateway rejected {notification.type} for user {user_id} with status {status_code}."
            )
        logger.debug(f"Delivered {notification.type} to user {user_id} (status {status_code}).")

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        self._session.close()


class NotificationDeliveryError(Exception):
    """Raised when the notification gateway rejects a message."""
