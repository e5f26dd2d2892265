import logging

import pytest

from app.notifications.messages import build_transfer_alert
from app.notifications.sink import (
    LoggingNotificationSink,
    NotificationDeliveryError,
    WebhookNotificationSink,
)

from conftest import make_two_leg_journey


class FakeResponse:
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code


class FakeSession:
    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests = []
        self.closed = False

    def post(self, url, json=None, timeout=None):
        self.requests.append({"url": url, "json": json, "timeout": timeout})
        return FakeResponse(self.status_code)

    def close(self):
        self.closed = True


@pytest.fixture
def notification():
    journey = make_two_leg_journey()
    return build_transfer_alert(
        journey, {"name": "Rumuokoro Junction", "distance": 1000.0, "eta": 4}, journey.legs[1]
    )


async def test_logging_sink(caplog, notification):
    sink = LoggingNotificationSink()
    with caplog.at_level(logging.INFO, logger="app.notifications.sink"):
        await sink.send_to_user("user-1", notification)
    assert "user-1" in caplog.text
    assert "[transfer_alert]" in caplog.text


async def test_webhook_sink_posts_flattened_payload(notification):
    session = FakeSession()
    sink = WebhookNotificationSink("http://gateway.local/notify", timeout=3, session=session)
    try:
        await sink.send_to_user("user-1", notification)
    finally:
        sink.close()

    request = session.requests[0]
    assert request["url"] == "http://gateway.local/notify"
    assert request["timeout"] == 3
    assert request["json"] == {
        "user_id": "user-1",
        "title": "⚠️ TRANSFER ALERT",
        "body": notification.body,
        "data": {
            "type": "transfer_alert",
            "journeyId": "journey-2",
            "transferLocation": "Rumuokoro Junction",
            "eta": "4",
            "nextVehicle": "taxi",
        },
    }
    assert session.closed


async def test_webhook_sink_raises_on_rejection(notification):
    sink = WebhookNotificationSink("http://gateway.local/notify", session=FakeSession(status_code=503))
    try:
        with pytest.raises(NotificationDeliveryError):
            await sink.send_to_user("user-1", notification)
    finally:
        sink.close()
