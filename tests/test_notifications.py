import pytest
import requests

from dispatch.notifications import (
    LogTransport,
    Notification,
    NotificationDispatcher,
    NotificationEvent,
    NotificationTransportError,
    WebhookTransport,
    build_transport,
)
from dispatch.service import FoodBridgeService
from common.config import Settings
from donations.models import DonationStatus

from .conftest import NOW, FailingTransport, RecordingTransport


class FakeResponse:

    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


class FakeSession:

    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse()
        self.error = error
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def test_notify_only_queues():
    transport = RecordingTransport()
    dispatcher = NotificationDispatcher(transport)

    dispatcher.notify("ngo_1", NotificationEvent.NEW_DONATION_NEARBY, {"donation_id": "d1"})

    assert transport.sent == []
    assert dispatcher.pending() == 1
    assert dispatcher.drain() == 1
    assert transport.sent[0].payload == {"donation_id": "d1"}
    assert dispatcher.stats["sent"] == 1


def test_transport_failure_is_counted_not_raised():
    dispatcher = NotificationDispatcher(FailingTransport())
    dispatcher.notify("ngo_1", NotificationEvent.DONATION_EXPIRED)

    assert dispatcher.drain() == 1
    assert dispatcher.stats["failed"] == 1
    assert dispatcher.stats["sent"] == 0


def test_full_queue_drops_instead_of_blocking():
    dispatcher = NotificationDispatcher(RecordingTransport(), max_queue_size=1)
    dispatcher.notify("a", NotificationEvent.DONATION_ACCEPTED)
    dispatcher.notify("b", NotificationEvent.DONATION_ACCEPTED)

    assert dispatcher.stats["queued"] == 1
    assert dispatcher.stats["dropped"] == 1


def test_worker_delivers_in_background():
    transport = RecordingTransport()
    dispatcher = NotificationDispatcher(transport)
    dispatcher.start()
    for i in range(5):
        dispatcher.notify(f"ngo_{i}", NotificationEvent.NEW_DONATION_NEARBY)
    dispatcher.stop(timeout=5)

    assert [n.recipient_id for n in transport.sent] == [f"ngo_{i}" for i in range(5)]
    assert not dispatcher.is_running


def test_webhook_posts_json():
    session = FakeSession()
    transport = WebhookTransport("http://hooks.local/notify", timeout=2.5, session=session)
    dispatcher = NotificationDispatcher(transport)

    dispatcher.notify("ngo_1", NotificationEvent.DONATION_REASSIGNED, {"attempt": 1}, title="Pickup Timeout")
    dispatcher.drain()

    [call] = session.calls
    assert call["url"] == "http://hooks.local/notify"
    assert call["timeout"] == 2.5
    assert call["json"]["event"] == "donation_reassigned"
    assert call["json"]["recipient_id"] == "ngo_1"
    assert call["json"]["payload"] == {"attempt": 1}
    assert call["json"]["title"] == "Pickup Timeout"


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(response=FakeResponse(500)),
        FakeSession(error=requests.ConnectionError("refused")),
    ],
)
def test_webhook_errors_are_wrapped(session):
    transport = WebhookTransport("http://hooks.local/notify", session=session)
    dispatcher = NotificationDispatcher(transport)

    with pytest.raises(NotificationTransportError):
        transport.send(Notification("probe", NotificationEvent.DONATION_EXPIRED))

    dispatcher.notify("ngo_1", NotificationEvent.DONATION_EXPIRED)
    dispatcher.drain()
    assert dispatcher.stats["failed"] == 1


def test_build_transport():
    assert isinstance(build_transport(None), LogTransport)
    assert isinstance(build_transport("http://hooks.local/notify"), WebhookTransport)
    with pytest.raises(ValueError):
        WebhookTransport("")


def test_failed_notification_never_rolls_back_a_transition(clock, donations, organizations, pickup_logs,
                                                          make_organization, make_donation):
    service = FoodBridgeService(
        Settings(),
        donations=donations,
        organizations=organizations,
        pickup_logs=pickup_logs,
        notifier=NotificationDispatcher(FailingTransport()),
        clock=clock,
    )
    make_organization("ngo_a", km=1)
    donation = make_donation()

    service.actions.accept(donation.id, "ngo_a", now=NOW)
    service.notifier.drain()

    assert service.notifier.stats["failed"] == 1
    assert donations.get(donation.id).status == DonationStatus.ACCEPTED

