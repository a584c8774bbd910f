import os
import sys
from datetime import datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from mecalink.models import RequestLocation, ServiceRequest
from mecalink.services.notification_store import NotificationStore
from mecalink.services.push_sender import PushSender


class FakeSender(PushSender):
    def __init__(self, invalid=None):
        super().__init__(credentials_path=None)
        self.sent = []
        self.invalid = list(invalid or [])

    def send(self, tokens, title, body, data):
        self.sent.append((sorted(tokens), title, data["deep_link"]))
        return [token for token in tokens if token in self.invalid]


def _request():
    now = datetime.now(timezone.utc).isoformat()
    return ServiceRequest(
        id="sr_notify",
        client_id="acct_client_demo",
        provider_id="gar_1",
        provider_name="Garage du Centre",
        description="Overheating engine",
        location=RequestLocation(latitude=48.85, longitude=2.35),
        status="accepted",
        created_at=now,
        updated_at=now,
    )


def test_request_event_notifies_each_recipient():
    sender = FakeSender()
    store = NotificationStore(sender=sender)
    store.register_device_token("acct_client_demo", "token-a")

    store.notify_request_event("accepted", _request(), ["acct_client_demo"])

    records = store.list_for_account("acct_client_demo")
    assert len(records) == 1
    assert records[0].title == "Request accepted"
    assert records[0].body == "Garage du Centre accepted your request"
    assert records[0].deep_link == "service-request:sr_notify"
    assert sender.sent == [(["token-a"], "Request accepted", "service-request:sr_notify")]
    assert store.list_for_account("acct_garage_1") == []


def test_invalid_device_tokens_are_dropped():
    sender = FakeSender(invalid=["stale-token"])
    store = NotificationStore(sender=sender)
    store.register_device_token("acct_client_demo", "stale-token")
    store.register_device_token("acct_client_demo", "good-token")
    store.register_device_token("acct_client_demo", "   ")

    store.create("acct_client_demo", "First", "body")
    store.create("acct_client_demo", "Second", "body")

    assert sender.sent[0][0] == ["good-token", "stale-token"]
    assert sender.sent[1][0] == ["good-token"]


def test_mark_read_is_scoped_to_owner():
    store = NotificationStore(sender=FakeSender())
    record = store.create("acct_client_demo", "Hello", "body")

    assert store.mark_read("acct_garage_1", record.id) is None
    updated = store.mark_read("acct_client_demo", record.id)
    assert updated.read is True
    assert store.list_for_account("acct_client_demo", unread_only=True) == []


def test_push_sender_without_credentials_is_disabled():
    sender = PushSender(credentials_path=None)
    assert sender.enabled is False
    assert sender.send(["token"], "title", "body", {}) == []
