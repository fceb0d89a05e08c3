"""Tests for reminder delivery channels."""

import asyncio
import json
import logging
import smtplib
from datetime import datetime, timezone

import httpx
import pytest

import notifier as notifier_module
from database import DeliveryTypeEnum
from notifier import Notifier, NotifyError, ReminderNotification


def make_notification(delivery_type=DeliveryTypeEnum.EMAIL, recipient="alice@example.com"):
    return ReminderNotification(
        event_id="evt-1",
        reminder_id="rem-1",
        event_name="Team Meeting",
        event_description="Weekly sync",
        event_instant=datetime(2025, 4, 1, 14, 0, tzinfo=timezone.utc),
        recipient_address=recipient,
        delivery_type=delivery_type,
    )


class FakeSMTP:
    instances = []
    fail_with = None

    def __init__(self, host, port, timeout=None):
        if FakeSMTP.fail_with:
            raise FakeSMTP.fail_with
        self.host = host
        self.port = port
        self.started_tls = False
        self.logged_in = None
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, username, password):
        self.logged_in = (username, password)

    def send_message(self, message):
        self.messages.append(message)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(notifier_module.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


def test_email_reminder_is_sent(fake_smtp):
    notifier = Notifier(
        smtp_host="mail.test", smtp_port=2525, smtp_username="relay", smtp_password="pw",
        smtp_use_tls=True, email_from="planner@test", webhook_url="",
    )

    assert asyncio.run(notifier.notify(make_notification())) is True

    [smtp] = fake_smtp.instances
    assert (smtp.host, smtp.port) == ("mail.test", 2525)
    assert smtp.started_tls
    assert smtp.logged_in == ("relay", "pw")
    [message] = smtp.messages
    assert message["To"] == "alice@example.com"
    assert message["From"] == "planner@test"
    assert message["Subject"] == "Reminder: Team Meeting"
    body = message.get_content()
    assert "scheduled for 2025-04-01 at 14:00" in body
    assert "Description: Weekly sync" in body


def test_email_failure_is_logged_not_raised(fake_smtp, caplog):
    fake_smtp.fail_with = ConnectionRefusedError("connection refused")
    notifier = Notifier(smtp_host="mail.test", webhook_url="")

    with caplog.at_level(logging.ERROR, logger="notifier"):
        assert asyncio.run(notifier.notify(make_notification())) is False

    assert "Failed to send reminder email" in caplog.text


def test_smtp_error_becomes_notify_error(fake_smtp):
    fake_smtp.fail_with = smtplib.SMTPServerDisconnected("gone")
    notifier = Notifier(smtp_host="mail.test", webhook_url="")

    with pytest.raises(NotifyError):
        asyncio.run(notifier.send_email(make_notification()))


def test_email_without_address_is_skipped(fake_smtp):
    notifier = Notifier(webhook_url="")

    assert asyncio.run(notifier.notify(make_notification(recipient=None))) is False
    assert fake_smtp.instances == []


def test_notification_type_is_logged(fake_smtp, caplog):
    notifier = Notifier(webhook_url="")

    with caplog.at_level(logging.INFO, logger="notifier"):
        assert asyncio.run(notifier.notify(make_notification(DeliveryTypeEnum.NOTIFICATION))) is True

    assert "Reminder notification for event: Team Meeting" in caplog.text
    assert fake_smtp.instances == []


def test_unknown_type_uses_log_channel(fake_smtp):
    notifier = Notifier(webhook_url="")
    notification = make_notification(DeliveryTypeEnum("push"))

    assert notification.delivery_type is DeliveryTypeEnum.NOTIFICATION
    assert asyncio.run(notifier.notify(notification)) is True
    assert fake_smtp.instances == []


def _mock_http(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(notifier_module.httpx, "AsyncClient", client_factory)


def test_notification_is_pushed_to_webhook(monkeypatch):
    received = []

    def handler(request):
        received.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True})

    _mock_http(monkeypatch, handler)
    notifier = Notifier(webhook_url="https://push.test/hook")

    assert asyncio.run(notifier.notify(make_notification(DeliveryTypeEnum.NOTIFICATION))) is True

    [payload] = received
    assert payload["event_name"] == "Team Meeting"
    assert payload["event_instant"] == "2025-04-01T14:00:00+00:00"
    assert payload["delivery_type"] == "notification"


def test_webhook_outage_is_logged(monkeypatch, caplog):
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    _mock_http(monkeypatch, handler)
    notifier = Notifier(webhook_url="https://push.test/hook")

    with caplog.at_level(logging.ERROR, logger="notifier"):
        assert asyncio.run(notifier.notify(make_notification(DeliveryTypeEnum.NOTIFICATION))) is True

    assert "Network error while pushing reminder rem-1" in caplog.text


def test_email_with_linefeed_in_event_name_is_not_sent(fake_smtp, caplog):
    notifier = Notifier(smtp_host="mail.test", webhook_url="")
    notification = ReminderNotification(
        event_id="evt-1",
        reminder_id="rem-1",
        event_name="Party\nBcc: x@y.z",
        event_description="",
        event_instant=datetime(2025, 4, 1, 14, 0, tzinfo=timezone.utc),
        recipient_address="alice@example.com",
        delivery_type=DeliveryTypeEnum.EMAIL,
    )

    with caplog.at_level(logging.ERROR, logger="notifier"):
        assert asyncio.run(notifier.notify(notification)) is False

    assert fake_smtp.instances == []
    assert "Cannot build email for reminder rem-1" in caplog.text
