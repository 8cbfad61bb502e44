from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import List, Tuple

import httpx
import pytest

from services.alerts import AlertEvent
from services.notifications import (
    AlertFeed,
    BestEffortNotifier,
    Permission,
    WebhookChannel,
    dispatch_alert,
)


def _event(key: str = "temp_high") -> AlertEvent:
    return AlertEvent(
        key=key,
        title="High temperature",
        message="Temperature 41°C is above the maximum 40°C",
        metric="temp",
        value=41.0,
        bound=40.0,
        fired_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


class FakeChannel:
    def __init__(self, grant: bool = True, fail_permission: bool = False, fail_send: bool = False) -> None:
        self.grant = grant
        self.fail_permission = fail_permission
        self.fail_send = fail_send
        self.permission_requests = 0
        self.sent: List[Tuple[str, str]] = []

    def request_permission(self) -> bool:
        self.permission_requests += 1
        if self.fail_permission:
            raise RuntimeError("prompt blocked")
        return self.grant

    def send(self, title: str, body: str) -> None:
        if self.fail_send:
            raise RuntimeError("offline")
        self.sent.append((title, body))


class BlockingChannel(FakeChannel):
    def __init__(self) -> None:
        super().__init__()
        self.release = threading.Event()

    def send(self, title: str, body: str) -> None:
        self.release.wait(timeout=5)
        super().send(title, body)


def test_delivery_runs_off_the_calling_thread() -> None:
    channel = BlockingChannel()
    notifier = BestEffortNotifier(channel)

    notifier(_event())

    assert channel.sent == []
    channel.release.set()
    notifier.shutdown(wait=True)
    assert channel.sent == [("High temperature", "Temperature 41°C is above the maximum 40°C")]


def test_alerts_after_shutdown_are_dropped(caplog) -> None:
    channel = FakeChannel()
    notifier = BestEffortNotifier(channel)
    notifier.shutdown(wait=True)

    with caplog.at_level(logging.WARNING):
        notifier(_event())

    assert channel.sent == []
    assert any("shut down" in record.getMessage() for record in caplog.records)


def test_feed_returns_newest_first_and_is_bounded() -> None:
    feed = AlertFeed(maxlen=2)
    for key in ("a", "b", "c"):
        feed(_event(key))

    assert [event.key for event in feed.recent()] == ["c", "b"]
    assert [event.key for event in feed.recent(limit=1)] == ["c"]
    assert len(feed) == 2


def test_permission_is_requested_lazily_once() -> None:
    channel = FakeChannel()
    notifier = BestEffortNotifier(channel)

    assert channel.permission_requests == 0
    notifier(_event())
    notifier(_event())
    notifier.shutdown(wait=True)

    assert channel.permission_requests == 1
    assert notifier.permission is Permission.granted
    assert len(channel.sent) == 2


def test_denied_permission_sends_nothing() -> None:
    channel = FakeChannel(grant=False)
    notifier = BestEffortNotifier(channel)

    notifier(_event())
    notifier(_event())

    assert notifier.permission is Permission.denied
    assert channel.permission_requests == 1
    assert channel.sent == []


def test_permission_failure_is_logged_and_retried(caplog) -> None:
    channel = FakeChannel(fail_permission=True)
    notifier = BestEffortNotifier(channel)

    with caplog.at_level(logging.WARNING):
        notifier(_event())
        notifier(_event())

    assert notifier.permission is Permission.default
    assert channel.permission_requests == 2
    assert any("permission request failed" in record.getMessage() for record in caplog.records)


def test_send_failure_is_swallowed(caplog) -> None:
    notifier = BestEffortNotifier(FakeChannel(fail_send=True))

    with caplog.at_level(logging.WARNING):
        notifier(_event())
        notifier.shutdown(wait=True)

    assert any("delivery failed" in record.getMessage() for record in caplog.records)


def test_dispatch_continues_after_failing_sink() -> None:
    received: List[AlertEvent] = []

    def broken(_event: AlertEvent) -> None:
        raise RuntimeError("boom")

    dispatch_alert(_event(), [broken, received.append])

    assert [event.key for event in received] == ["temp_high"]


def test_webhook_without_url_declines_permission() -> None:
    assert WebhookChannel(None).request_permission() is False
    assert WebhookChannel("https://hooks.example.com/biogas").request_permission() is True


def test_webhook_posts_json(monkeypatch) -> None:
    calls = []

    def fake_post(url, json, timeout):
        calls.append((url, json, timeout))
        return httpx.Response(204, request=httpx.Request("POST", url))

    monkeypatch.setattr("services.notifications.httpx.post", fake_post)

    WebhookChannel("https://hooks.example.com/biogas", timeout=2.0).send("Title", "Body")

    assert calls == [("https://hooks.example.com/biogas", {"title": "Title", "body": "Body"}, 2.0)]


def test_webhook_error_status_raises(monkeypatch) -> None:
    def fake_post(url, json, timeout):
        return httpx.Response(500, request=httpx.Request("POST", url))

    monkeypatch.setattr("services.notifications.httpx.post", fake_post)

    with pytest.raises(httpx.HTTPStatusError):
        WebhookChannel("https://hooks.example.com/biogas").send("Title", "Body")
