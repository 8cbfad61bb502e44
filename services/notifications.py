"""Alert sinks: the in-app feed and best-effort external notifications."""

from __future__ import annotations

import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, Deque, Iterable, List, Optional, Protocol

import httpx

from services.alerts import AlertEvent

logger = logging.getLogger(__name__)

AlertSink = Callable[[AlertEvent], None]


class AlertFeed:
    """Bounded history of alerts shown inside the dashboard, newest first."""

    def __init__(self, maxlen: int = 100) -> None:
        self.maxlen = maxlen
        self._events: Deque[AlertEvent] = deque(maxlen=maxlen)

    def __call__(self, event: AlertEvent) -> None:
        self._events.append(event)

    def recent(self, limit: int = 20) -> List[AlertEvent]:
        history = list(self._events)
        history.reverse()
        return history[:limit]

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)


class NotificationChannel(Protocol):
    def request_permission(self) -> bool:
        ...

    def send(self, title: str, body: str) -> None:
        ...


class Permission(str, Enum):
    default = "default"
    granted = "granted"
    denied = "denied"


class BestEffortNotifier:
    """Forwards alerts to an external channel without ever raising.

    Permission is requested on the first alert rather than at startup. A
    failed request leaves the permission undecided so the next alert retries.
    Delivery runs on a worker thread so the caller never waits on the channel.
    """

    def __init__(
        self,
        channel: NotificationChannel,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self._channel = channel
        self.permission = Permission.default
        self.executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="alert-notify"
        )

    def __call__(self, event: AlertEvent) -> None:
        if self.permission is Permission.default:
            try:
                granted = self._channel.request_permission()
            except Exception as exc:  # noqa: BLE001 - permission failures are non-fatal
                logger.warning(
                    "Notification permission request failed",
                    extra={"alert_key": event.key, "reason": str(exc)},
                )
                return
            self.permission = Permission.granted if granted else Permission.denied

        if self.permission is not Permission.granted:
            return

        try:
            self.executor.submit(self._deliver, event)
        except RuntimeError:
            logger.warning(
                "Notifier is shut down; dropping alert",
                extra={"alert_key": event.key},
            )

    def shutdown(self, wait: bool = False) -> None:
        """Stop the delivery worker; ``wait=True`` drains queued alerts first."""
        self.executor.shutdown(wait=wait, cancel_futures=not wait)

    def _deliver(self, event: AlertEvent) -> None:
        try:
            self._channel.send(event.title, event.message)
        except Exception as exc:  # noqa: BLE001 - delivery is best effort
            logger.warning(
                "Notification delivery failed",
                extra={"alert_key": event.key, "reason": str(exc)},
            )


class WebhookChannel:
    """Posts alerts as JSON to a configured webhook URL."""

    def __init__(self, url: Optional[str], timeout: float = 5.0) -> None:
        self.url = url
        self._timeout = timeout

    def request_permission(self) -> bool:
        if not self.url:
            logger.info("No alert webhook configured; external notifications disabled")
            return False
        return httpx.URL(self.url).scheme in {"http", "https"}

    def send(self, title: str, body: str) -> None:
        response = httpx.post(
            self.url,
            json={"title": title, "body": body},
            timeout=self._timeout,
        )
        response.raise_for_status()


def dispatch_alert(event: AlertEvent, sinks: Iterable[AlertSink]) -> None:
    """Deliver one event to every sink; a failing sink does not stop the rest."""
    for sink in sinks:
        try:
            sink(event)
        except Exception:  # noqa: BLE001 - sinks are external collaborators
            logger.exception("Alert sink failed", extra={"alert_key": event.key})
