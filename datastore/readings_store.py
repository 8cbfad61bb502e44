from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Sequence
from uuid import uuid4

from models.records import Reading
from models.timestamps import resolve_timestamp, to_epoch_mapping
from settings import get_settings

logger = logging.getLogger(__name__)

OnChange = Callable[[List[Reading]], None]
OnError = Callable[[Exception], None]


class SourceError(RuntimeError):
    """Raised when the readings source cannot serve a request."""


class Subscription:
    """Handle for one live listener. ``cancel`` may be called any number of times."""

    def __init__(self, subscription_id: str, on_cancel: Callable[[str], None]) -> None:
        self.id = subscription_id
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._on_cancel(self.id)


class _Listener:
    __slots__ = ("on_change", "on_error", "limit")

    def __init__(self, on_change: OnChange, on_error: Optional[OnError], limit: int) -> None:
        self.on_change = on_change
        self.on_error = on_error
        self.limit = limit


class ReadingsStore:
    """Append-only collection of sensor documents with realtime listeners.

    Documents keep their raw shape: the ``timestamp`` field holds a server
    assigned ``datetime`` in memory and a ``{seconds, nanoseconds}`` mapping once
    persisted. Normalization into :class:`Reading` happens on every read.
    """

    def __init__(
        self,
        name: str,
        persistence_path: Optional[Path] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._listeners: Dict[str, _Listener] = {}
        self._lock = Lock()
        self._closed = False
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def add(self, ph: Any, temp: Any, laju: Any) -> str:
        """Append a reading stamped with the server time and notify listeners."""
        try:
            data = {"ph": float(ph), "temp": float(temp), "laju": float(laju)}
        except (TypeError, ValueError) as exc:
            raise ValueError("ph, temp and laju must be numeric.") from exc

        doc_id = uuid4().hex
        now = self._clock()
        with self._lock:
            self._ensure_open()
            data["timestamp"] = now
            self._documents[doc_id] = {"data": data, "create_time": now}
            self._persist()
            listeners = list(self._listeners.items())

        logger.debug("Stored reading", extra={"collection": self.name, "reading_id": doc_id})
        for subscription_id, listener in listeners:
            self._notify(subscription_id, listener)
        return doc_id

    def latest(self, limit: int = 200) -> List[Reading]:
        """One-shot fetch of the newest ``limit`` readings, returned oldest first."""
        with self._lock:
            self._ensure_open()
            documents = list(self._documents.items())
        return self._window(documents, limit)

    def subscribe(
        self,
        on_change: OnChange,
        limit: int = 200,
        on_error: Optional[OnError] = None,
    ) -> Subscription:
        """Register a listener that receives the full window after every change.

        The current window is delivered immediately.
        """
        if not callable(on_change):
            raise TypeError("on_change callback required")
        subscription_id = uuid4().hex[:8]
        listener = _Listener(on_change, on_error, limit)
        with self._lock:
            self._ensure_open()
            self._listeners[subscription_id] = listener

        logger.info(
            "Listener subscribed",
            extra={"collection": self.name, "subscription_id": subscription_id},
        )
        self._notify(subscription_id, listener)
        return Subscription(subscription_id, self._unsubscribe)

    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._listeners.clear()

    def _unsubscribe(self, subscription_id: str) -> None:
        with self._lock:
            removed = self._listeners.pop(subscription_id, None)
        if removed is not None:
            logger.info(
                "Listener unsubscribed",
                extra={"collection": self.name, "subscription_id": subscription_id},
            )

    def _notify(self, subscription_id: str, listener: _Listener) -> None:
        with self._lock:
            if subscription_id not in self._listeners:
                return
            documents = list(self._documents.items())
        try:
            listener.on_change(self._window(documents, listener.limit))
        except Exception as exc:  # noqa: BLE001 - listener failures must not break writes
            logger.exception(
                "Listener failed to handle snapshot",
                extra={"collection": self.name, "subscription_id": subscription_id},
            )
            if listener.on_error is not None:
                listener.on_error(exc)

    @staticmethod
    def _window(documents: Sequence[tuple[str, Dict[str, Any]]], limit: int) -> List[Reading]:
        readings = [
            Reading.from_document(
                doc_id,
                document["data"],
                create_time=document.get("create_time"),
            )
            for doc_id, document in documents
        ]
        ordered = [reading for reading in readings if reading.timestamp is not None]
        ordered.sort(key=lambda reading: reading.timestamp, reverse=True)
        newest = ordered[:limit]
        newest.reverse()
        return newest

    def _ensure_open(self) -> None:
        if self._closed:
            raise SourceError(f"Readings store {self.name!r} is closed.")

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            doc_id: {
                "data": _serialize_data(document["data"]),
                "create_time": (
                    document["create_time"].isoformat() if document["create_time"] else None
                ),
            }
            for doc_id, document in self._documents.items()
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            logger.warning(
                "Ignoring unreadable readings file",
                extra={"collection": self.name, "reason": str(self.persistence_path)},
            )
            data = {}

        if not isinstance(data, dict):
            logger.warning(
                "Ignoring unreadable readings file",
                extra={"collection": self.name, "reason": "top-level value is not an object"},
            )
            return

        for doc_id, payload in data.items():
            if not isinstance(payload, dict) or not isinstance(payload.get("data") or {}, dict):
                logger.warning(
                    "Skipping malformed stored reading",
                    extra={"collection": self.name, "reading_id": doc_id},
                )
                continue
            create_time = resolve_timestamp(payload.get("create_time"), now=self._clock())
            self._documents[doc_id] = {
                "data": dict(payload.get("data") or {}),
                "create_time": create_time,
            }


def _serialize_data(data: Dict[str, Any]) -> Dict[str, Any]:
    serialized = dict(data)
    timestamp = serialized.get("timestamp")
    if isinstance(timestamp, datetime):
        serialized["timestamp"] = to_epoch_mapping(timestamp)
    return serialized


@lru_cache
def build_default_store(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> ReadingsStore:
    settings = get_settings()
    store_name = settings.collection if name is None else name
    store_path = settings.persistence_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return ReadingsStore(name=store_name, persistence_path=persistence)
