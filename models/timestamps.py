"""Timestamp normalization for readings delivered by the data source."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Mapping, Optional


class TimestampKind(str, Enum):
    """Shapes a source timestamp can arrive in."""

    server = "server"
    epoch_seconds = "epoch_seconds"
    raw = "raw"


_SECONDS_KEYS = ("seconds", "_seconds")
_NANOS_KEYS = ("nanoseconds", "nanos", "_nanoseconds")


@dataclass(frozen=True, slots=True)
class SourceTimestamp:
    """A classified source timestamp, converted to an instant exactly once."""

    kind: TimestampKind
    value: Any

    @classmethod
    def classify(cls, raw: Any) -> Optional["SourceTimestamp"]:
        if raw is None:
            return None
        if isinstance(raw, datetime):
            return cls(TimestampKind.server, raw)
        if isinstance(raw, Mapping) and any(key in raw for key in _SECONDS_KEYS):
            return cls(TimestampKind.epoch_seconds, raw)
        return cls(TimestampKind.raw, raw)

    def to_datetime(self) -> Optional[datetime]:
        if self.kind is TimestampKind.server:
            return _as_utc(self.value)
        if self.kind is TimestampKind.epoch_seconds:
            return _from_epoch_mapping(self.value)
        return _from_raw(self.value)


def resolve_timestamp(
    raw: Any,
    fallback: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """Normalize any supported source timestamp into an aware UTC datetime.

    An absent value resolves to ``fallback`` and then to ``now``. A value that is
    present but cannot be parsed resolves to ``None``.
    """
    source = SourceTimestamp.classify(raw)
    if source is None:
        if fallback is not None:
            return _as_utc(fallback)
        return _as_utc(now) if now is not None else datetime.now(timezone.utc)
    return source.to_datetime()


def to_epoch_mapping(instant: datetime) -> dict[str, int]:
    """Serialize an instant as a ``{seconds, nanoseconds}`` mapping."""
    aware = _as_utc(instant)
    whole = math.floor(aware.timestamp())
    return {"seconds": whole, "nanoseconds": aware.microsecond * 1000}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _from_epoch_mapping(value: Mapping[str, Any]) -> Optional[datetime]:
    seconds = next((value[key] for key in _SECONDS_KEYS if key in value), None)
    nanos = next((value[key] for key in _NANOS_KEYS if key in value), 0)
    try:
        total = float(seconds) + float(nanos or 0) / 1_000_000_000
        return datetime.fromtimestamp(total, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _from_raw(value: Any) -> Optional[datetime]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return None
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError:
            return None
        return _as_utc(parsed)
    return None
