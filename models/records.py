"""Domain models shared across services."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping, Optional

from models.timestamps import resolve_timestamp

METRIC_FIELDS = ("ph", "temp", "laju")


@dataclass(frozen=True, slots=True)
class Reading:
    """A single digester sample as delivered by the data source."""

    id: str
    timestamp: Optional[datetime]
    ph: Optional[float] = None
    temp: Optional[float] = None
    laju: Optional[float] = None

    def metric(self, name: str) -> Optional[float]:
        if name not in METRIC_FIELDS:
            return None
        return getattr(self, name)

    @classmethod
    def from_document(
        cls,
        doc_id: Any,
        data: Mapping[str, Any],
        create_time: Optional[datetime] = None,
        update_time: Optional[datetime] = None,
    ) -> "Reading":
        """Build a reading from a raw source document.

        Missing timestamps fall back to the document create time, then to its
        update time, then to the current instant.
        """
        return cls(
            id=str(doc_id),
            timestamp=resolve_timestamp(data.get("timestamp"), fallback=create_time or update_time),
            ph=coerce_metric(data.get("ph")),
            temp=coerce_metric(data.get("temp")),
            laju=coerce_metric(data.get("laju")),
        )


@dataclass(frozen=True, slots=True)
class DailyVolumeBucket:
    """Integrated flow volume for one local calendar day."""

    day: date
    total_liters: float


def coerce_metric(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or ``None`` when it is not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None
