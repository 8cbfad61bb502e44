"""Threshold alerts with per-key cooldown."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from models.records import Reading

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DEFAULT_TEMP_BAND = (32.0, 40.0)
DEFAULT_PH_BAND = (6.8, 8.0)


class AlertLevel(str, Enum):
    """Severity passed to presentation sinks."""

    info = "info"
    warning = "warning"
    danger = "danger"


class AlertPhase(str, Enum):
    """Cooldown state of a single alert key."""

    armed = "armed"
    cool = "cool"


@dataclass(frozen=True)
class MetricBounds:
    """Acceptable band for one monitored metric.

    Example:
        MetricBounds("temp", 32.0, 40.0, label="Temperature", unit="°C")
    """

    metric: str
    min: float
    max: float
    label: str = ""
    unit: str = ""
    low_title: str = ""
    high_title: str = ""

    def __post_init__(self) -> None:
        if self.min > self.max:
            raise ValueError(f"Lower bound exceeds upper bound for {self.metric!r}.")
        label = self.label or self.metric
        if not self.label:
            object.__setattr__(self, "label", label)
        if not self.low_title:
            object.__setattr__(self, "low_title", f"Low {label}")
        if not self.high_title:
            object.__setattr__(self, "high_title", f"High {label}")

    def format(self, value: float) -> str:
        return f"{value:g}{self.unit}"


@dataclass(frozen=True)
class AlertConfig:
    bounds: Sequence[MetricBounds]
    cooldown_ms: int = 30 * 60 * 1000

    @property
    def cooldown(self) -> timedelta:
        return timedelta(milliseconds=self.cooldown_ms)


def default_alert_config(
    temp_min: float = DEFAULT_TEMP_BAND[0],
    temp_max: float = DEFAULT_TEMP_BAND[1],
    ph_min: float = DEFAULT_PH_BAND[0],
    ph_max: float = DEFAULT_PH_BAND[1],
    cooldown_ms: int = 30 * 60 * 1000,
) -> AlertConfig:
    """Reference configuration for a mesophilic digester."""
    return AlertConfig(
        bounds=(
            MetricBounds(
                "temp",
                temp_min,
                temp_max,
                label="Temperature",
                unit="°C",
                low_title="Low temperature",
                high_title="High temperature",
            ),
            MetricBounds("ph", ph_min, ph_max, label="pH", low_title="Low pH", high_title="High pH"),
        ),
        cooldown_ms=cooldown_ms,
    )


@dataclass(frozen=True)
class AlertEvent:
    """A fired alert, ready for display and notification."""

    key: str
    title: str
    message: str
    metric: str
    value: Optional[float]
    bound: Optional[float]
    fired_at: datetime
    level: AlertLevel = AlertLevel.danger


@dataclass
class AlertState:
    """Runtime bookkeeping for one alert key."""

    key: str
    last_fired_at: Optional[datetime] = None
    fire_count: int = 0

    def can_fire(self, now: datetime, cooldown: timedelta) -> bool:
        if self.last_fired_at is None:
            return True
        return now - self.last_fired_at >= cooldown

    def record_fire(self, now: datetime) -> None:
        self.last_fired_at = now
        self.fire_count += 1


@dataclass
class _Breach:
    key: str
    bounds: MetricBounds
    value: float
    bound: float
    below: bool


class AlertEngine:
    """Evaluates the latest reading against the bounds table.

    Each alert key is ``<metric>_low`` or ``<metric>_high`` and owns its own
    cooldown. The last-fired instant is recorded before the event is handed
    back, so a failing sink downstream cannot cause a repeat on the next call.
    """

    def __init__(self, config: AlertConfig, clock: Optional[Clock] = None) -> None:
        self.config = config
        self._clock: Clock = clock or (lambda: datetime.now(timezone.utc))
        self._states: Dict[str, AlertState] = {}
        self._stats = {"evaluations": 0, "fired": 0, "suppressed": 0}

    def evaluate(self, latest: Optional[Reading], now: Optional[datetime] = None) -> List[AlertEvent]:
        if latest is None:
            return []
        now = now or self._clock()
        self._stats["evaluations"] += 1

        fired: List[AlertEvent] = []
        for bounds in self.config.bounds:
            breach = self._check(latest, bounds)
            if breach is None:
                continue

            state = self._states.setdefault(breach.key, AlertState(key=breach.key))
            if not state.can_fire(now, self.config.cooldown):
                self._stats["suppressed"] += 1
                logger.debug("Suppressing alert during cooldown", extra={"alert_key": breach.key})
                continue

            state.record_fire(now)
            self._stats["fired"] += 1
            fired.append(self._build_event(breach, now))
            logger.info(
                "Alert fired",
                extra={
                    "alert_key": breach.key,
                    "metric": bounds.metric,
                    "value": breach.value,
                    "bound": breach.bound,
                },
            )
        return fired

    def phase(self, key: str, now: Optional[datetime] = None) -> AlertPhase:
        state = self._states.get(key)
        if state is None or state.can_fire(now or self._clock(), self.config.cooldown):
            return AlertPhase.armed
        return AlertPhase.cool

    def last_fired_at(self, key: str) -> Optional[datetime]:
        state = self._states.get(key)
        return state.last_fired_at if state else None

    def stats(self) -> Dict[str, int]:
        return {**self._stats, "keys": len(self._states)}

    @staticmethod
    def _check(reading: Reading, bounds: MetricBounds) -> Optional[_Breach]:
        value = reading.metric(bounds.metric)
        if not isinstance(value, (int, float)) or isinstance(value, bool) or not math.isfinite(value):
            return None
        if value < bounds.min:
            return _Breach(f"{bounds.metric}_low", bounds, float(value), bounds.min, below=True)
        if value > bounds.max:
            return _Breach(f"{bounds.metric}_high", bounds, float(value), bounds.max, below=False)
        return None

    @staticmethod
    def _build_event(breach: _Breach, now: datetime) -> AlertEvent:
        bounds = breach.bounds
        if breach.below:
            title = bounds.low_title
            message = (
                f"{bounds.label} {bounds.format(breach.value)} is below the minimum "
                f"{bounds.format(breach.bound)}"
            )
        else:
            title = bounds.high_title
            message = (
                f"{bounds.label} {bounds.format(breach.value)} is above the maximum "
                f"{bounds.format(breach.bound)}"
            )
        return AlertEvent(
            key=breach.key,
            title=title,
            message=message,
            metric=bounds.metric,
            value=breach.value,
            bound=breach.bound,
            fired_at=now,
        )
