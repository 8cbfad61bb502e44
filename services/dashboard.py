"""Reaction to incoming reading batches: charts, daily volume and alerts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone, tzinfo
from functools import lru_cache
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from datastore.readings_store import ReadingsStore, SourceError, Subscription, build_default_store
from models.records import DailyVolumeBucket, Reading
from services.alerts import (
    DEFAULT_PH_BAND,
    DEFAULT_TEMP_BAND,
    AlertEngine,
    AlertEvent,
    AlertLevel,
    default_alert_config,
)
from services.buffer import TimeSeriesBuffer
from services.integrator import RateIntegrator
from services.notifications import (
    AlertFeed,
    AlertSink,
    BestEffortNotifier,
    WebhookChannel,
    dispatch_alert,
)
from settings import get_settings

logger = logging.getLogger(__name__)

LABEL_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class TopValues:
    """Most recent known value of each metric for the summary cards."""

    ph: Optional[float] = None
    temp: Optional[float] = None
    laju: Optional[float] = None

    def merged_with(self, reading: Reading) -> "TopValues":
        """Take the reading's values, keeping the previous ones where it has none."""
        return replace(
            self,
            ph=self.ph if reading.ph is None else reading.ph,
            temp=self.temp if reading.temp is None else reading.temp,
            laju=self.laju if reading.laju is None else reading.laju,
        )


@dataclass(frozen=True)
class ChartUpdate:
    """Chart-ready view of the current window."""

    labels: List[str] = field(default_factory=list)
    ph: List[Optional[float]] = field(default_factory=list)
    temp: List[Optional[float]] = field(default_factory=list)
    laju: List[Optional[float]] = field(default_factory=list)
    daily_volume: List[DailyVolumeBucket] = field(default_factory=list)
    top: TopValues = field(default_factory=TopValues)
    latest_id: Optional[str] = None
    updated_at: Optional[datetime] = None


ChartSink = Callable[[ChartUpdate], None]

TEST_READING = {"ph": 8.5, "temp": 45.0, "laju": 4.2}


class DashboardService:
    """Coordinates the live subscription, the reading window and alerting."""

    def __init__(
        self,
        store: ReadingsStore,
        alert_engine: AlertEngine,
        buffer: Optional[TimeSeriesBuffer] = None,
        integrator: Optional[RateIntegrator] = None,
        feed: Optional[AlertFeed] = None,
        notifier: Optional[BestEffortNotifier] = None,
        alert_sinks: Iterable[AlertSink] = (),
        chart_sinks: Iterable[ChartSink] = (),
        window_size: int = 200,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self.store = store
        self.alert_engine = alert_engine
        self.buffer = buffer if buffer is not None else TimeSeriesBuffer(maxlen=window_size)
        self.integrator = integrator if integrator is not None else RateIntegrator(tz=tz)
        self.feed = feed if feed is not None else AlertFeed()
        self.window_size = window_size
        self.notifier = notifier
        self._alert_sinks: List[AlertSink] = [self.feed]
        if notifier is not None:
            self._alert_sinks.append(notifier)
        self._alert_sinks.extend(alert_sinks)
        self._chart_sinks: List[ChartSink] = list(chart_sinks)
        self._tz = tz
        self._subscription: Optional[Subscription] = None
        self._view = ChartUpdate()

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._subscription

    def connect(self) -> Subscription:
        """Start the live subscription; only one may be active at a time."""
        if self._subscription is not None and self._subscription.active:
            raise RuntimeError("A subscription is already active; use resubscribe().")
        self._subscription = self.store.subscribe(
            self.handle_batch,
            limit=self.window_size,
            on_error=self._on_source_error,
        )
        return self._subscription

    def resubscribe(self, previous: Subscription) -> Subscription:
        """Cancel ``previous`` and open a fresh subscription."""
        if previous is not self._subscription:
            raise ValueError("Only the current subscription can be replaced.")
        previous.cancel()
        self._subscription = None
        return self.connect()

    def disconnect(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def handle_batch(self, rows: Sequence[Reading], now: Optional[datetime] = None) -> ChartUpdate:
        """Apply a full window from the source and fan out the results."""
        if not rows:
            logger.debug("Ignoring empty batch")
            return self._view

        self.buffer.replace(rows)
        ordered = self.buffer.all()
        latest = self.buffer.latest()
        daily = self.integrator.integrate_daily(ordered)

        top = self._view.top.merged_with(latest) if latest is not None else self._view.top
        self._view = ChartUpdate(
            labels=[self._label(reading.timestamp) for reading in ordered],
            ph=[reading.ph for reading in ordered],
            temp=[reading.temp for reading in ordered],
            laju=[reading.laju for reading in ordered],
            daily_volume=daily,
            top=top,
            latest_id=latest.id if latest is not None else None,
            updated_at=now or datetime.now(timezone.utc),
        )
        logger.info(
            "Applied reading batch",
            extra={"row_count": len(ordered), "day_count": len(daily)},
        )

        for sink in self._chart_sinks:
            try:
                sink(self._view)
            except Exception:  # noqa: BLE001 - chart sinks degrade to no-ops
                logger.exception("Chart sink failed")

        for event in self.alert_engine.evaluate(latest, now=now):
            dispatch_alert(event, self._alert_sinks)
        return self._view

    def snapshot(self) -> ChartUpdate:
        return self._view

    def daily_volume(self) -> List[DailyVolumeBucket]:
        return self.integrator.integrate_daily(self.buffer.all())

    def fetch_once(self, limit: Optional[int] = None) -> List[Reading]:
        """Read the newest readings without touching the live window."""
        try:
            return self.store.latest(limit or self.window_size)
        except SourceError as exc:
            logger.error("One-shot fetch failed", extra={"reason": str(exc)})
            raise

    def record_reading(self, ph: float, temp: float, laju: float) -> str:
        reading_id = self.store.add(ph=ph, temp=temp, laju=laju)
        logger.info("Recorded reading", extra={"reading_id": reading_id})
        return reading_id

    def trigger_test_alert(self, now: Optional[datetime] = None) -> List[AlertEvent]:
        """Run a simulated out-of-range reading through the alert path."""
        now = now or datetime.now(timezone.utc)
        fake = Reading(id="test", timestamp=now, **TEST_READING)
        events = self.alert_engine.evaluate(fake, now=now)
        events.append(
            AlertEvent(
                key="test",
                title="Test alert",
                message="Simulated temperature and pH out of range",
                metric="test",
                value=None,
                bound=None,
                fired_at=now,
                level=AlertLevel.danger,
            )
        )
        for event in events:
            dispatch_alert(event, self._alert_sinks)
        return events

    def shutdown(self) -> None:
        self.disconnect()
        if self.notifier is not None:
            self.notifier.shutdown()

    def _label(self, timestamp: Optional[datetime]) -> str:
        if timestamp is None:
            return ""
        return timestamp.astimezone(self._tz).strftime(LABEL_FORMAT)

    def _on_source_error(self, exc: Exception) -> None:
        logger.error("Readings subscription error", extra={"reason": str(exc)})


def _checked_band(
    metric: str,
    low: float,
    high: float,
    default: Tuple[float, float],
) -> Tuple[float, float]:
    if low <= high:
        return low, high
    logger.warning(
        "Inverted alert band configured; using defaults",
        extra={"metric": metric, "value": low, "bound": high},
    )
    return default


@lru_cache
def build_default_dashboard() -> DashboardService:
    """Factory that wires the dashboard with the configured store and alert rules."""
    settings = get_settings()
    store = build_default_store()
    temp_min, temp_max = _checked_band(
        "temp", settings.temp_min, settings.temp_max, DEFAULT_TEMP_BAND
    )
    ph_min, ph_max = _checked_band("ph", settings.ph_min, settings.ph_max, DEFAULT_PH_BAND)
    engine = AlertEngine(
        default_alert_config(
            temp_min=temp_min,
            temp_max=temp_max,
            ph_min=ph_min,
            ph_max=ph_max,
            cooldown_ms=settings.alert_cooldown_ms,
        )
    )
    return DashboardService(
        store=store,
        alert_engine=engine,
        feed=AlertFeed(maxlen=settings.alert_history_size),
        notifier=BestEffortNotifier(WebhookChannel(settings.alert_webhook_url)),
        window_size=settings.window_size,
    )
