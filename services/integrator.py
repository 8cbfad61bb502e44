"""Flow-rate to daily volume integration."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from models.records import DailyVolumeBucket, Reading

_SECONDS_PER_MINUTE = 60.0


class RateIntegrator:
    """Pure integration component turning a flow-rate series into daily totals.

    ``laju`` is read as litres per minute. Between two samples the rate is
    assumed to vary linearly, and each interval is split at local midnight so
    every piece lands in exactly one calendar-day bucket. When ``tz`` is
    ``None`` the system local timezone defines the day boundary.
    """

    def __init__(self, tz: Optional[tzinfo] = None, precision: int = 3) -> None:
        self._tz = tz
        self._precision = precision

    def integrate_daily(self, readings: Sequence[Reading]) -> List[DailyVolumeBucket]:
        if len(readings) < 2:
            return []

        totals: Dict[date, float] = {}
        for first, second in zip(readings, readings[1:]):
            if first.laju is None or second.laju is None:
                continue
            if first.timestamp is None or second.timestamp is None:
                continue
            start = first.timestamp.timestamp()
            end = second.timestamp.timestamp()
            if end <= start:
                continue

            span = end - start
            for day, seg_start, seg_end in self._split_by_day(start, end):
                frac_start = max(0.0, (seg_start - start) / span)
                frac_end = max(0.0, (seg_end - start) / span)
                rate_start = first.laju + (second.laju - first.laju) * frac_start
                rate_end = first.laju + (second.laju - first.laju) * frac_end
                minutes = max(0.0, (seg_end - seg_start) / _SECONDS_PER_MINUTE)
                totals[day] = totals.get(day, 0.0) + (rate_start + rate_end) / 2 * minutes

        return [
            DailyVolumeBucket(day=day, total_liters=round(totals[day], self._precision))
            for day in sorted(totals)
        ]

    def _split_by_day(self, start: float, end: float) -> Iterator[Tuple[date, float, float]]:
        cursor = start
        while cursor < end:
            day = self._local(cursor).date()
            boundary = self._start_of_day(day + timedelta(days=1)).timestamp()
            seg_end = min(boundary, end)
            yield day, cursor, seg_end
            cursor = seg_end

    def _local(self, epoch: float) -> datetime:
        return datetime.fromtimestamp(epoch, tz=timezone.utc).astimezone(self._tz)

    def _start_of_day(self, day: date) -> datetime:
        if self._tz is None:
            # Naive local midnight; astimezone() resolves the DST-correct offset.
            return datetime.combine(day, time.min).astimezone()
        return datetime.combine(day, time.min, tzinfo=self._tz)
