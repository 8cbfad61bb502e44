from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import pytest

from models.records import Reading
from services.buffer import TimeSeriesBuffer

BASE = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _readings(count: int) -> list[Reading]:
    return [
        Reading(id=f"r{i}", timestamp=BASE + timedelta(minutes=i), laju=float(i))
        for i in range(count)
    ]


def test_empty_buffer_has_no_latest() -> None:
    buffer = TimeSeriesBuffer()

    assert buffer.latest() is None
    assert buffer.all() == ()
    assert len(buffer) == 0


def test_replace_orders_newest_first_batch() -> None:
    buffer = TimeSeriesBuffer()
    readings = _readings(5)

    buffer.replace(reversed(readings))

    assert [r.id for r in buffer.all()] == ["r0", "r1", "r2", "r3", "r4"]
    assert buffer.latest() is not None
    assert buffer.latest().id == "r4"


def test_replace_shuffled_batch_is_non_decreasing() -> None:
    buffer = TimeSeriesBuffer()
    readings = _readings(50) + _readings(10)
    random.Random(7).shuffle(readings)

    buffer.replace(readings)

    stamps = [r.timestamp for r in buffer.all()]
    assert stamps == sorted(stamps)


def test_replace_swaps_whole_window() -> None:
    buffer = TimeSeriesBuffer()
    buffer.replace(_readings(5))
    first_window = buffer.all()

    buffer.replace(_readings(2))

    assert len(buffer) == 2
    assert len(first_window) == 5


def test_replace_keeps_most_recent_readings() -> None:
    buffer = TimeSeriesBuffer(maxlen=3)

    buffer.replace(_readings(10))

    assert [r.id for r in buffer.all()] == ["r7", "r8", "r9"]


def test_readings_without_timestamp_are_dropped() -> None:
    buffer = TimeSeriesBuffer()
    readings = _readings(2) + [Reading(id="bad", timestamp=None, laju=1.0)]

    buffer.replace(readings)

    assert [r.id for r in buffer.all()] == ["r0", "r1"]


def test_invalid_size_is_rejected() -> None:
    with pytest.raises(ValueError):
        TimeSeriesBuffer(maxlen=0)
