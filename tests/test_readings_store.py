"""Unit tests for the readings store used as the live data source."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Iterator, List

import pytest

from datastore.readings_store import ReadingsStore, SourceError
from models.records import Reading


class StepClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(minutes=1)
        return value


@pytest.fixture()
def clock() -> StepClock:
    return StepClock(datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc))


@pytest.fixture()
def store(clock: StepClock) -> Iterator[ReadingsStore]:
    store = ReadingsStore(name="biogas", clock=clock)
    yield store
    store.close()


def test_add_assigns_server_timestamp(store: ReadingsStore) -> None:
    reading_id = store.add(ph="7.1", temp=35, laju=2.5)

    (reading,) = store.latest()
    assert reading.id == reading_id
    assert reading.timestamp == datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
    assert (reading.ph, reading.temp, reading.laju) == (7.1, 35.0, 2.5)


def test_add_rejects_non_numeric_values(store: ReadingsStore) -> None:
    with pytest.raises(ValueError):
        store.add(ph="acidic", temp=35, laju=2.5)


def test_latest_returns_newest_window_oldest_first(store: ReadingsStore) -> None:
    ids = [store.add(ph=7.0, temp=35.0, laju=float(i)) for i in range(5)]

    window = store.latest(limit=3)

    assert [reading.id for reading in window] == ids[2:]


def test_subscribe_delivers_initial_and_subsequent_windows(store: ReadingsStore) -> None:
    batches: List[List[Reading]] = []
    store.add(ph=7.0, temp=35.0, laju=1.0)

    subscription = store.subscribe(batches.append, limit=10)
    store.add(ph=7.0, temp=35.0, laju=2.0)

    assert subscription.active
    assert [len(batch) for batch in batches] == [1, 2]
    assert [reading.laju for reading in batches[-1]] == [1.0, 2.0]


def test_cancel_is_idempotent_and_stops_delivery(store: ReadingsStore) -> None:
    batches: List[List[Reading]] = []
    subscription = store.subscribe(batches.append)

    subscription.cancel()
    subscription.cancel()
    store.add(ph=7.0, temp=35.0, laju=1.0)

    assert not subscription.active
    assert store.listener_count() == 0
    assert len(batches) == 1


def test_listener_errors_are_routed_to_on_error(store: ReadingsStore, caplog) -> None:
    errors: List[Exception] = []

    def explode(_rows: List[Reading]) -> None:
        raise RuntimeError("boom")

    store.subscribe(explode, on_error=errors.append)
    reading_id = store.add(ph=7.0, temp=35.0, laju=1.0)

    assert reading_id
    assert [str(exc) for exc in errors] == ["boom", "boom"]
    assert any("Listener failed" in record.getMessage() for record in caplog.records)


def test_subscribe_requires_callable(store: ReadingsStore) -> None:
    with pytest.raises(TypeError):
        store.subscribe(None)  # type: ignore[arg-type]


def test_closed_store_raises_source_error(store: ReadingsStore) -> None:
    store.close()

    with pytest.raises(SourceError):
        store.latest()
    with pytest.raises(SourceError):
        store.add(ph=7.0, temp=35.0, laju=1.0)


def test_persists_epoch_timestamps_and_reloads(tmp_path, clock: StepClock) -> None:
    path = tmp_path / "readings.json"
    store = ReadingsStore(name="biogas", persistence_path=path, clock=clock)
    reading_id = store.add(ph=7.2, temp=36.0, laju=3.0)

    payload = json.loads(path.read_text())
    assert payload[reading_id]["data"]["timestamp"] == {
        "seconds": 1714550400,
        "nanoseconds": 0,
    }

    reloaded = ReadingsStore(name="biogas", persistence_path=path)
    (reading,) = reloaded.latest()
    assert reading.id == reading_id
    assert reading.timestamp == datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
    assert reading.laju == 3.0


def test_documents_without_timestamp_fall_back_to_create_time(tmp_path) -> None:
    path = tmp_path / "readings.json"
    path.write_text(
        json.dumps(
            {
                "legacy": {
                    "data": {"ph": 7.0, "laju": None},
                    "create_time": "2024-04-30T23:59:00+00:00",
                }
            }
        )
    )

    (reading,) = ReadingsStore(name="biogas", persistence_path=path).latest()

    assert reading.timestamp == datetime(2024, 4, 30, 23, 59, tzinfo=timezone.utc)
    assert reading.laju is None
    assert reading.temp is None


def test_unreadable_file_starts_empty(tmp_path) -> None:
    path = tmp_path / "readings.json"
    path.write_text("{not json")

    assert ReadingsStore(name="biogas", persistence_path=path).latest() == []


@pytest.mark.parametrize("content", ["[]", "42", '"readings"'])
def test_non_object_file_starts_empty(tmp_path, content: str, caplog) -> None:
    path = tmp_path / "readings.json"
    path.write_text(content)

    assert ReadingsStore(name="biogas", persistence_path=path).latest() == []
    assert any("Ignoring unreadable" in record.getMessage() for record in caplog.records)


def test_malformed_entries_are_skipped(tmp_path, caplog) -> None:
    path = tmp_path / "readings.json"
    path.write_text(
        json.dumps(
            {
                "bad-payload": ["ph", 7.0],
                "bad-data": {"data": [1, 2], "create_time": "2024-05-01T00:00:00+00:00"},
                "good": {
                    "data": {"ph": 7.0, "timestamp": {"seconds": 1714550400}},
                    "create_time": None,
                },
            }
        )
    )

    readings = ReadingsStore(name="biogas", persistence_path=path).latest()

    assert [reading.id for reading in readings] == ["good"]
    skipped = [record for record in caplog.records if "Skipping malformed" in record.getMessage()]
    assert len(skipped) == 2
