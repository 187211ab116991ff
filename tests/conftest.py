from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Iterator

import pytest

from datastore.bucket_engine import BucketEngine
from services.sensor_store import SensorStore


class ManualClock:
    """Clock returning a fixed instant, optionally advancing by ``step`` per call."""

    def __init__(self, start: datetime, step: timedelta = timedelta(0)) -> None:
        self.now = start
        self.step = step
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            current = self.now
            self.now = current + self.step
            return current

    def set(self, moment: datetime) -> None:
        with self._lock:
            self.now = moment


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock(datetime(2024, 1, 2, 10, 3, tzinfo=timezone.utc))


@pytest.fixture()
def engine(tmp_path) -> Iterator[BucketEngine]:
    engine = BucketEngine(tmp_path / "sensors.db")
    yield engine
    engine.close()


@pytest.fixture()
def store(engine: BucketEngine, clock: ManualClock) -> SensorStore:
    return SensorStore(engine, timedelta(minutes=10), clock=clock)


@pytest.fixture()
def make_clock() -> type[ManualClock]:
    return ManualClock
