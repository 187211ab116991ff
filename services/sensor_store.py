"""Time-indexed storage of sensor readings on top of the bucket engine."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from functools import lru_cache
from pathlib import Path
from typing import Callable, List, Optional

from datastore.bucket_engine import (
    Bucket,
    BucketEngine,
    EngineError,
    Transaction,
    build_default_engine,
)
from models.records import SensorValues, TimedSensorValues
from services import codec
from services.errors import (
    QueryError,
    StorageInitError,
    StorageWriteError,
    UnknownSensorError,
)
from services.ingestion import IngestionHandle
from settings import get_settings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class SensorStore:
    """Stores one reading per sensor and time bucket, and answers window queries.

    The engine is injected and may be shared with other stores. All isolation
    comes from its transactions; the store keeps no mutable state of its own.
    """

    def __init__(
        self,
        engine: BucketEngine,
        resolution: timedelta,
        *,
        root_bucket: str = "sensors",
        time_format: str = codec.KEY_FORMAT,
        clock: Clock = codec.utc_now,
    ) -> None:
        self.engine = engine
        self.resolution = codec.validate_resolution(resolution)
        self.root_bucket = root_bucket
        self.time_format = time_format
        self._clock = clock
        self._root_name = root_bucket.encode("utf-8")

        logger.info("Initializing sensor store with root bucket %r", root_bucket)
        try:
            with engine.update() as tx:
                tx.create_bucket_if_not_exists(self._root_name)
        except EngineError as exc:
            raise StorageInitError(
                f"Failed to create bucket {root_bucket!r}: {exc}"
            ) from exc

    def provision_sensor(self, sensor_id: str) -> None:
        """Create the sensor's bucket under the root bucket if it is missing."""
        try:
            with self.engine.update() as tx:
                self._root(tx).create_bucket_if_not_exists(sensor_id.encode("utf-8"))
        except EngineError as exc:
            raise StorageInitError(
                f"Failed to create bucket {sensor_id!r}: {exc}"
            ) from exc

    def list_sensors(self) -> List[str]:
        try:
            with self.engine.view() as tx:
                names = self._root(tx).bucket_names()
        except EngineError as exc:
            raise QueryError(f"Failed to list sensors: {exc}") from exc
        return [name.decode("utf-8") for name in names]

    def open_ingestion(self, sensor_id: str, capacity: int = 1) -> IngestionHandle:
        """Provision ``sensor_id`` and start its dedicated writer.

        The caller owns the returned handle and is the only one who may close it.
        """
        self.provision_sensor(sensor_id)
        handle = IngestionHandle(self, sensor_id, capacity=capacity)
        handle.start()
        return handle

    def store_values(self, sensor_id: str, values: SensorValues) -> None:
        bucket_start = codec.truncate(self._clock(), self.resolution)
        key = codec.encode_key(bucket_start, self.time_format)
        payload = codec.encode_values(values)

        try:
            with self.engine.update() as tx:
                bucket = self._root(tx).bucket(sensor_id.encode("utf-8"))
                if bucket is None:
                    raise StorageWriteError(f"Sensor {sensor_id!r} is not provisioned.")
                bucket.put(key, payload)
        except EngineError as exc:
            raise StorageWriteError(
                f"Failed to store values for {sensor_id!r}: {exc}"
            ) from exc

        logger.debug(
            "Stored sensor values",
            extra={"sensor_id": sensor_id, "bucket_key": key.decode("ascii")},
        )

    def read_last_value(self, sensor_id: str) -> Optional[TimedSensorValues]:
        try:
            with self.engine.view() as tx:
                key, value = self._sensor_bucket(tx, sensor_id).cursor().last()
                if key is None:
                    return None
                return codec.decode_entry(key, value, self.time_format)
        except EngineError as exc:
            raise QueryError(f"Failed to read last value for {sensor_id!r}: {exc}") from exc

    def read_values(self, sensor_id: str, duration: timedelta) -> List[TimedSensorValues]:
        """Return every reading in ``[now - |duration|, now]``, oldest first.

        Both bounds are truncated to the resolution. A malformed entry aborts
        the whole query with ``DecodingError``.
        """
        start, end = self.window(duration)
        readings = self.read_window(sensor_id, start, end)
        logger.debug(
            "Read sensor window",
            extra={
                "sensor_id": sensor_id,
                "duration_s": abs(duration).total_seconds(),
                "entry_count": len(readings),
            },
        )
        return readings

    def read_window(
        self, sensor_id: str, start: datetime, end: datetime
    ) -> List[TimedSensorValues]:
        """Return the readings whose bucket lies in ``[start, end]``, oldest first."""
        start_key = codec.encode_key(start, self.time_format)
        readings: List[TimedSensorValues] = []

        try:
            with self.engine.view() as tx:
                cursor = self._sensor_bucket(tx, sensor_id).cursor()
                key, value = cursor.seek(start_key)
                while key is not None:
                    timestamp = codec.decode_key(key, self.time_format)
                    if timestamp > end:
                        break
                    readings.append(
                        TimedSensorValues(
                            timestamp=timestamp, values=codec.decode_values(value)
                        )
                    )
                    key, value = cursor.next()
        except EngineError as exc:
            raise QueryError(f"Failed to read values for {sensor_id!r}: {exc}") from exc
        return readings

    def window(self, duration: timedelta) -> tuple[datetime, datetime]:
        """Truncated ``(start, end)`` bounds for a query of ``duration``."""
        now = self._clock()
        end = codec.truncate(now, self.resolution)
        try:
            start = codec.truncate(now - abs(duration), self.resolution)
        except OverflowError:
            start = codec.earliest_bucket(self.resolution)
        return start, end

    def _root(self, tx: Transaction) -> Bucket:
        root = tx.bucket(self._root_name)
        if root is None:
            raise EngineError(f"Root bucket {self.root_bucket!r} is missing.")
        return root

    def _sensor_bucket(self, tx: Transaction, sensor_id: str) -> Bucket:
        bucket = self._root(tx).bucket(sensor_id.encode("utf-8"))
        if bucket is None:
            raise UnknownSensorError(sensor_id)
        return bucket


def open_store(
    engine_path: Path | str,
    resolution: timedelta,
    **options,
) -> SensorStore:
    """Open the engine file at ``engine_path`` and build a store over it."""
    try:
        engine = BucketEngine(Path(engine_path))
    except EngineError as exc:
        raise StorageInitError(f"Failed to open {engine_path}: {exc}") from exc
    try:
        return SensorStore(engine, resolution, **options)
    except StorageInitError:
        engine.close()
        raise


@lru_cache
def build_default_store() -> SensorStore:
    """Factory that wires the store with the configured engine and resolution."""
    settings = get_settings()
    try:
        engine = build_default_engine()
    except EngineError as exc:
        raise StorageInitError(f"Failed to open {settings.database_path}: {exc}") from exc
    return SensorStore(
        engine,
        timedelta(seconds=settings.resolution_seconds),
        root_bucket=settings.root_bucket,
    )
