"""Exceptions raised by the sensor store and its ingestion pipeline."""

from __future__ import annotations


class SensorStoreError(Exception):
    """Base class for every failure surfaced by the sensor store."""


class StorageInitError(SensorStoreError):
    """The root or a per-sensor bucket could not be created or opened."""


class StorageWriteError(SensorStoreError):
    """A write transaction failed; the reading was not persisted."""


class EncodingError(SensorStoreError):
    """Sensor values could not be serialized."""


class IngestionClosedError(SensorStoreError):
    """A value was sent to an ingestion handle that is already closed."""


class QueryError(SensorStoreError):
    """A read transaction or cursor operation failed."""


class UnknownSensorError(QueryError):
    """The sensor has never been provisioned in this store."""

    def __init__(self, sensor_id: str) -> None:
        super().__init__(f"Sensor {sensor_id!r} is not provisioned.")
        self.sensor_id = sensor_id


class DecodingError(QueryError):
    """A stored key or value is malformed."""
