"""Domain models shared across services."""

from __future__ import annotations

import struct
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def to_single_precision(value: float) -> float:
    """Round ``value`` to the nearest IEEE-754 binary32 number."""
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except (OverflowError, struct.error) as exc:
        raise ValueError(f"{value!r} does not fit in single precision") from exc


class SensorValues(BaseModel):
    """One physical reading; stored tagged as ``{"Temperature": .., "Humidity": ..}``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    temperature: float = Field(..., alias="Temperature")
    humidity: float = Field(..., alias="Humidity")

    @field_validator("temperature", "humidity")
    @classmethod
    def _single_precision(cls, value: float) -> float:
        return to_single_precision(value)


class TimedSensorValues(BaseModel):
    """A stored reading paired with the start of its time bucket (UTC)."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    values: SensorValues
