"""Sensor driver contract and the simulated driver used without hardware."""

from __future__ import annotations

import random
from typing import Optional, Protocol

from models.records import SensorValues


class DriverError(Exception):
    """The physical sensor could not be read."""


class SensorDriver(Protocol):
    def read(self) -> SensorValues:
        """Block until the sensor returns its current values."""
        ...


class SimulatedDriver:
    """Bounded random walk around a cellar-like climate."""

    def __init__(
        self,
        seed: Optional[int] = None,
        temperature: float = 12.0,
        humidity: float = 70.0,
        step: float = 0.3,
    ) -> None:
        self._random = random.Random(seed)
        self._temperature = temperature
        self._humidity = humidity
        self._step = step

    def read(self) -> SensorValues:
        self._temperature = _clamp(
            self._temperature + self._random.uniform(-self._step, self._step), -40.0, 80.0
        )
        self._humidity = _clamp(
            self._humidity + self._random.uniform(-self._step, self._step), 0.0, 99.9
        )
        return SensorValues(
            temperature=round(self._temperature, 1),
            humidity=round(self._humidity, 1),
        )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def build_driver(kind: str) -> SensorDriver:
    if kind == "simulated":
        return SimulatedDriver()
    raise ValueError(f"Unknown sensor driver {kind!r}.")
