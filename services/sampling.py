"""Fixed-interval sampling loop feeding an ingestion handle."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Optional

from services.drivers import DriverError, SensorDriver
from services.ingestion import IngestionHandle

logger = logging.getLogger(__name__)


class FailurePolicy(str, Enum):
    """How the loop reacts when the driver cannot be read."""

    fail_fast = "fail-fast"
    keep_going = "keep-going"


class SamplingLoop:
    """Reads the driver once per tick and pushes each reading into ``handle``.

    ``stop`` only ends the loop; closing the ingestion handle is left to
    whoever opened it.
    """

    def __init__(
        self,
        driver: SensorDriver,
        handle: IngestionHandle,
        interval: float,
        policy: FailurePolicy = FailurePolicy.fail_fast,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("Sampling interval must be positive.")
        self.driver = driver
        self.handle = handle
        self.interval = interval
        self.policy = policy
        self._stop = stop_event or threading.Event()

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self) -> int:
        """Sample until stopped; return how many readings were sent."""
        sent = 0
        logger.info(
            "Sampling every %ss",
            self.interval,
            extra={"sensor_id": self.handle.sensor_id, "policy": self.policy.value},
        )
        while not self._stop.wait(self.interval):
            try:
                values = self.driver.read()
            except DriverError as exc:
                if self.policy is FailurePolicy.fail_fast:
                    logger.error(
                        "Failed to read sensor values",
                        extra={"sensor_id": self.handle.sensor_id, "reason": str(exc)},
                    )
                    raise
                logger.warning(
                    "Skipping sample after driver failure",
                    extra={"sensor_id": self.handle.sensor_id, "reason": str(exc)},
                )
                continue
            self.handle.send(values)
            sent += 1
        logger.info(
            "Sampling stopped",
            extra={"sensor_id": self.handle.sensor_id, "entry_count": sent},
        )
        return sent
