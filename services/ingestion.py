"""Hand-off between the sampling loop and the single writer of one sensor."""

from __future__ import annotations

import logging
import queue
import threading
from typing import TYPE_CHECKING, Optional

from models.records import SensorValues
from services.errors import IngestionClosedError, SensorStoreError

if TYPE_CHECKING:
    from services.sensor_store import SensorStore

logger = logging.getLogger(__name__)

_CLOSE = object()


class IngestionHandle:
    """Send side of a bounded channel drained by one background writer thread.

    Values are persisted strictly in send order, one transaction at a time.
    ``send`` blocks while the channel is full, so a stalled store slows the
    producer down instead of growing memory. ``close`` is the only way to stop
    the writer: it drains what was already sent, then exits.
    """

    def __init__(self, store: "SensorStore", sensor_id: str, capacity: int = 1) -> None:
        if capacity < 1:
            raise ValueError("Ingestion capacity must be at least 1.")
        self.store = store
        self.sensor_id = sensor_id
        self.capacity = capacity
        self.written = 0
        self.failed_writes = 0
        self._queue: queue.Queue[object] = queue.Queue(maxsize=capacity)
        self._closed = False
        self._state_lock = threading.Lock()
        self._thread = threading.Thread(
            target=self._run,
            name=f"ingestion-{sensor_id}",
            daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def send(self, values: SensorValues, timeout: Optional[float] = None) -> None:
        """Hand ``values`` to the writer, blocking while the channel is full."""
        with self._state_lock:
            if self._closed:
                raise IngestionClosedError(
                    f"Ingestion for {self.sensor_id!r} is closed."
                )
            # Held across put so a concurrent close cannot slip its marker ahead.
            self._queue.put(values, timeout=timeout)

    def close(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        with self._state_lock:
            first_close = not self._closed
            self._closed = True
        if first_close:
            self._queue.put(_CLOSE)
        if wait and self._thread.is_alive():
            self._thread.join(timeout)

    @property
    def closed(self) -> bool:
        return self._closed

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def __enter__(self) -> "IngestionHandle":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _run(self) -> None:
        logger.info(
            "Starting ingestion writer",
            extra={"sensor_id": self.sensor_id, "queue_size": self.capacity},
        )
        while True:
            item = self._queue.get()
            if item is _CLOSE:
                break
            try:
                self.store.store_values(self.sensor_id, item)  # type: ignore[arg-type]
            except SensorStoreError as exc:
                self.failed_writes += 1
                logger.error(
                    "Failed to store sensor values",
                    extra={"sensor_id": self.sensor_id, "reason": str(exc)},
                )
            else:
                self.written += 1
        logger.info("Stopped ingestion writer", extra={"sensor_id": self.sensor_id})
