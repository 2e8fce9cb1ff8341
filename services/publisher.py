"""Periodic telemetry publishing."""

from __future__ import annotations

import logging
import random
from decimal import Decimal
from threading import Event, Lock, Thread
from typing import Callable, Optional

from connectors.base import Connector, ConnectorError
from models.records import TelemetryRecord
from services.generator import ReadingGenerator
from services.state import DeviceState, StateLockError

logger = logging.getLogger(__name__)


class TelemetryPublisher:
    """Background task that publishes a new reading every cadence period while enabled."""

    def __init__(
        self,
        device_id: str,
        state: DeviceState,
        connector: Connector,
        generator: ReadingGenerator,
        alert_threshold: Decimal = Decimal("30"),
        rng: Optional[random.Random] = None,
        stop_event: Optional[Event] = None,
        wait: Optional[Callable[[float], bool]] = None,
    ) -> None:
        self.device_id = device_id
        self.state = state
        self.connector = connector
        self.generator = generator
        self.alert_threshold = Decimal(alert_threshold)
        self._rng = rng or random.Random()
        self._stop = stop_event or Event()
        self._wait = wait or self._stop.wait
        self._thread: Optional[Thread] = None
        self._counter_lock = Lock()
        self.sent_count = 0
        self.failed_count = 0

    def start(self) -> Thread:
        if self._thread is not None:
            raise RuntimeError("Telemetry publisher already started.")
        self._thread = Thread(target=self.run, name="telemetry-publisher", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self) -> None:
        logger.info("Telemetry publisher started", extra={"device_id": self.device_id})
        try:
            while not self._stop.is_set():
                self.publish_once()
                cadence_ms = self.state.cadence_millis
                if self._wait(cadence_ms / 1000):
                    break
        except StateLockError:
            logger.critical(
                "Telemetry publisher stopped: device state lock is unusable",
                extra={"device_id": self.device_id},
            )
        except Exception:
            logger.exception(
                "Telemetry publisher crashed", extra={"device_id": self.device_id}
            )
        else:
            logger.info("Telemetry publisher stopped", extra={"device_id": self.device_id})

    def publish_once(self) -> Optional[TelemetryRecord]:
        """Commit the next reading and hand the record to the connector.

        Returns ``None`` when publishing is disabled.
        """
        committed = self.state.advance_if_enabled(
            lambda previous: self.generator.next(previous, self._rng)
        )
        if committed is None:
            return None
        sequence, reading = committed
        record = TelemetryRecord(
            device_id=self.device_id,
            sequence=sequence,
            reading=reading,
            alert=reading > self.alert_threshold,
        )

        try:
            self.connector.send(record)
        except (ConnectorError, OSError) as exc:
            self._count_failure()
            logger.warning(
                "Telemetry send failed",
                extra={"sequence": sequence, "reason": str(exc)},
            )
            return record
        except Exception as exc:  # noqa: BLE001 - a failed publish never ends the loop
            self._count_failure()
            logger.exception(
                "Telemetry send failed unexpectedly",
                extra={"sequence": sequence, "reason": repr(exc)},
            )
            return record

        with self._counter_lock:
            self.sent_count += 1
        logger.info(
            "Sent telemetry",
            extra={"sequence": sequence, "reading": reading},
        )
        return record

    def _count_failure(self) -> None:
        with self._counter_lock:
            self.failed_count += 1
